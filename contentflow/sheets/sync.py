"""Row cache and periodic sync.

Reads the full data range (row 2 onward), converts each row into a record
using the schema's column order, and keeps the most recent snapshot together
with its sync timestamp.  A background asyncio task refreshes the snapshot
on a fixed interval.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from .client import SheetsClient, quote_tab
from .schema import Record, SchemaLoader

logger = logging.getLogger(__name__)


class SyncEngine:
    """Owns the cached record snapshot and the periodic sync task.

    The snapshot is replaced by a single assignment once a read has been
    fully mapped, so readers only ever observe a completed sync.  A failed
    sync leaves both the snapshot and ``last_sync`` untouched.
    """

    def __init__(self, client: SheetsClient, schema_loader: SchemaLoader, tab: str) -> None:
        self._client = client
        self._schema_loader = schema_loader
        self._tab = tab
        self._snapshot: list[Record] | None = None
        self._last_sync: datetime | None = None
        self._task: asyncio.Task | None = None

    @property
    def snapshot(self) -> list[Record] | None:
        """Records from the last successful sync, or ``None`` before the first."""
        return self._snapshot

    @property
    def last_sync(self) -> datetime | None:
        return self._last_sync

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sync(self) -> list[Record]:
        """Read rows 2..N across the schema width and replace the snapshot.

        Raises:
            ConnectivityError: the remote read failed (not retried here).
        """
        schema = await self._schema_loader.get_schema()
        range_spec = f"{quote_tab(self._tab)}!A2:{schema.last_column_letter}"
        rows = await self._client.read_range(range_spec)

        records = [schema.to_record(row) for row in rows]
        self._snapshot = records
        self._last_sync = datetime.now(timezone.utc)
        logger.debug("Synced %d records from tab=%s", len(records), self._tab)
        return records

    async def get_by_id(self, record_id: str) -> Record | None:
        """Fresh full sync, then linear scan on the identifier column."""
        records = await self.sync()
        schema = await self._schema_loader.get_schema()
        key = schema.identifier_column
        for record in records:
            if record.get(key) == record_id:
                return record
        return None

    # ------------------------------------------------------------------
    # Periodic sync
    # ------------------------------------------------------------------

    def start(self, interval_seconds: float) -> None:
        """Start the background sync loop, replacing any existing one."""
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.create_task(
            self._run_periodic(interval_seconds),
            name="sheets-periodic-sync",
        )
        logger.info("Periodic sheet sync started (every %.1fs)", interval_seconds)

    async def stop(self) -> None:
        """Stop scheduling future syncs.  An in-flight sync runs to completion."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Periodic sheet sync stopped")

    async def _run_periodic(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                # Shielded: cancelling the loop must not abort a remote call.
                await asyncio.shield(self.sync())
                logger.info("Periodic sheet sync completed successfully")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic sheet sync failed")
