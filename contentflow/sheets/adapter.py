"""Single entry point to the spreadsheet datastore.

``SheetsAdapter`` coordinates schema loading, the cached row snapshot and
the row writer, and owns the periodic-sync lifecycle::

    UNINITIALIZED -> INITIALIZING -> READY -> SHUTTING_DOWN -> STOPPED
                          |
                          +-> FAILED

The adapter is an explicit service object: the process entry point builds
it, calls ``initialize()``, hands it to request handlers and calls
``shutdown()`` on exit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from .client import SheetsClient
from .errors import NotFoundError, NotInitializedError, SchemaError
from .schema import Record, Schema, SchemaLoader
from .sync import SyncEngine
from .writer import RecordWriter

logger = logging.getLogger(__name__)


class AdapterState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class SheetsAdapter:
    """Facade over one tab of one spreadsheet.

    Args:
        client: Remote sheet store.
        tab: Tab title to use.  Empty means the first tab of the spreadsheet.
        sync_interval: Seconds between background syncs.
        strict_schema: Reject blank or duplicate header names.
        serialize_updates: Run same-identifier updates one at a time.
        periodic_sync: Start the background sync task on initialization.
    """

    def __init__(
        self,
        client: SheetsClient,
        *,
        tab: str = "",
        sync_interval: float = 30.0,
        strict_schema: bool = True,
        serialize_updates: bool = True,
        periodic_sync: bool = True,
    ) -> None:
        self._client = client
        self._configured_tab = tab
        self._sync_interval = sync_interval
        self._strict_schema = strict_schema
        self._serialize_updates = serialize_updates
        self._periodic_sync = periodic_sync

        self._state = AdapterState.UNINITIALIZED
        self._init_lock = asyncio.Lock()
        self._tab: str | None = None
        self._spreadsheet_title: str | None = None
        self._schema_loader: SchemaLoader | None = None
        self._sync: SyncEngine | None = None
        self._writer: RecordWriter | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "SheetsAdapter":
        return cls(
            SheetsClient.from_settings(settings),
            tab=settings.SHEET_TAB,
            sync_interval=settings.SYNC_INTERVAL_SECONDS,
            strict_schema=settings.SCHEMA_STRICT,
            serialize_updates=settings.SERIALIZE_UPDATES,
        )

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def tab(self) -> str | None:
        return self._tab

    @property
    def last_sync_time(self) -> datetime | None:
        return self._sync.last_sync if self._sync is not None else None

    @property
    def is_syncing(self) -> bool:
        """Whether the periodic sync task is scheduled."""
        return self._sync is not None and self._sync.is_running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Probe the spreadsheet, load the schema and start periodic sync.

        Safe to call repeatedly: a no-op once ready, and a retry after a
        failed attempt.

        Raises:
            ConnectivityError: the spreadsheet could not be reached.
            SchemaError: the tab is missing or its header row is unusable.
            NotInitializedError: the adapter has been shut down.
        """
        async with self._init_lock:
            if self._state is AdapterState.READY:
                return
            if self._state in (AdapterState.SHUTTING_DOWN, AdapterState.STOPPED):
                raise NotInitializedError("Sheets adapter has been shut down")
            await self._initialize_locked()

    async def _initialize_locked(self) -> None:
        self._state = AdapterState.INITIALIZING
        try:
            metadata = await self._client.get_metadata()
            tab = self._resolve_tab(metadata["sheets"])
            loader = SchemaLoader(self._client, tab, strict=self._strict_schema)
            await loader.load_schema()
        except Exception as exc:
            if self._state is AdapterState.INITIALIZING:
                self._state = AdapterState.FAILED
            logger.error("Failed to initialize Google Sheets adapter: %s", exc)
            raise

        # shutdown() may have run while the probe was awaiting.
        if self._state is not AdapterState.INITIALIZING:
            logger.info("Sheets adapter shut down during initialization")
            raise NotInitializedError("Sheets adapter was shut down during initialization")

        self._tab = tab
        self._spreadsheet_title = metadata.get("title")
        self._schema_loader = loader
        self._sync = SyncEngine(self._client, loader, tab)
        self._writer = RecordWriter(
            self._client, loader, tab, serialize=self._serialize_updates
        )
        if self._periodic_sync:
            self._sync.start(self._sync_interval)
        self._state = AdapterState.READY
        logger.info(
            "Google Sheets adapter ready: spreadsheet=%r tab=%r",
            self._spreadsheet_title,
            tab,
        )

    def _resolve_tab(self, titles: list[str]) -> str:
        if not titles:
            raise SchemaError("No sheets found in the spreadsheet")
        if not self._configured_tab:
            return titles[0]
        if self._configured_tab not in titles:
            raise SchemaError(
                f"Tab {self._configured_tab!r} not found; available: {titles}"
            )
        return self._configured_tab

    async def _ensure_ready(self) -> None:
        if self._state is AdapterState.READY:
            return
        if self._state is AdapterState.UNINITIALIZED:
            # Lazy initialization happens at most once; later callers see
            # the outcome of the first attempt.
            async with self._init_lock:
                if self._state is AdapterState.UNINITIALIZED:
                    await self._initialize_locked()
        elif self._state is AdapterState.INITIALIZING:
            async with self._init_lock:
                pass
        if self._state is not AdapterState.READY:
            raise NotInitializedError(f"Sheets adapter is {self._state.value}")

    async def shutdown(self) -> None:
        """Stop scheduling periodic syncs.  Idempotent."""
        if self._state in (AdapterState.SHUTTING_DOWN, AdapterState.STOPPED):
            return
        self._state = AdapterState.SHUTTING_DOWN
        if self._sync is not None:
            await self._sync.stop()
        self._state = AdapterState.STOPPED
        logger.info("Sheets adapter cleanup completed")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_schema(self) -> Schema:
        await self._ensure_ready()
        return await self._schema_loader.get_schema()

    async def reload_schema(self) -> Schema:
        """Re-read the header row.  On failure the previous schema stays."""
        await self._ensure_ready()
        return await self._schema_loader.load_schema()

    async def list_records(self, refresh: bool = False) -> list[Record]:
        """Records from the cached snapshot.

        Syncs first when no snapshot exists yet or when ``refresh`` is true.
        """
        await self._ensure_ready()
        snapshot = self._sync.snapshot
        if refresh or snapshot is None:
            snapshot = await self._sync.sync()
        return [dict(record) for record in snapshot]

    async def get_record_by_id(self, record_id: str) -> Record | None:
        """Fresh lookup by identifier; ``None`` when absent."""
        if not record_id:
            return None
        await self._ensure_ready()
        return await self._sync.get_by_id(record_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_record(self, record_id: str, patch: Mapping[str, Any]) -> Record:
        """Merge ``patch`` into the row for ``record_id``.

        An empty identifier never matches; it would otherwise address rows
        whose identifier cell is blank.
        """
        if not record_id:
            raise NotFoundError(record_id)
        await self._ensure_ready()
        return await self._writer.update(record_id, patch)

    async def update_records(
        self,
        updates: Iterable[tuple[str, Mapping[str, Any]]],
    ) -> list[Record]:
        updates = list(updates)
        for record_id, _ in updates:
            if not record_id:
                raise NotFoundError(record_id)
        await self._ensure_ready()
        return await self._writer.update_many(updates)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def validate_connection(self) -> dict[str, Any]:
        """Probe the spreadsheet and report status.  Never raises."""
        last_sync = self.last_sync_time
        try:
            await self._ensure_ready()
            metadata = await self._client.get_metadata()
            if not metadata["sheets"]:
                raise SchemaError("No sheets found in the spreadsheet")
            schema = await self._schema_loader.get_schema()
        except Exception as exc:
            logger.error("Sheet validation failed: %s", exc)
            return {
                "status": "error",
                "state": self._state.value,
                "lastSync": last_sync.isoformat() if last_sync else None,
                "columns": [],
                "error": str(exc),
            }
        last_sync = self.last_sync_time
        return {
            "status": "connected",
            "state": self._state.value,
            "spreadsheet": metadata.get("title"),
            "tab": self._tab,
            "lastSync": last_sync.isoformat() if last_sync else None,
            "columns": list(schema.columns),
            "error": None,
        }
