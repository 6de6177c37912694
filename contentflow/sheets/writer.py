"""Locate a record by identifier and overwrite its row in place.

The sheet API has no row-addressed upsert with partial-field semantics, so
an update reads the whole range fresh, finds the row, merges the patch into
the existing cells column by column, and writes the complete row back.  Row
numbers are never cached: rows may be inserted, removed or reordered by
other editors between operations.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from .client import SheetsClient, quote_tab
from .errors import NotFoundError
from .schema import Record, Schema, SchemaLoader

logger = logging.getLogger(__name__)


def merge_row(schema: Schema, existing: list[Any], patch: Mapping[str, Any]) -> list[Any]:
    """Build the full row to write for ``patch`` applied over ``existing``.

    Columns present in ``patch`` take the patched value (``None`` clears the
    cell).  Other columns keep the existing cell, or ``""`` past the end of
    a short row.  Keys outside the schema are ignored.
    """
    row: list[Any] = []
    for i, name in enumerate(schema.columns):
        if name in patch:
            value = patch[name]
            row.append("" if value is None else value)
        elif i < len(existing) and existing[i] is not None:
            row.append(existing[i])
        else:
            row.append("")
    return row


class RecordWriter:
    """Fresh-read, locate, merge and overwrite a single row.

    When ``serialize`` is true, updates for the same identifier are run one
    at a time under a per-identifier ``asyncio.Lock``; updates for different
    identifiers stay concurrent.  Without it, two concurrent updates of one
    identifier race and the later write wins.
    """

    def __init__(
        self,
        client: SheetsClient,
        schema_loader: SchemaLoader,
        tab: str,
        serialize: bool = True,
    ) -> None:
        self._client = client
        self._schema_loader = schema_loader
        self._tab = tab
        self._serialize = serialize
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def _record_lock(self, record_id: str) -> AsyncIterator[None]:
        if not self._serialize:
            yield
            return
        lock = self._locks.setdefault(record_id, asyncio.Lock())
        self._waiters[record_id] = self._waiters.get(record_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[record_id] -= 1
            if not self._waiters[record_id]:
                del self._waiters[record_id]
                del self._locks[record_id]

    async def locate(self, record_id: str) -> tuple[int, list[Any]]:
        """Return ``(row_number, cells)`` for ``record_id`` from a fresh read.

        ``row_number`` is the 1-based physical row.  The header row is never
        matched.

        Raises:
            NotFoundError: no data row has this identifier.
        """
        schema = await self._schema_loader.get_schema()
        rows = await self._client.read_range(
            f"{quote_tab(self._tab)}!A:{schema.last_column_letter}"
        )
        for index, row in enumerate(rows):
            if index == 0:
                continue
            if row and row[0] == record_id:
                return index + 1, row
        raise NotFoundError(record_id)

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> Record:
        """Merge ``patch`` into the row for ``record_id`` and write it back.

        Returns the record as written.  The sync snapshot is not touched;
        the next sync reflects the change.

        Raises:
            NotFoundError: the identifier is absent; nothing is written.
            ConnectivityError: the read or the write failed.
        """
        async with self._record_lock(record_id):
            schema = await self._schema_loader.get_schema()
            ignored = sorted(set(patch) - set(schema.columns))
            if ignored:
                logger.debug("Ignoring unknown fields for %s: %s", record_id, ignored)

            row_number, existing = await self.locate(record_id)
            new_row = merge_row(schema, existing, patch)
            last = schema.last_column_letter
            await self._client.write_range(
                f"{quote_tab(self._tab)}!A{row_number}:{last}{row_number}",
                [new_row],
            )
            logger.info("Content %s updated successfully (row %d)", record_id, row_number)
            return schema.to_record(new_row)

    async def update_many(
        self,
        updates: Iterable[tuple[str, Mapping[str, Any]]],
    ) -> list[Record]:
        """Apply several updates concurrently; the first failure propagates."""
        return list(
            await asyncio.gather(
                *(self.update(record_id, patch) for record_id, patch in updates)
            )
        )
