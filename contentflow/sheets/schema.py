"""Header-row schema discovery.

Column names are unknown until row 1 of the sheet is read.  The resulting
``Schema`` is the authoritative column layout for every read and write:
position 0 is column ``A``, position 1 is column ``B``, and so on.
"""

from __future__ import annotations

import collections
import logging
from dataclasses import dataclass
from typing import Any

from .client import SheetsClient, quote_tab
from .errors import SchemaError

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def column_letter(index: int) -> str:
    """Convert a 0-based column index to its A1 letter (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0, got {index}")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


@dataclass(frozen=True)
class Schema:
    """Ordered, immutable list of column names read from the header row."""

    columns: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.columns:
            raise SchemaError("Schema must contain at least one column")

    @property
    def identifier_column(self) -> str:
        """The first column holds each record's unique key."""
        return self.columns[0]

    @property
    def width(self) -> int:
        return len(self.columns)

    @property
    def last_column_letter(self) -> str:
        return column_letter(self.width - 1)

    def to_record(self, row: list[Any]) -> Record:
        """Map a physical row to a record; missing or blank cells become ``None``."""
        record: Record = {}
        for i, name in enumerate(self.columns):
            value = row[i] if i < len(row) else None
            record[name] = value if value not in (None, "") else None
        return record


def validate_columns(columns: list[str], strict: bool = True) -> list[str]:
    """Flag blank and duplicate header names.

    Returns the list of problems found.  In strict mode any problem raises
    ``SchemaError``; otherwise problems are logged and the header is used
    as-is.
    """
    problems: list[str] = []
    blanks = [column_letter(i) for i, name in enumerate(columns) if not name]
    if blanks:
        problems.append(f"blank column name(s) at {', '.join(blanks)}")
    duplicates = sorted(
        name for name, count in collections.Counter(columns).items()
        if name and count > 1
    )
    if duplicates:
        problems.append(f"duplicate column name(s): {', '.join(duplicates)}")

    if problems:
        if strict:
            raise SchemaError("Unusable header row: " + "; ".join(problems))
        logger.warning("Header row accepted with problems: %s", "; ".join(problems))
    return problems


class SchemaLoader:
    """Reads row 1 once and caches the resulting ``Schema`` until reloaded."""

    def __init__(self, client: SheetsClient, tab: str, strict: bool = True) -> None:
        self._client = client
        self._tab = tab
        self._strict = strict
        self._schema: Schema | None = None

    @property
    def cached(self) -> Schema | None:
        return self._schema

    async def load_schema(self) -> Schema:
        """Fetch the header row and replace the cached schema.

        Raises:
            ConnectivityError: the remote read failed.
            SchemaError: row 1 is empty, or (strict mode) has blank or
                duplicate names.
        """
        rows = await self._client.read_range(f"{quote_tab(self._tab)}!1:1")
        header = rows[0] if rows else []
        columns = [str(cell).strip() for cell in header]
        if not any(columns):
            raise SchemaError(f"Header row of tab {self._tab!r} is empty")

        validate_columns(columns, strict=self._strict)
        self._schema = Schema(tuple(columns))
        logger.info("Column headers loaded: %s", list(self._schema.columns))
        return self._schema

    async def get_schema(self) -> Schema:
        if self._schema is None:
            return await self.load_schema()
        return self._schema
