"""Shared test fixtures for ContentFlow tests."""

import asyncio
import re

import pytest
import pytest_asyncio

from contentflow.sheets import ConnectivityError, SheetsAdapter

_A1_RE = re.compile(
    r"^(?:'(?P<tab>(?:[^']|'')*)'!)?"
    r"(?P<c1>[A-Z]*)(?P<r1>\d*)"
    r"(?::(?P<c2>[A-Z]*)(?P<r2>\d*))?$"
)


def _col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


class FakeSheetStore:
    """In-memory stand-in for ``SheetsClient`` with Sheets API value semantics.

    Reads omit trailing empty cells and trailing empty rows, like the real
    API.  Every call is recorded so tests can assert on reads and writes.
    """

    def __init__(self, rows, title="Content Tracker", tabs=("Content",)):
        self.rows = [list(r) for r in rows]
        self.title = title
        self.tabs = list(tabs)
        self.reads: list[str] = []
        self.writes: list[tuple[str, list]] = []
        self.metadata_calls = 0
        self.fail_reads = False
        self.fail_writes = False
        self.fail_metadata = False
        self.read_delay = 0.0

    def _parse(self, range_spec):
        match = _A1_RE.match(range_spec)
        assert match, f"unparseable range {range_spec!r}"
        if match["tab"] is not None:
            assert match["tab"].replace("''", "'") in self.tabs
        width = max((len(r) for r in self.rows), default=0)
        c1 = _col_index(match["c1"]) if match["c1"] else 0
        r1 = int(match["r1"]) if match["r1"] else 1
        c2_letters = match["c2"] if match["c2"] is not None else match["c1"]
        r2_digits = match["r2"] if match["r2"] is not None else match["r1"]
        c2 = _col_index(c2_letters) if c2_letters else max(width - 1, c1)
        r2 = int(r2_digits) if r2_digits else max(len(self.rows), r1)
        return c1, r1, c2, r2

    async def get_metadata(self):
        self.metadata_calls += 1
        if self.fail_metadata:
            raise ConnectivityError("metadata unavailable")
        return {"title": self.title, "sheets": list(self.tabs)}

    async def read_range(self, range_spec):
        self.reads.append(range_spec)
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.fail_reads:
            raise ConnectivityError(f"read failed: {range_spec}")
        c1, r1, c2, r2 = self._parse(range_spec)
        values = []
        for row in self.rows[r1 - 1 : r2]:
            cells = [str(v) for v in row[c1 : c2 + 1]]
            while cells and cells[-1] == "":
                cells.pop()
            values.append(cells)
        while values and not values[-1]:
            values.pop()
        return values

    async def write_range(self, range_spec, rows):
        if self.fail_writes:
            raise ConnectivityError(f"write failed: {range_spec}")
        self.writes.append((range_spec, [list(r) for r in rows]))
        c1, r1, _, _ = self._parse(range_spec)
        for offset, values in enumerate(rows):
            index = r1 - 1 + offset
            while len(self.rows) <= index:
                self.rows.append([])
            target = self.rows[index]
            while len(target) < c1 + len(values):
                target.append("")
            target[c1 : c1 + len(values)] = values
        return {"updatedRange": range_spec, "updatedRows": len(rows)}


HEADER = [
    "Post ID",
    "Platform",
    "Topic",
    "Content Text",
    "Status",
    "Date Created",
    "Last Feedback",
    "Last Feedback Date",
    "Date Approved",
    "Approved By",
]


@pytest.fixture(autouse=True)
def _clear_singleton_caches():
    """Reset cached Settings and access-log handlers between tests."""
    yield
    from contentflow.config import get_settings

    get_settings.cache_clear()

    try:
        from contentflow.api.middleware import _access_logger

        _access_logger.handlers.clear()
    except (ImportError, AttributeError):
        pass


@pytest.fixture
def content_rows():
    """Header plus three content rows; row 3 is short (trailing cells blank)."""
    return [
        HEADER,
        ["p1", "LinkedIn", "Launch", "We shipped!", "Draft", "2024-05-01"],
        ["p2", "Twitter/X", "Tips", "Five tips", "In Review", "2024-05-02", "Tighten intro"],
        ["p3", "Blog", "", "Long read", "Approved", "2024-05-03", "", "", "2024-05-04", "Dana"],
    ]


@pytest.fixture
def store(content_rows):
    return FakeSheetStore(content_rows)


@pytest.fixture
def simple_store():
    """Two-column sheet: ``[ID, Status]``."""
    return FakeSheetStore([["ID", "Status"], ["a", "Draft"], ["b", "Approved"]])


@pytest_asyncio.fixture
async def adapter(store):
    """Initialized adapter over ``store`` with the periodic task disabled."""
    adapter = SheetsAdapter(store, periodic_sync=False)
    await adapter.initialize()
    yield adapter
    await adapter.shutdown()
