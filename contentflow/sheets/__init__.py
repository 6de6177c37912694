"""Google Sheets as a record store.

Schema discovery from the header row, a cached row snapshot with periodic
sync, and locate-then-overwrite row updates, behind the ``SheetsAdapter``
facade.
"""

from .adapter import AdapterState, SheetsAdapter
from .client import SheetsClient
from .errors import (
    ConnectivityError,
    NotFoundError,
    NotInitializedError,
    SchemaError,
    SheetsError,
)
from .schema import Record, Schema, SchemaLoader, column_letter
from .sync import SyncEngine
from .writer import RecordWriter, merge_row

__all__ = [
    "AdapterState",
    "SheetsAdapter",
    "SheetsClient",
    "SheetsError",
    "ConnectivityError",
    "NotFoundError",
    "NotInitializedError",
    "SchemaError",
    "Record",
    "Schema",
    "SchemaLoader",
    "SyncEngine",
    "RecordWriter",
    "column_letter",
    "merge_row",
]
