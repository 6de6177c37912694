"""Error taxonomy for the spreadsheet datastore.

Every failure surfaced by the sheets layer is a ``SheetsError`` subclass so
the API boundary can map kinds to responses without inspecting messages.
"""


class SheetsError(Exception):
    """Base class for spreadsheet datastore failures."""


class ConnectivityError(SheetsError):
    """The remote sheet store failed or was unreachable."""


class SchemaError(SheetsError):
    """The header row is empty or unusable."""


class NotFoundError(SheetsError):
    """No row carries the requested identifier."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Content with ID {record_id} not found")
        self.record_id = record_id


class NotInitializedError(SheetsError):
    """The adapter is not in a state that serves reads or writes."""
