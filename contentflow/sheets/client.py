"""Google Sheets API client used as the remote record store.

Wraps the three calls the datastore needs: read a range of values, overwrite
a range of values, and fetch spreadsheet metadata (tab titles).  The
``googleapiclient`` calls are blocking, so each one runs in a worker thread
via ``asyncio.to_thread`` to keep the event loop responsive.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build

from .errors import ConnectivityError

logger = logging.getLogger(__name__)

SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/spreadsheets",)
_TOKEN_URI = "https://oauth2.googleapis.com/token"


def quote_tab(title: str) -> str:
    """Quote a tab title for use in A1 notation (``My Tab`` -> ``'My Tab'``)."""
    return "'" + title.replace("'", "''") + "'"


def build_credentials(client_email: str, private_key: str) -> Any:
    """Build service-account credentials from an email and PEM private key."""
    info = {
        "type": "service_account",
        "client_email": client_email,
        "private_key": private_key,
        "token_uri": _TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(
        info, scopes=list(SCOPES)
    )


class SheetsClient:
    """Narrow async facade over one Google Sheets spreadsheet.

    The API service is created lazily on first use.  Every failure, from
    building the service to executing a request, surfaces as
    ``ConnectivityError`` chained to the underlying exception.

    Args:
        spreadsheet_id: Google Sheets spreadsheet ID.
        credentials: Optional Google API credentials object.  When ``None``,
            the client attempts Application Default Credentials (ADC).
        service: Optional pre-built Sheets API service (used by tests).
    """

    def __init__(
        self,
        spreadsheet_id: str,
        credentials: Any = None,
        service: Any = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        self._service: Any = service

    @classmethod
    def from_settings(cls, settings: Any) -> "SheetsClient":
        """Create a client from ``Settings`` service-account fields."""
        credentials = None
        private_key = settings.GOOGLE_PRIVATE_KEY.get_secret_value()
        if settings.GOOGLE_CLIENT_EMAIL and private_key:
            try:
                credentials = build_credentials(
                    settings.GOOGLE_CLIENT_EMAIL, private_key
                )
            except ValueError as exc:
                raise ConnectivityError(
                    f"Invalid service account credentials: {exc}"
                ) from exc
        return cls(settings.GOOGLE_SHEET_ID, credentials=credentials)

    def _ensure_service(self) -> Any:
        """Lazily create the Sheets API service."""
        if self._service is not None:
            return self._service

        kwargs: dict[str, Any] = {
            "serviceName": "sheets",
            "version": "v4",
            "cache_discovery": False,
        }
        if self._credentials is not None:
            kwargs["credentials"] = self._credentials
        try:
            self._service = build(**kwargs)
        except Exception as exc:
            raise ConnectivityError(
                f"Failed to initialize Google Sheets API service: {exc}"
            ) from exc
        logger.info("Google Sheets API service initialized.")
        return self._service

    def _new_http(self) -> Any:
        """Fresh authorized transport per request (httplib2 is not thread-safe)."""
        if self._credentials is None:
            return None
        return google_auth_httplib2.AuthorizedHttp(
            self._credentials, http=httplib2.Http()
        )

    async def _execute(
        self,
        make_request: Callable[[Any], Any],
        description: str,
    ) -> Any:
        service = self._ensure_service()

        def _run() -> Any:
            request = make_request(service)
            http = self._new_http()
            if http is None:
                return request.execute()
            return request.execute(http=http)

        try:
            return await asyncio.to_thread(_run)
        except Exception as exc:
            logger.warning(
                "Sheets API call failed: %s sheet=%s",
                description,
                self.spreadsheet_id[:12],
                exc_info=True,
            )
            raise ConnectivityError(f"Sheets API call failed ({description}): {exc}") from exc

    async def get_metadata(self) -> dict[str, Any]:
        """Fetch the spreadsheet title and the ordered list of tab titles."""
        result = await self._execute(
            lambda service: service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="properties.title,sheets.properties.title",
            ),
            "get metadata",
        )
        return {
            "title": result.get("properties", {}).get("title", ""),
            "sheets": [
                sheet.get("properties", {}).get("title", "")
                for sheet in result.get("sheets", [])
            ],
        }

    async def read_range(self, range_spec: str) -> list[list[str]]:
        """Read raw cell values for an A1 range.

        Trailing empty cells and trailing empty rows are omitted by the API,
        so rows may be shorter than the requested width.
        """
        result = await self._execute(
            lambda service: service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=range_spec),
            f"read {range_spec}",
        )
        return result.get("values", [])

    async def write_range(
        self,
        range_spec: str,
        rows: list[list[Any]],
    ) -> dict[str, Any]:
        """Overwrite an A1 range with ``rows`` as typed by a user."""
        return await self._execute(
            lambda service: service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=range_spec,
                valueInputOption="USER_ENTERED",
                body={"values": rows},
            ),
            f"write {range_spec}",
        )
