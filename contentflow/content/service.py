"""Content workflow operations on top of the sheets adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from contentflow.sheets import NotFoundError, SheetsAdapter

from .models import (
    APPROVED_BY_SYSTEM,
    COLUMN_MAP,
    STATUS_COLUMN,
    ContentItem,
    ContentStatus,
    ContentSyncItem,
)

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current UTC time as ``2024-05-01T12:00:00.000Z``."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


async def list_content(adapter: SheetsAdapter, refresh: bool = False) -> list[ContentItem]:
    """All listable content items, in sheet row order."""
    records = await adapter.list_records(refresh=refresh)
    now = utc_now_iso()
    items = [ContentItem.from_record(record, now) for record in records]
    valid = [item for item in items if item.is_listable()]
    if len(valid) != len(items):
        logger.info("Filtered %d invalid content rows", len(items) - len(valid))
    return valid


async def get_content(adapter: SheetsAdapter, content_id: str) -> ContentItem:
    record = await adapter.get_record_by_id(content_id)
    if record is None:
        raise NotFoundError(content_id)
    return ContentItem.from_record(record, utc_now_iso())


def build_status_patch(
    status: ContentStatus,
    feedback: str | None = None,
    now: str | None = None,
) -> dict[str, Any]:
    """Sheet patch for a status change.

    Feedback stamps ``Last Feedback`` and its date; moving to Approved
    stamps the approval date and approver.
    """
    now = now or utc_now_iso()
    patch: dict[str, Any] = {STATUS_COLUMN: status.value}
    if feedback:
        patch[COLUMN_MAP["last_feedback"]] = feedback
        patch[COLUMN_MAP["last_feedback_date"]] = now
    if status is ContentStatus.APPROVED:
        patch[COLUMN_MAP["date_approved"]] = now
        patch[COLUMN_MAP["approved_by"]] = APPROVED_BY_SYSTEM
    return patch


async def update_status(
    adapter: SheetsAdapter,
    content_id: str,
    status: ContentStatus,
    feedback: str | None = None,
) -> dict[str, Any]:
    logger.info(
        "Updating content status: id=%s status=%s has_feedback=%s",
        content_id,
        status.value,
        bool(feedback),
    )
    return await adapter.update_record(content_id, build_status_patch(status, feedback))


async def sync_items(adapter: SheetsAdapter, items: list[ContentSyncItem]) -> list[dict[str, Any]]:
    """Write each item's supplied fields back to its row."""
    return await adapter.update_records((item.id, item.to_patch()) for item in items)
