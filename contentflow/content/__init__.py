"""Content workflow domain: items, status pipeline and sheet column mapping."""

from .models import COLUMN_MAP, ContentItem, ContentStatus, ContentSyncItem
from .service import build_status_patch, get_content, list_content, sync_items, update_status

__all__ = [
    "COLUMN_MAP",
    "ContentItem",
    "ContentStatus",
    "ContentSyncItem",
    "build_status_patch",
    "get_content",
    "list_content",
    "sync_items",
    "update_status",
]
