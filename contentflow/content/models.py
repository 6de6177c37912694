"""Content item model and its mapping onto the tracker sheet's columns."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ContentStatus(str, Enum):
    """Workflow pipeline, in order."""

    DRAFT = "Draft"
    IN_REVIEW = "In Review"
    CHANGES_REQUESTED = "Changes Requested"
    APPROVED = "Approved"
    PUBLISHED = "Published"


# API field name -> sheet column header.
COLUMN_MAP: dict[str, str] = {
    "id": "Post ID",
    "platform": "Platform",
    "topic": "Topic",
    "content": "Content Text",
    "status": "Status",
    "created_at": "Date Created",
    "last_feedback": "Last Feedback",
    "last_feedback_date": "Last Feedback Date",
    "date_approved": "Date Approved",
    "approved_by": "Approved By",
    "final_approval_date": "Final Approval Date",
    "post_scheduled_date": "Post Scheduled Date",
    "posted_by": "Posted By",
    "post_link": "Post Link",
}

STATUS_COLUMN = COLUMN_MAP["status"]
APPROVED_BY_SYSTEM = "System"


class ContentItem(BaseModel):
    """One content item as served by the API (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    platform: str
    topic: str = ""
    content: str
    status: str = ContentStatus.DRAFT.value
    created_at: str | None = Field(None, alias="createdAt")
    last_feedback: str | None = Field(None, alias="lastFeedback")
    last_feedback_date: str | None = Field(None, alias="lastFeedbackDate")
    date_approved: str | None = Field(None, alias="dateApproved")
    approved_by: str | None = Field(None, alias="approvedBy")
    final_approval_date: str | None = Field(None, alias="finalApprovalDate")
    post_scheduled_date: str | None = Field(None, alias="postScheduledDate")
    posted_by: str | None = Field(None, alias="postedBy")
    post_link: str | None = Field(None, alias="postLink")

    @classmethod
    def from_record(cls, record: dict[str, Any], now: str) -> "ContentItem":
        """Build an item from a sheet record.

        ``now`` fills a missing creation date.  ``Twitter/X`` is reported as
        ``Twitter``.
        """

        def text(field: str, default: str = "") -> str:
            value = record.get(COLUMN_MAP[field])
            return str(value) if value not in (None, "") else default

        def optional(field: str) -> str | None:
            value = record.get(COLUMN_MAP[field])
            return str(value) if value not in (None, "") else None

        return cls(
            id=text("id"),
            platform=text("platform").replace("/X", ""),
            topic=text("topic"),
            content=text("content"),
            status=text("status", ContentStatus.DRAFT.value),
            created_at=optional("created_at") or now,
            last_feedback=optional("last_feedback"),
            last_feedback_date=optional("last_feedback_date"),
            date_approved=optional("date_approved"),
            approved_by=optional("approved_by"),
            final_approval_date=optional("final_approval_date"),
            post_scheduled_date=optional("post_scheduled_date"),
            posted_by=optional("posted_by"),
            post_link=optional("post_link"),
        )

    def is_listable(self) -> bool:
        """Items need an id, platform and text, and a pipeline status."""
        statuses = {s.value for s in ContentStatus}
        return bool(self.id and self.platform and self.content) and self.status in statuses


class StatusUpdateRequest(BaseModel):
    id: str = Field(..., min_length=1)
    status: ContentStatus
    feedback: str | None = Field(None, max_length=10000)


class ContentSyncItem(BaseModel):
    """Partial content item for bulk sync.  Only fields sent are written."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    platform: str | None = None
    topic: str | None = None
    content: str | None = None
    status: ContentStatus | None = None
    created_at: str | None = Field(None, alias="createdAt")
    last_feedback: str | None = Field(None, alias="lastFeedback")
    last_feedback_date: str | None = Field(None, alias="lastFeedbackDate")
    date_approved: str | None = Field(None, alias="dateApproved")
    approved_by: str | None = Field(None, alias="approvedBy")
    final_approval_date: str | None = Field(None, alias="finalApprovalDate")
    post_scheduled_date: str | None = Field(None, alias="postScheduledDate")
    posted_by: str | None = Field(None, alias="postedBy")
    post_link: str | None = Field(None, alias="postLink")

    def to_patch(self) -> dict[str, Any]:
        """Sheet-column patch containing only the fields the caller set."""
        patch: dict[str, Any] = {}
        for field, value in self.model_dump(exclude_unset=True).items():
            if isinstance(value, Enum):
                value = value.value
            patch[COLUMN_MAP[field]] = value
        return patch


class SyncRequest(BaseModel):
    items: list[ContentSyncItem]


class StatusUpdateResponse(BaseModel):
    message: str
    id: str
    status: str


class SyncResponse(BaseModel):
    message: str
    timestamp: str
    updated: int
