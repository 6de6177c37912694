"""Pydantic v2 response models for the ContentFlow API.

Content request/response models live in ``contentflow.content.models``.
"""

from typing import Any

from pydantic import BaseModel


class LiveResponse(BaseModel):
    status: str = "alive"


class HealthResponse(BaseModel):
    status: str  # "healthy" or "degraded"
    timestamp: str
    version: str
    environment: str
    uptime_seconds: float
    credentials: dict[str, bool]
    sheets: dict[str, Any]
