"""Pydantic models describing notification payloads.

Request models accept loosely typed values; sanitization and bounds checking
happen in the application layer so every rejection maps to HTTP 400.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationContent(BaseModel):
    title: Any = None
    message: Any = None
    channel: Any = None
    priority: Any = None
    payload: Any = None
    scheduled_at: Any = None
    max_retries: Any = None
    event_type: Any = None


class NotificationCreate(NotificationContent):
    """Payload used to create a notification for one recipient."""

    recipient_id: Any = None


class NotificationBulkCreate(NotificationContent):
    """Payload used to send the same notification to many recipients."""

    recipient_ids: Any = None


class NotificationRead(BaseModel):
    """Representation of a notification delivered to the client."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    recipient_id: str
    channel: str
    event_type: str
    title: str
    message: str
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: str
    status: str
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    error_message: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BulkFailureRead(BaseModel):
    id: str
    error: str


class BulkSendResultRead(BaseModel):
    successful: list[NotificationRead]
    failed: list[BulkFailureRead]


class NotificationStatsRead(BaseModel):
    total: int
    unread: int
    by_channel: dict[str, int]


class MarkAllReadResponse(BaseModel):
    updated: int


class BroadcastRequest(BaseModel):
    """Announcement pushed to every connected user; not persisted."""

    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=1000)
    payload: dict[str, Any] = Field(default_factory=dict)


class BroadcastResponse(BaseModel):
    delivered: int


__all__ = [
    "BroadcastRequest",
    "BroadcastResponse",
    "BulkFailureRead",
    "BulkSendResultRead",
    "MarkAllReadResponse",
    "NotificationBulkCreate",
    "NotificationCreate",
    "NotificationRead",
    "NotificationStatsRead",
]
