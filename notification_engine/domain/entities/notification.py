"""Domain entity representing a notification delivery record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationChannel(str, Enum):
    """Delivery medium for a notification."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


class NotificationPriority(str, Enum):
    """Ordering hint used by the retry queue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Return the queue rank; lower values are served first."""

        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.URGENT: 0,
    NotificationPriority.HIGH: 1,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.LOW: 3,
}


class NotificationStatus(str, Enum):
    """Lifecycle state of a notification."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"


UNREAD_STATUSES = frozenset({NotificationStatus.SENT, NotificationStatus.DELIVERED})

DEFAULT_EVENT_TYPE = "general"


@dataclass
class Notification:
    """Information message delivered to a specific recipient."""

    id: str | None
    recipient_id: str
    channel: NotificationChannel
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    status: NotificationStatus = NotificationStatus.PENDING
    event_type: str = DEFAULT_EVENT_TYPE
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    error_message: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime | None = None
    updated_at: datetime | None = None
    lock_token: str | None = None
    locked_at: datetime | None = None

    def is_unread(self) -> bool:
        """Return ``True`` while the recipient has not read a delivered message."""

        return self.status in UNREAD_STATUSES and self.read_at is None

    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


__all__ = [
    "DEFAULT_EVENT_TYPE",
    "Notification",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationStatus",
    "UNREAD_STATUSES",
]
