"""Domain entity describing a unit of work in the retry queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

from .notification import NotificationChannel, NotificationPriority


class QueueJobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DROPPED = "dropped"


@dataclass
class QueueJob:
    """Delivery attempt bookkeeping owned by the retry queue.

    ``lock_token`` is the exclusivity claim written on the notification row when
    the job was enqueued; a worker only dispatches while the row still carries it.
    """

    notification_id: str
    channel: NotificationChannel
    queue_name: str
    lock_token: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    attempt: int = 0
    max_attempts: int = 3
    id: str = field(default_factory=lambda: str(uuid4()))
    state: QueueJobState = QueueJobState.WAITING
    next_delay_seconds: float | None = None
    error: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None


__all__ = ["QueueJob", "QueueJobState"]
