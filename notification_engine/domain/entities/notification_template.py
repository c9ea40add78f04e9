"""Domain entity describing a reusable notification template."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .notification import NotificationChannel


@dataclass
class NotificationTemplate:
    """Named message shape with ``{{variable}}`` placeholders."""

    id: str | None
    name: str
    subject: str
    content: str
    channel: NotificationChannel = NotificationChannel.IN_APP
    is_active: bool = True
    variables: list[str] = field(default_factory=list)
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


__all__ = ["NotificationTemplate"]
