"""Use case for notification statistics of a recipient."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import NotificationChannel
from notification_engine.infrastructure.repositories import NotificationRepository


@dataclass
class NotificationStats:
    total: int
    unread: int
    by_channel: dict[str, int] = field(default_factory=dict)


async def get_notification_stats(session: AsyncSession, recipient_id: str) -> NotificationStats:
    """Return totals with a count for every channel, including empty ones."""

    repository = NotificationRepository(session)
    counts = await repository.count_by_channel(recipient_id)
    by_channel = {channel.value: counts.get(channel.value, 0) for channel in NotificationChannel}
    return NotificationStats(
        total=sum(by_channel.values()),
        unread=await repository.count_unread(recipient_id),
        by_channel=by_channel,
    )
