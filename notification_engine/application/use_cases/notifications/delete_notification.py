"""Use case for a recipient removing one of their notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.infrastructure.repositories import NotificationRepository

if TYPE_CHECKING:
    from notification_engine.infrastructure.notifications import LivePushGateway


async def delete_notification(
    session: AsyncSession,
    notification_id: str,
    recipient_id: str,
    *,
    gateway: "LivePushGateway | None" = None,
) -> None:
    """Delete the notification after checking it belongs to ``recipient_id``.

    Deleting a scheduled notification before it is swept cancels it.
    """

    repository = NotificationRepository(session)
    await repository.find_owned(notification_id, recipient_id)
    await repository.delete(notification_id)
    if gateway is not None:
        await gateway.refresh_unread_count(recipient_id)
