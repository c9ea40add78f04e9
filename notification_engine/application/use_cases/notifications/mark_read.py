"""Use cases for marking notifications as read."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import Notification, NotificationStatus
from notification_engine.infrastructure.repositories import NotificationRepository
from notification_engine.utils import now_in_app_timezone

from .validators import ensure_transition

if TYPE_CHECKING:
    from notification_engine.infrastructure.notifications import LivePushGateway


async def mark_notification_read(
    session: AsyncSession,
    notification_id: str,
    recipient_id: str,
    *,
    gateway: "LivePushGateway | None" = None,
    now: datetime | None = None,
) -> Notification:
    """Mark one notification as read.

    Reading an already read notification returns it unchanged. Raises
    ``InvalidTransitionError`` for records that were never delivered.
    """

    repository = NotificationRepository(session)
    notification = await repository.find_owned(notification_id, recipient_id)
    if notification.status is NotificationStatus.READ:
        return notification

    ensure_transition(notification.status, NotificationStatus.READ)
    notification.status = NotificationStatus.READ
    notification.read_at = now or now_in_app_timezone()
    saved = await repository.update(notification)
    if gateway is not None:
        await gateway.refresh_unread_count(recipient_id)
    return saved


async def mark_all_notifications_read(
    session: AsyncSession,
    recipient_id: str,
    *,
    gateway: "LivePushGateway | None" = None,
) -> int:
    """Mark every unread notification of ``recipient_id`` as read and return the count."""

    updated = await NotificationRepository(session).mark_all_read(recipient_id)
    if gateway is not None and updated:
        await gateway.refresh_unread_count(recipient_id)
    return updated
