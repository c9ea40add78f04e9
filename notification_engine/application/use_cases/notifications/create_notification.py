"""Use case for creating a single notification."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import (
    Notification,
    NotificationChannel,
    NotificationStatus,
)
from notification_engine.infrastructure.repositories import NotificationRepository
from notification_engine.utils import now_in_app_timezone

from .validators import validate_notification_request

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import RetryQueueEngine
    from notification_engine.infrastructure.notifications import LivePushGateway

logger = logging.getLogger(__name__)


def is_due(notification: Notification, now: datetime) -> bool:
    return notification.scheduled_at is None or notification.scheduled_at <= now


def prepare_for_delivery(notification: Notification, now: datetime) -> Notification:
    """Set the initial status: in-app messages that are due are sent on creation."""

    notification.retry_count = 0
    notification.created_at = now
    if notification.channel is NotificationChannel.IN_APP and is_due(notification, now):
        notification.status = NotificationStatus.SENT
        notification.sent_at = now
    else:
        notification.status = NotificationStatus.PENDING
    return notification


async def route_new_notifications(
    notifications: Sequence[Notification],
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    now: datetime,
) -> None:
    """Push sent in-app notifications live and queue due channel deliveries.

    Future-scheduled rows stay PENDING until the sweep picks them up.
    """

    queued: list[Notification] = []
    for notification in notifications:
        if notification.status is NotificationStatus.SENT:
            await gateway.send_to_user(notification.recipient_id, notification)
        elif is_due(notification, now):
            queued.append(notification)
    if queued:
        await queue.enqueue_bulk(queued)


async def create_notification(
    session: AsyncSession,
    data: Mapping[str, Any],
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    now: datetime | None = None,
) -> Notification:
    """Validate, persist and route a single notification."""

    now = now or now_in_app_timezone()
    request = validate_notification_request(data, now=now)
    notification = prepare_for_delivery(request.build(request.recipient_id), now)
    saved = await NotificationRepository(session).create(notification)
    logger.info(
        "Created %s notification %s for %s (%s)",
        saved.channel.value,
        saved.id,
        saved.recipient_id,
        saved.status.value,
    )
    await route_new_notifications([saved], queue=queue, gateway=gateway, now=now)
    return saved
