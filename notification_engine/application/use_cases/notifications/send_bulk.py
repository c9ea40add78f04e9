"""Use case for sending the same notification to many recipients."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import Notification
from notification_engine.infrastructure.repositories import NotificationRepository
from notification_engine.utils import now_in_app_timezone

from .create_notification import prepare_for_delivery, route_new_notifications
from .validators import validate_bulk_request

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import RetryQueueEngine
    from notification_engine.infrastructure.notifications import LivePushGateway

logger = logging.getLogger(__name__)


@dataclass
class BulkFailure:
    id: str
    error: str


@dataclass
class BulkSendResult:
    successful: list[Notification] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


async def _persist_individually(
    repository: NotificationRepository, notifications: list[Notification]
) -> BulkSendResult:
    result = BulkSendResult()
    for notification in notifications:
        try:
            result.successful.append(await repository.create(notification))
        except SQLAlchemyError as exc:
            await repository.session.rollback()
            logger.warning(
                "Could not create notification for %s: %s", notification.recipient_id, exc
            )
            result.failed.append(
                BulkFailure(id=notification.recipient_id, error="Could not persist notification")
            )
    return result


async def send_bulk_notifications(
    session: AsyncSession,
    data: Mapping[str, Any],
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    now: datetime | None = None,
) -> BulkSendResult:
    """Create one notification per recipient.

    Input is validated for the whole batch up front. Rows are written in a
    single transaction; if that fails each recipient is retried on its own so
    the caller gets per-recipient outcomes.
    """

    now = now or now_in_app_timezone()
    request = validate_bulk_request(data, now=now)
    notifications = [
        prepare_for_delivery(request.build(recipient_id), now)
        for recipient_id in request.recipient_ids
    ]

    repository = NotificationRepository(session)
    try:
        result = BulkSendResult(successful=await repository.create_many(notifications))
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("Bulk insert failed, falling back to per-recipient writes: %s", exc)
        result = await _persist_individually(
            repository,
            [
                prepare_for_delivery(request.build(recipient_id), now)
                for recipient_id in request.recipient_ids
            ],
        )

    await route_new_notifications(result.successful, queue=queue, gateway=gateway, now=now)
    logger.info(
        "Bulk send finished: %s created, %s failed",
        len(result.successful),
        len(result.failed),
    )
    return result
