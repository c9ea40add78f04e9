"""Use case for moving due notifications into delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import NotificationChannel
from notification_engine.domain.exceptions import NotFoundError
from notification_engine.infrastructure.repositories import NotificationRepository
from notification_engine.utils import now_in_app_timezone

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import ChannelDispatcher, RetryQueueEngine

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    found: int = 0
    dispatched: int = 0
    enqueued: int = 0


async def sweep_due_notifications(
    session: AsyncSession,
    *,
    queue: "RetryQueueEngine",
    dispatcher: "ChannelDispatcher",
    batch_size: int = 100,
    now: datetime | None = None,
) -> SweepResult:
    """Dispatch due in-app notifications directly and queue the rest.

    Every row is claimed before it is handed on, so overlapping sweeps and
    queue workers never deliver the same notification twice.
    """

    now = now or now_in_app_timezone()
    repository = NotificationRepository(session)
    stale_before = now - queue.lock_timeout
    due = await repository.find_due_for_dispatch(
        now=now, stale_before=stale_before, limit=batch_size
    )
    result = SweepResult(found=len(due))
    if not due:
        return result

    in_app = [n for n in due if n.channel is NotificationChannel.IN_APP]
    queued = [n for n in due if n.channel is not NotificationChannel.IN_APP]

    result.enqueued = len(await queue.enqueue_bulk(queued))

    for notification in in_app:
        token = str(uuid4())
        claimed = await repository.claim(
            [notification.id], token=token, now=now, stale_before=stale_before
        )
        if not claimed:
            continue
        notification.lock_token = token
        try:
            await dispatcher.dispatch(notification)
        except NotFoundError:
            logger.info("Notification %s was deleted before the sweep delivered it", notification.id)
            continue
        except Exception:
            logger.exception("Sweep could not deliver notification %s", notification.id)
            await repository.release([notification.id], token=token)
            continue
        result.dispatched += 1

    logger.info(
        "Sweep found %s due notifications: %s dispatched, %s enqueued",
        result.found,
        result.dispatched,
        result.enqueued,
    )
    return result
