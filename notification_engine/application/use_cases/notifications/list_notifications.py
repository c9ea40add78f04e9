"""Use cases for reading a recipient's notifications."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import Notification
from notification_engine.domain.exceptions import NotificationValidationError
from notification_engine.infrastructure.repositories import NotificationRepository

MAX_PAGE_SIZE = 100


async def list_my_notifications(
    session: AsyncSession, recipient_id: str, *, limit: int = 20, offset: int = 0
) -> Sequence[Notification]:
    """Return a page of notifications, newest first."""

    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise NotificationValidationError(
            f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit"
        )
    if offset < 0:
        raise NotificationValidationError("offset cannot be negative", field="offset")
    return await NotificationRepository(session).list_for_recipient(
        recipient_id, limit=limit, offset=offset
    )


async def list_unread_notifications(
    session: AsyncSession, recipient_id: str
) -> Sequence[Notification]:
    return await NotificationRepository(session).list_unread_for_recipient(recipient_id)
