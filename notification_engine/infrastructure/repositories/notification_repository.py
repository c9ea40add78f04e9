"""Persistence helpers for notification entities."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import (
    UNREAD_STATUSES,
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from notification_engine.domain.exceptions import NotFoundError, OwnershipError
from notification_engine.infrastructure.models import NotificationModel
from notification_engine.utils import (
    ensure_app_naive_datetime,
    ensure_app_timezone,
    now_in_app_timezone,
)

logger = logging.getLogger(__name__)

_UNREAD_VALUES = [status.value for status in UNREAD_STATUSES]


class NotificationRepository:
    """Provide CRUD and time-window queries for :class:`Notification` objects."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, notification_id: str) -> Notification | None:
        model = await self.session.get(NotificationModel, notification_id)
        return self._to_entity(model) if model is not None else None

    async def find_owned(self, notification_id: str, recipient_id: str) -> Notification:
        """Return the notification if it exists and belongs to ``recipient_id``."""

        model = await self.session.get(NotificationModel, notification_id)
        if model is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if model.recipient_id != recipient_id:
            raise OwnershipError(
                f"Notification {notification_id} does not belong to the caller"
            )
        return self._to_entity(model)

    async def list_for_recipient(
        self,
        recipient_id: str,
        *,
        limit: int | None = 20,
        offset: int = 0,
    ) -> Sequence[Notification]:
        query = (
            select(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.scalars(query)
        return [self._to_entity(model) for model in result.all()]

    async def list_unread_for_recipient(
        self, recipient_id: str, *, limit: int | None = None
    ) -> Sequence[Notification]:
        query = (
            select(NotificationModel)
            .where(
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.status.in_(_UNREAD_VALUES),
                NotificationModel.read_at.is_(None),
            )
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.scalars(query)
        return [self._to_entity(model) for model in result.all()]

    async def count_unread(self, recipient_id: str) -> int:
        query = select(func.count(NotificationModel.id)).where(
            NotificationModel.recipient_id == recipient_id,
            NotificationModel.status.in_(_UNREAD_VALUES),
            NotificationModel.read_at.is_(None),
        )
        return int(await self.session.scalar(query) or 0)

    async def count_by_channel(self, recipient_id: str) -> dict[str, int]:
        query = (
            select(NotificationModel.channel, func.count(NotificationModel.id))
            .where(NotificationModel.recipient_id == recipient_id)
            .group_by(NotificationModel.channel)
        )
        result = await self.session.execute(query)
        return {channel: int(count) for channel, count in result.all()}

    async def exists_since(
        self, *, recipient_id: str, event_type: str, since: datetime
    ) -> bool:
        """Return whether ``recipient_id`` got an ``event_type`` notification after ``since``."""

        query = (
            select(NotificationModel.id)
            .where(
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.event_type == event_type,
                NotificationModel.created_at >= ensure_app_naive_datetime(since),
            )
            .limit(1)
        )
        return (await self.session.scalar(query)) is not None

    async def create(self, notification: Notification) -> Notification:
        model = NotificationModel()
        self._apply_entity_to_model(model, notification, include_creation_fields=True)
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def create_many(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Persist every notification in a single transaction."""

        models: list[NotificationModel] = []
        for notification in notifications:
            model = NotificationModel()
            self._apply_entity_to_model(model, notification, include_creation_fields=True)
            models.append(model)
        self.session.add_all(models)
        await self.session.commit()
        return [self._to_entity(model) for model in models]

    async def update(self, notification: Notification) -> Notification:
        if notification.id is None:
            raise ValueError("Notification id is required for updates")
        model = await self.session.get(NotificationModel, notification.id)
        if model is None:
            raise NotFoundError(f"Notification {notification.id} not found")
        self._apply_entity_to_model(model, notification, include_creation_fields=False)
        await self.session.commit()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def mark_all_read(self, recipient_id: str, *, read_at: datetime | None = None) -> int:
        timestamp = ensure_app_naive_datetime(read_at or now_in_app_timezone())
        result = await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.status.in_(_UNREAD_VALUES),
                NotificationModel.read_at.is_(None),
            )
            .values(
                status=NotificationStatus.READ.value,
                read_at=timestamp,
                updated_at=timestamp,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return int(result.rowcount or 0)

    async def delete(self, notification_id: str) -> bool:
        result = await self.session.execute(
            delete(NotificationModel).where(NotificationModel.id == notification_id)
        )
        await self.session.commit()
        return bool(result.rowcount)

    async def find_due_for_dispatch(
        self,
        *,
        now: datetime,
        stale_before: datetime,
        limit: int = 100,
    ) -> Sequence[Notification]:
        """Return PENDING notifications whose schedule has arrived and nobody holds."""

        naive_now = ensure_app_naive_datetime(now)
        query = (
            select(NotificationModel)
            .where(
                NotificationModel.status == NotificationStatus.PENDING.value,
                or_(
                    NotificationModel.scheduled_at.is_(None),
                    NotificationModel.scheduled_at <= naive_now,
                ),
                self._claimable_clause(stale_before),
            )
            .order_by(NotificationModel.created_at.asc(), NotificationModel.id.asc())
            .limit(limit)
        )
        result = await self.session.scalars(query)
        return [self._to_entity(model) for model in result.all()]

    async def claim(
        self,
        notification_ids: Sequence[str],
        *,
        token: str,
        now: datetime,
        stale_before: datetime,
    ) -> list[str]:
        """Atomically write ``token`` on every unclaimed PENDING row in ``notification_ids``.

        Returns the identifiers that now carry ``token``; rows held by another
        live claim are left untouched.
        """

        if not notification_ids:
            return []
        await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id.in_(list(notification_ids)),
                NotificationModel.status == NotificationStatus.PENDING.value,
                self._claimable_clause(stale_before),
            )
            .values(lock_token=token, locked_at=ensure_app_naive_datetime(now))
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        claimed = await self.session.scalars(
            select(NotificationModel.id).where(
                NotificationModel.id.in_(list(notification_ids)),
                NotificationModel.lock_token == token,
            )
        )
        return list(claimed.all())

    async def release(self, notification_ids: Sequence[str], *, token: str) -> None:
        if not notification_ids:
            return
        await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id.in_(list(notification_ids)),
                NotificationModel.lock_token == token,
            )
            .values(lock_token=None, locked_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    @staticmethod
    def _claimable_clause(stale_before: datetime):
        return or_(
            NotificationModel.lock_token.is_(None),
            NotificationModel.locked_at.is_(None),
            NotificationModel.locked_at < ensure_app_naive_datetime(stale_before),
        )

    @staticmethod
    def _apply_entity_to_model(
        model: NotificationModel,
        notification: Notification,
        *,
        include_creation_fields: bool,
    ) -> None:
        now = ensure_app_naive_datetime(now_in_app_timezone())
        if include_creation_fields:
            if notification.id is not None:
                model.id = notification.id
            model.created_at = ensure_app_naive_datetime(notification.created_at) or now
        model.recipient_id = notification.recipient_id
        model.channel = NotificationChannel(notification.channel).value
        model.event_type = notification.event_type
        model.title = notification.title
        model.message = notification.message
        model.payload = _serialize_payload(notification.payload)
        model.priority = NotificationPriority(notification.priority).value
        model.status = NotificationStatus(notification.status).value
        model.scheduled_at = ensure_app_naive_datetime(notification.scheduled_at)
        model.sent_at = ensure_app_naive_datetime(notification.sent_at)
        model.read_at = ensure_app_naive_datetime(notification.read_at)
        model.error_message = notification.error_message
        model.retry_count = notification.retry_count
        model.max_retries = notification.max_retries
        model.lock_token = notification.lock_token
        model.locked_at = ensure_app_naive_datetime(notification.locked_at)
        model.updated_at = now

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            channel=NotificationChannel(model.channel),
            title=model.title,
            message=model.message,
            payload=_deserialize_payload(model.payload),
            priority=NotificationPriority(model.priority),
            status=NotificationStatus(model.status),
            event_type=model.event_type,
            scheduled_at=ensure_app_timezone(model.scheduled_at),
            sent_at=ensure_app_timezone(model.sent_at),
            read_at=ensure_app_timezone(model.read_at),
            error_message=model.error_message,
            retry_count=model.retry_count or 0,
            max_retries=model.max_retries,
            created_at=ensure_app_timezone(model.created_at),
            updated_at=ensure_app_timezone(model.updated_at),
            lock_token=model.lock_token,
            locked_at=ensure_app_timezone(model.locked_at),
        )


def _serialize_payload(payload: dict[str, Any] | None) -> str | None:
    if not payload:
        return None
    return json.dumps(payload)


def _deserialize_payload(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable notification payload")
        return {}
    return payload if isinstance(payload, dict) else {"value": payload}


__all__ = ["NotificationRepository"]
