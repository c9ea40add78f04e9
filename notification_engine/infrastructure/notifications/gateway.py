"""Live push gateway: instant fan-out over open websocket connections."""

from __future__ import annotations

import logging
from typing import Any

from notification_engine.domain.entities import Notification
from notification_engine.infrastructure.database import SessionFactory
from notification_engine.infrastructure.repositories import NotificationRepository

from .manager import ConnectionHandle, LiveConnection, NotificationConnectionManager

logger = logging.getLogger(__name__)

POLICY_VIOLATION = 1008

EVENT_NEW_NOTIFICATION = "new_notification"
EVENT_UNREAD_COUNT = "unread_count"
EVENT_BROADCAST = "broadcast_notification"


def user_group(user_id: str) -> str:
    return f"user:{user_id}"


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Return the websocket payload representation for ``notification``."""

    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "channel": notification.channel.value,
        "event_type": notification.event_type,
        "title": notification.title,
        "message": notification.message,
        "payload": notification.payload or {},
        "priority": notification.priority.value,
        "status": notification.status.value,
        "created_at": notification.created_at.isoformat()
        if notification.created_at
        else None,
        "sent_at": notification.sent_at.isoformat() if notification.sent_at else None,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
    }


class LivePushGateway:
    """Track connected users and push notifications to them instantly.

    Delivery through the gateway is best effort: a user without a live
    connection is simply skipped, the durable record remains the source of truth.
    """

    def __init__(
        self,
        manager: NotificationConnectionManager,
        session_factory: SessionFactory,
    ) -> None:
        self.manager = manager
        self._session_factory = session_factory

    async def connect(
        self, websocket: LiveConnection, token: str | None
    ) -> ConnectionHandle | None:
        """Authenticate and register ``websocket``; closes it when the token is rejected."""

        try:
            user_id = self.manager.authenticate(token)
        except ValueError as exc:
            logger.info("Rejected live connection: %s", exc)
            await websocket.close(code=POLICY_VIOLATION)
            return None

        handle = await self.manager.connect(user_id, websocket)
        self.manager.join_group(handle, user_group(user_id))
        await self.send_unread_count(handle)
        logger.debug("User %s connected (%s)", user_id, handle.id)
        return handle

    def disconnect(self, handle: ConnectionHandle) -> None:
        self.manager.disconnect(handle)
        logger.debug("User %s disconnected (%s)", handle.user_id, handle.id)

    def is_connected(self, user_id: str) -> bool:
        return self.manager.is_connected(user_id)

    async def send_to_user(self, user_id: str, notification: Notification) -> bool:
        """Push ``notification`` and a refreshed unread count; no-op when offline."""

        if not self.manager.is_connected(user_id):
            return False
        await self.manager.broadcast(
            user_group(user_id), EVENT_NEW_NOTIFICATION, serialize_notification(notification)
        )
        await self.refresh_unread_count(user_id)
        return True

    async def refresh_unread_count(self, user_id: str) -> None:
        if not self.manager.is_connected(user_id):
            return
        count = await self._unread_count(user_id)
        await self.manager.broadcast(user_group(user_id), EVENT_UNREAD_COUNT, {"count": count})

    async def send_unread_count(self, handle: ConnectionHandle) -> int:
        count = await self._unread_count(handle.user_id)
        await self.manager.emit(handle, EVENT_UNREAD_COUNT, {"count": count})
        return count

    async def broadcast_to_all(self, announcement: dict[str, Any]) -> int:
        """Fan ``announcement`` out to every connected user."""

        delivered = await self.manager.broadcast_all(EVENT_BROADCAST, announcement)
        logger.info("Broadcast announcement delivered to %s connections", delivered)
        return delivered

    async def _unread_count(self, user_id: str) -> int:
        async with self._session_factory() as session:
            return await NotificationRepository(session).count_unread(user_id)


__all__ = [
    "EVENT_BROADCAST",
    "EVENT_NEW_NOTIFICATION",
    "EVENT_UNREAD_COUNT",
    "LivePushGateway",
    "serialize_notification",
    "user_group",
]
