"""Channel dispatcher: send a notification through the transport of its channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from notification_engine.application.use_cases.notifications.validators import (
    ensure_transition,
)
from notification_engine.domain.entities import (
    Notification,
    NotificationChannel,
    NotificationStatus,
)
from notification_engine.domain.exceptions import TransportError, UnsupportedChannelError
from notification_engine.infrastructure.database import SessionFactory
from notification_engine.infrastructure.email import render_notification_html
from notification_engine.infrastructure.notifications import LivePushGateway
from notification_engine.infrastructure.push import DeviceTokenRegistry
from notification_engine.infrastructure.repositories import (
    NotificationRepository,
    UserRepository,
)
from notification_engine.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


class EmailTransport(Protocol):
    async def send(self, *, to: str, subject: str, html: str, text: str) -> bool: ...


class PushTransport(Protocol):
    async def send_to_device(
        self,
        *,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool: ...


@dataclass
class DispatchOutcome:
    notification: Notification
    deliveries: int = 1


class ChannelDispatcher:
    """Deliver notifications and record the successful outcome.

    Failures are raised as :class:`TransportError` without touching the record;
    retry bookkeeping belongs to the queue that invoked the dispatch.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        email_transport: EmailTransport,
        push_transport: PushTransport,
        device_registry: DeviceTokenRegistry,
        gateway: LivePushGateway,
    ) -> None:
        self._session_factory = session_factory
        self._email_transport = email_transport
        self._push_transport = push_transport
        self._device_registry = device_registry
        self._gateway = gateway

    async def dispatch(self, notification: Notification) -> DispatchOutcome:
        channel = NotificationChannel(notification.channel)
        deliveries = 1
        if channel is NotificationChannel.SMS:
            raise UnsupportedChannelError("SMS delivery is not supported")
        if channel is NotificationChannel.EMAIL:
            await self._send_email(notification)
        elif channel is NotificationChannel.PUSH:
            deliveries = await self._send_push(notification)

        saved = await self._mark_delivered(notification)
        if channel is NotificationChannel.IN_APP:
            await self._gateway.send_to_user(saved.recipient_id, saved)
        else:
            await self._gateway.refresh_unread_count(saved.recipient_id)
        logger.info(
            "Delivered %s notification %s to %s", channel.value, saved.id, saved.recipient_id
        )
        return DispatchOutcome(notification=saved, deliveries=deliveries)

    async def notify_terminal_failure(self, notification: Notification) -> None:
        await self._gateway.refresh_unread_count(notification.recipient_id)

    async def _send_email(self, notification: Notification) -> None:
        async with self._session_factory() as session:
            address = await UserRepository(session).get_email(notification.recipient_id)
        if not address:
            raise TransportError("Recipient has no email address")
        sent = await self._email_transport.send(
            to=address,
            subject=notification.title,
            html=render_notification_html(notification.message),
            text=notification.message,
        )
        if not sent:
            raise TransportError("Email transport did not accept the message")

    async def _send_push(self, notification: Notification) -> int:
        devices = self._device_registry.devices_for(notification.recipient_id)
        if not devices:
            raise TransportError("Recipient has no registered devices")

        data = {"notification_id": notification.id, **(notification.payload or {})}
        delivered = 0
        for device in devices:
            try:
                sent = await self._push_transport.send_to_device(
                    device_token=device.token,
                    title=notification.title,
                    body=notification.message,
                    data=data,
                )
            except TransportError as exc:
                logger.warning(
                    "Push to %s device of %s failed: %s",
                    device.platform,
                    notification.recipient_id,
                    exc,
                )
                continue
            if sent:
                delivered += 1
        if not delivered:
            raise TransportError(f"All {len(devices)} device deliveries failed")
        return delivered

    async def _mark_delivered(self, notification: Notification) -> Notification:
        now = now_in_app_timezone()
        if notification.status is not NotificationStatus.SENT:
            ensure_transition(notification.status, NotificationStatus.SENT)
            notification.status = NotificationStatus.SENT
            notification.sent_at = now
        ensure_transition(notification.status, NotificationStatus.DELIVERED)
        notification.status = NotificationStatus.DELIVERED
        notification.sent_at = notification.sent_at or now
        notification.lock_token = None
        notification.locked_at = None
        async with self._session_factory() as session:
            return await NotificationRepository(session).update(notification)


__all__ = ["ChannelDispatcher", "DispatchOutcome", "EmailTransport", "PushTransport"]
