"""Use case for sending notifications rendered from a stored template."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.exceptions import NotFoundError
from notification_engine.infrastructure.repositories import NotificationTemplateRepository

from .send_bulk import BulkSendResult, send_bulk_notifications
from .templates import render_template

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import RetryQueueEngine
    from notification_engine.infrastructure.notifications import LivePushGateway


async def send_from_template(
    session: AsyncSession,
    template_name: str,
    recipient_ids: Sequence[str],
    variables: Mapping[str, Any] | None = None,
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    priority: str | None = None,
    now: datetime | None = None,
) -> BulkSendResult:
    """Render the active template ``template_name`` and send it to every recipient.

    The variables also become the notification payload. The stored template is
    never modified.
    """

    template = await NotificationTemplateRepository(session).get_active_by_name(template_name)
    if template is None:
        raise NotFoundError(f"Template '{template_name}' not found")

    values = dict(variables or {})
    data: dict[str, Any] = {
        "recipient_ids": list(recipient_ids),
        "title": render_template(template.subject, values),
        "message": render_template(template.content, values),
        "channel": template.channel,
        "payload": values,
        "priority": priority,
        "event_type": f"template.{template.name}"[:50],
    }
    return await send_bulk_notifications(session, data, queue=queue, gateway=gateway, now=now)
