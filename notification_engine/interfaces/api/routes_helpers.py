"""Helper utilities shared across API route handlers."""

from __future__ import annotations

from fastapi import HTTPException, status

from notification_engine.domain.entities import Notification, NotificationTemplate, QueueJob
from notification_engine.domain.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    NotificationValidationError,
)
from notification_engine.interfaces.api.schemas import (
    NotificationRead,
    QueueJobRead,
    TemplateRead,
)


def to_http_error(exc: Exception) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""

    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotificationValidationError):
        detail = {"message": str(exc), "field": exc.field} if exc.field else str(exc)
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def notification_to_schema(notification: Notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id or "",
        recipient_id=notification.recipient_id,
        channel=notification.channel.value,
        event_type=notification.event_type,
        title=notification.title,
        message=notification.message,
        payload=notification.payload or {},
        priority=notification.priority.value,
        status=notification.status.value,
        scheduled_at=notification.scheduled_at,
        sent_at=notification.sent_at,
        read_at=notification.read_at,
        error_message=notification.error_message,
        retry_count=notification.retry_count,
        max_retries=notification.max_retries,
        created_at=notification.created_at,
        updated_at=notification.updated_at,
    )


def template_to_schema(template: NotificationTemplate) -> TemplateRead:
    return TemplateRead(
        id=template.id or "",
        name=template.name,
        subject=template.subject,
        content=template.content,
        channel=template.channel.value,
        is_active=template.is_active,
        variables=list(template.variables),
        description=template.description,
        created_at=template.created_at,
    )


def job_to_schema(job: QueueJob) -> QueueJobRead:
    return QueueJobRead(
        id=job.id,
        notification_id=job.notification_id,
        channel=job.channel.value,
        priority=job.priority.value,
        state=job.state.value,
        attempt=job.attempt,
        max_attempts=job.max_attempts,
        next_delay_seconds=job.next_delay_seconds,
        error=job.error,
        created_at=job.created_at,
        finished_at=job.finished_at,
    )
