"""Sanitization and bounds checking for inbound notification requests.

Everything in this module is pure: no database access and no transports.
Callers pass the current time explicitly when they need deterministic results.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from notification_engine.domain.entities import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from notification_engine.domain.exceptions import (
    InvalidTransitionError,
    NotificationValidationError,
    PayloadSecurityError,
)
from notification_engine.utils import now_in_app_timezone, parse_datetime

TITLE_MAX_LENGTH = 255
MESSAGE_MAX_LENGTH = 1000
PAYLOAD_MAX_LENGTH = 5000
DEFAULT_MAX_RETRIES = 3
MAX_RETRIES_RANGE = (1, 10)
MAX_BULK_RECIPIENTS = 1000
SCHEDULE_MAX_AHEAD = timedelta(days=365)
SCHEDULE_PAST_TOLERANCE = timedelta(minutes=5)

_TAG_PATTERN = re.compile(r"<[^>]*>")
_UNSAFE_CHARACTERS = re.compile(r"[<>'\"&]")
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_DANGEROUS_PAYLOAD_PATTERNS = (
    re.compile(r"<script"),
    re.compile(r"javascript:"),
    re.compile(r"on\w+\s*="),
    re.compile(r"data:"),
    re.compile(r"vbscript:"),
)

_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset(
        {NotificationStatus.SENT, NotificationStatus.FAILED}
    ),
    NotificationStatus.SENT: frozenset(
        {NotificationStatus.DELIVERED, NotificationStatus.FAILED, NotificationStatus.READ}
    ),
    NotificationStatus.DELIVERED: frozenset(
        {NotificationStatus.READ, NotificationStatus.FAILED}
    ),
    NotificationStatus.FAILED: frozenset(
        {NotificationStatus.PENDING, NotificationStatus.SENT}
    ),
    NotificationStatus.READ: frozenset(),
}

_EnumT = TypeVar("_EnumT", bound=Enum)


@dataclass
class NotificationRequest:
    """Sanitized fields shared by single and bulk creation requests."""

    title: str
    message: str
    channel: NotificationChannel = NotificationChannel.IN_APP
    priority: NotificationPriority = NotificationPriority.MEDIUM
    payload: dict[str, Any] = field(default_factory=dict)
    scheduled_at: datetime | None = None
    max_retries: int = DEFAULT_MAX_RETRIES
    event_type: str | None = None

    def build(self, recipient_id: str) -> Notification:
        """Return a new, unsaved notification for ``recipient_id``."""

        notification = Notification(
            id=None,
            recipient_id=recipient_id,
            channel=self.channel,
            title=self.title,
            message=self.message,
            payload=dict(self.payload),
            priority=self.priority,
            scheduled_at=self.scheduled_at,
            max_retries=self.max_retries,
        )
        if self.event_type:
            notification.event_type = self.event_type
        return notification


@dataclass
class SingleNotificationRequest(NotificationRequest):
    recipient_id: str = ""


@dataclass
class BulkNotificationRequest(NotificationRequest):
    recipient_ids: list[str] = field(default_factory=list)


def sanitize_text(value: str) -> str:
    """Strip markup-like tags and the characters ``<>'"&``."""

    without_tags = _TAG_PATTERN.sub("", value)
    return _UNSAFE_CHARACTERS.sub("", without_tags).strip()


def _validate_text(value: Any, *, field_name: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise NotificationValidationError(f"{field_name} is required", field=field_name)
    sanitized = sanitize_text(value)
    if not sanitized:
        raise NotificationValidationError(
            f"{field_name} cannot be empty", field=field_name
        )
    if len(sanitized) > max_length:
        raise NotificationValidationError(
            f"{field_name} cannot exceed {max_length} characters", field=field_name
        )
    return sanitized


def validate_title(value: Any) -> str:
    return _validate_text(value, field_name="title", max_length=TITLE_MAX_LENGTH)


def validate_message(value: Any) -> str:
    return _validate_text(value, field_name="message", max_length=MESSAGE_MAX_LENGTH)


def _coerce_enum(enum_type: type[_EnumT], value: Any, *, field_name: str) -> _EnumT:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        normalized = value.strip()
        for member in enum_type:
            if normalized.lower() == str(member.value).lower() or normalized.upper() == member.name:
                return member
    allowed = ", ".join(member.name for member in enum_type)
    raise NotificationValidationError(
        f"{field_name} must be one of {allowed}", field=field_name
    )


def validate_channel(value: Any) -> NotificationChannel:
    if value is None:
        return NotificationChannel.IN_APP
    return _coerce_enum(NotificationChannel, value, field_name="channel")


def validate_priority(value: Any) -> NotificationPriority:
    if value is None:
        return NotificationPriority.MEDIUM
    return _coerce_enum(NotificationPriority, value, field_name="priority")


def validate_max_retries(value: Any) -> int:
    if value is None:
        return DEFAULT_MAX_RETRIES
    if isinstance(value, bool) or not isinstance(value, int):
        raise NotificationValidationError(
            "max_retries must be an integer", field="max_retries"
        )
    low, high = MAX_RETRIES_RANGE
    if not low <= value <= high:
        raise NotificationValidationError(
            f"max_retries must be between {low} and {high}", field="max_retries"
        )
    return value


def validate_payload(value: Any) -> dict[str, Any]:
    """Bound-check a structured payload and reject dangerous content."""

    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise NotificationValidationError("payload must be an object", field="payload")
    try:
        serialized = json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise NotificationValidationError(
            "payload must be JSON serializable", field="payload"
        ) from exc
    if len(serialized) > PAYLOAD_MAX_LENGTH:
        raise NotificationValidationError(
            f"payload cannot exceed {PAYLOAD_MAX_LENGTH} characters", field="payload"
        )
    lowered = serialized.lower()
    for pattern in _DANGEROUS_PAYLOAD_PATTERNS:
        if pattern.search(lowered):
            raise PayloadSecurityError(
                "payload contains potentially dangerous content", field="payload"
            )
    return dict(value)


def validate_scheduled_at(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Return the parsed schedule time if it lies within the accepted window."""

    if value is None or value == "":
        return None
    if not isinstance(value, (str, datetime)):
        raise NotificationValidationError(
            "scheduled_at must be a timestamp", field="scheduled_at"
        )
    try:
        scheduled_at = parse_datetime(value)
    except ValueError as exc:
        raise NotificationValidationError(
            "scheduled_at must be a valid timestamp", field="scheduled_at"
        ) from exc

    reference = now or now_in_app_timezone()
    if scheduled_at > reference + SCHEDULE_MAX_AHEAD:
        raise NotificationValidationError(
            "scheduled_at cannot be more than one year in the future",
            field="scheduled_at",
        )
    if scheduled_at < reference - SCHEDULE_PAST_TOLERANCE:
        raise NotificationValidationError(
            "scheduled_at cannot be more than five minutes in the past",
            field="scheduled_at",
        )
    return scheduled_at


def validate_recipient_id(value: Any) -> str:
    if not isinstance(value, str) or not _UUID_PATTERN.match(value.strip()):
        raise NotificationValidationError(
            "recipient id must be a valid UUID", field="recipient_id"
        )
    return value.strip().lower()


def validate_recipient_ids(values: Any) -> list[str]:
    """Validate a bulk recipient list; a single malformed entry rejects the batch."""

    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise NotificationValidationError(
            "recipient_ids must be a list", field="recipient_ids"
        )
    if not values:
        raise NotificationValidationError(
            "recipient_ids cannot be empty", field="recipient_ids"
        )
    if len(values) > MAX_BULK_RECIPIENTS:
        raise NotificationValidationError(
            f"recipient_ids cannot contain more than {MAX_BULK_RECIPIENTS} entries",
            field="recipient_ids",
        )
    recipients: list[str] = []
    for index, value in enumerate(values):
        try:
            recipients.append(validate_recipient_id(value))
        except NotificationValidationError as exc:
            raise NotificationValidationError(
                f"recipient_ids[{index}] must be a valid UUID", field="recipient_ids"
            ) from exc
    return recipients


def _validate_common(data: Mapping[str, Any], *, now: datetime | None) -> dict[str, Any]:
    event_type = data.get("event_type")
    if event_type is not None and (not isinstance(event_type, str) or len(event_type) > 50):
        raise NotificationValidationError(
            "event_type must be a string of at most 50 characters", field="event_type"
        )
    return {
        "title": validate_title(data.get("title")),
        "message": validate_message(data.get("message")),
        "channel": validate_channel(data.get("channel")),
        "priority": validate_priority(data.get("priority")),
        "payload": validate_payload(data.get("payload")),
        "scheduled_at": validate_scheduled_at(data.get("scheduled_at"), now=now),
        "max_retries": validate_max_retries(data.get("max_retries")),
        "event_type": event_type,
    }


def validate_notification_request(
    data: Mapping[str, Any], *, now: datetime | None = None
) -> SingleNotificationRequest:
    """Return a sanitized single-recipient request or raise a validation error."""

    fields = _validate_common(data, now=now)
    return SingleNotificationRequest(
        recipient_id=validate_recipient_id(data.get("recipient_id")),
        **fields,
    )


def validate_bulk_request(
    data: Mapping[str, Any], *, now: datetime | None = None
) -> BulkNotificationRequest:
    """Return a sanitized bulk request or raise a validation error."""

    recipient_ids = validate_recipient_ids(data.get("recipient_ids"))
    fields = _validate_common(data, now=now)
    return BulkNotificationRequest(recipient_ids=recipient_ids, **fields)


def is_valid_transition(
    current: NotificationStatus, proposed: NotificationStatus
) -> bool:
    """Return whether moving from ``current`` to ``proposed`` is allowed."""

    return proposed in _TRANSITIONS.get(current, frozenset())


def ensure_transition(
    current: NotificationStatus, proposed: NotificationStatus
) -> None:
    if not is_valid_transition(current, proposed):
        raise InvalidTransitionError(current.value, proposed.value)


def allowed_transitions(current: NotificationStatus) -> frozenset[NotificationStatus]:
    return _TRANSITIONS.get(current, frozenset())


__all__ = [
    "BulkNotificationRequest",
    "MAX_BULK_RECIPIENTS",
    "NotificationRequest",
    "SingleNotificationRequest",
    "allowed_transitions",
    "ensure_transition",
    "is_valid_transition",
    "sanitize_text",
    "validate_bulk_request",
    "validate_channel",
    "validate_max_retries",
    "validate_message",
    "validate_notification_request",
    "validate_payload",
    "validate_priority",
    "validate_recipient_id",
    "validate_recipient_ids",
    "validate_scheduled_at",
    "validate_title",
]
