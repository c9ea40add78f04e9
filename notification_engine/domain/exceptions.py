"""Errors raised by the notification engine."""

from __future__ import annotations


class NotificationValidationError(ValueError):
    """Malformed, oversized or out-of-range input; never retried."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class PayloadSecurityError(NotificationValidationError):
    """Payload matched a known dangerous pattern."""


class NotFoundError(LookupError):
    """Unknown identifier."""


class OwnershipError(NotFoundError):
    """The record exists but belongs to another recipient.

    Subclasses :class:`NotFoundError` so callers that only care about
    resolution can treat both the same way.
    """


class InvalidTransitionError(ValueError):
    """A status change not allowed by the transition table."""

    def __init__(self, current: str, proposed: str) -> None:
        super().__init__(f"Cannot move notification from {current} to {proposed}")
        self.current = current
        self.proposed = proposed


class TransportError(RuntimeError):
    """A channel transport failed to deliver a notification."""


class UnsupportedChannelError(TransportError):
    """The channel has no transport; retrying cannot help."""


class ExhaustedRetriesError(RuntimeError):
    """A notification ran out of delivery attempts."""

    def __init__(self, notification_id: str, attempts: int, last_error: str | None) -> None:
        super().__init__(
            f"Notification {notification_id} failed after {attempts} attempts: {last_error}"
        )
        self.notification_id = notification_id
        self.attempts = attempts
        self.last_error = last_error


class SchedulerRuleError(RuntimeError):
    """A single campaign rule or cron job failed."""

    def __init__(self, rule: str, cause: BaseException) -> None:
        super().__init__(f"Rule '{rule}' failed: {cause}")
        self.rule = rule
        self.cause = cause


__all__ = [
    "ExhaustedRetriesError",
    "InvalidTransitionError",
    "NotFoundError",
    "NotificationValidationError",
    "OwnershipError",
    "PayloadSecurityError",
    "SchedulerRuleError",
    "TransportError",
    "UnsupportedChannelError",
]
