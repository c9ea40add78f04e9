"""Unit tests for notification request validation and the status table."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from notification_engine.application.use_cases.notifications.validators import (
    MAX_BULK_RECIPIENTS,
    allowed_transitions,
    ensure_transition,
    is_valid_transition,
    sanitize_text,
    validate_bulk_request,
    validate_channel,
    validate_max_retries,
    validate_notification_request,
    validate_payload,
    validate_priority,
    validate_recipient_id,
    validate_scheduled_at,
)
from notification_engine.domain.entities import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from notification_engine.domain.exceptions import (
    InvalidTransitionError,
    NotificationValidationError,
    PayloadSecurityError,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _request(**overrides):
    data = {
        "recipient_id": str(uuid4()),
        "title": "Welcome",
        "message": "Your course starts tomorrow",
    }
    data.update(overrides)
    return data


def test_sanitize_text_strips_tags_and_unsafe_characters() -> None:
    assert sanitize_text("  <b>Hello</b> <script>x</script>world & 'friends'  ") == (
        "Hello xworld  friends"
    )


def test_request_defaults() -> None:
    request = validate_notification_request(_request(), now=NOW)

    assert request.channel is NotificationChannel.IN_APP
    assert request.priority is NotificationPriority.MEDIUM
    assert request.max_retries == 3
    assert request.payload == {}
    assert request.scheduled_at is None


def test_recipient_id_is_lowercased() -> None:
    recipient = str(uuid4()).upper()

    assert validate_recipient_id(recipient) == recipient.lower()


@pytest.mark.parametrize("value", ["not-a-uuid", "", None, 42])
def test_invalid_recipient_id_is_rejected(value) -> None:
    with pytest.raises(NotificationValidationError):
        validate_recipient_id(value)


def test_title_that_sanitizes_to_empty_is_rejected() -> None:
    with pytest.raises(NotificationValidationError) as exc_info:
        validate_notification_request(_request(title="<b></b>"), now=NOW)

    assert exc_info.value.field == "title"


def test_title_and_message_length_limits() -> None:
    validate_notification_request(_request(title="t" * 255, message="m" * 1000), now=NOW)

    with pytest.raises(NotificationValidationError):
        validate_notification_request(_request(title="t" * 256), now=NOW)
    with pytest.raises(NotificationValidationError):
        validate_notification_request(_request(message="m" * 1001), now=NOW)


def test_channel_and_priority_accept_names_and_values() -> None:
    assert validate_channel("EMAIL") is NotificationChannel.EMAIL
    assert validate_channel("in_app") is NotificationChannel.IN_APP
    assert validate_priority("Urgent") is NotificationPriority.URGENT

    with pytest.raises(NotificationValidationError):
        validate_channel("fax")
    with pytest.raises(NotificationValidationError):
        validate_priority("critical")


def test_max_retries_bounds() -> None:
    assert validate_max_retries(None) == 3
    assert validate_max_retries(10) == 10

    for value in (0, 11, True, "3"):
        with pytest.raises(NotificationValidationError):
            validate_max_retries(value)


def test_payload_size_limit() -> None:
    validate_payload({"blob": "x" * 4900})

    with pytest.raises(NotificationValidationError):
        validate_payload({"blob": "x" * 5000})


@pytest.mark.parametrize(
    "payload",
    [
        {"html": "<script>alert(1)</script>"},
        {"link": "JavaScript:void(0)"},
        {"attr": "onclick = run()"},
        {"img": "data:image/png;base64,AAAA"},
        {"legacy": "vbscript:msgbox"},
    ],
)
def test_dangerous_payload_is_rejected(payload) -> None:
    with pytest.raises(PayloadSecurityError):
        validate_payload(payload)


def test_scheduled_at_window() -> None:
    assert validate_scheduled_at("2026-03-10T11:57:00Z", now=NOW) == NOW - timedelta(minutes=3)
    assert validate_scheduled_at(NOW + timedelta(days=365), now=NOW) == NOW + timedelta(days=365)

    with pytest.raises(NotificationValidationError):
        validate_scheduled_at(NOW - timedelta(minutes=6), now=NOW)
    with pytest.raises(NotificationValidationError):
        validate_scheduled_at(NOW + timedelta(days=366), now=NOW)
    with pytest.raises(NotificationValidationError):
        validate_scheduled_at("next tuesday", now=NOW)


def test_bulk_request_limits() -> None:
    recipients = [str(uuid4()) for _ in range(MAX_BULK_RECIPIENTS)]
    request = validate_bulk_request(
        {"recipient_ids": recipients, "title": "Hi", "message": "There"}, now=NOW
    )
    assert len(request.recipient_ids) == MAX_BULK_RECIPIENTS

    with pytest.raises(NotificationValidationError):
        validate_bulk_request(
            {"recipient_ids": recipients + [str(uuid4())], "title": "Hi", "message": "There"},
            now=NOW,
        )
    with pytest.raises(NotificationValidationError):
        validate_bulk_request({"recipient_ids": [], "title": "Hi", "message": "There"}, now=NOW)


def test_one_malformed_recipient_rejects_the_whole_batch() -> None:
    with pytest.raises(NotificationValidationError) as exc_info:
        validate_bulk_request(
            {"recipient_ids": [str(uuid4()), "bogus"], "title": "Hi", "message": "There"},
            now=NOW,
        )

    assert "recipient_ids[1]" in str(exc_info.value)


def test_transition_table() -> None:
    assert is_valid_transition(NotificationStatus.PENDING, NotificationStatus.SENT)
    assert is_valid_transition(NotificationStatus.FAILED, NotificationStatus.PENDING)
    assert is_valid_transition(NotificationStatus.DELIVERED, NotificationStatus.READ)
    assert not is_valid_transition(NotificationStatus.PENDING, NotificationStatus.READ)
    assert allowed_transitions(NotificationStatus.READ) == frozenset()

    with pytest.raises(InvalidTransitionError):
        ensure_transition(NotificationStatus.READ, NotificationStatus.SENT)
