"""Clock and timezone helpers shared by the store, the queues and the cron loop.

Every timestamp the engine handles is aware and expressed in the configured
application timezone. The database columns hold the same wall-clock value
without ``tzinfo``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notification_engine.config import get_settings

_FIXED_OFFSET = re.compile(
    r"^(?:UTC|GMT)(?P<sign>[+-])(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$",
    re.IGNORECASE,
)


def _fixed_offset(name: str) -> tzinfo | None:
    match = _FIXED_OFFSET.match(name)
    if match is None:
        return None
    offset = timedelta(hours=int(match["hours"]), minutes=int(match["minutes"] or 0))
    return timezone(-offset if match["sign"] == "-" else offset)


@lru_cache(maxsize=1)
def get_app_timezone() -> tzinfo:
    """Resolve ``APP_TIMEZONE`` once.

    IANA names and fixed offsets such as ``GMT+02:00`` are accepted. Unknown
    names fall back to UTC.
    """

    name = (get_settings().app_timezone or "").strip() or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return _fixed_offset(name) or timezone.utc


def now_in_app_timezone() -> datetime:
    return datetime.now(get_app_timezone())


def now_in_app_naive_datetime() -> datetime:
    """Current wall-clock time in the app timezone, as stored in the database."""

    return now_in_app_timezone().replace(tzinfo=None)


def ensure_app_timezone(value: datetime | None) -> datetime | None:
    """Attach the app timezone to naive values and convert aware ones."""

    if value is None:
        return None
    app_tz = get_app_timezone()
    return value.replace(tzinfo=app_tz) if value.tzinfo is None else value.astimezone(app_tz)


def ensure_app_naive_datetime(value: datetime | None) -> datetime | None:
    """Inverse of :func:`ensure_app_timezone`, used when writing columns."""

    if value is None:
        return None
    return ensure_app_timezone(value).replace(tzinfo=None)


def parse_datetime(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp, ``Z`` suffix included.

    Naive input is read as app-local time. Raises ``ValueError`` on garbage.
    """

    if not isinstance(value, datetime):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    return ensure_app_timezone(value)
