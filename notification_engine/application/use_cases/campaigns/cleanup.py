"""Use case for purging expired analytics and user activity rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.infrastructure.repositories import AnalyticsRepository
from notification_engine.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    analytics_events: int
    user_activities: int


async def purge_expired_activity(
    session: AsyncSession,
    *,
    analytics_retention_days: int = 365,
    activity_retention_days: int = 180,
    now: datetime | None = None,
) -> CleanupResult:
    """Delete rows older than their retention window. Safe to run repeatedly."""

    now = now or now_in_app_timezone()
    repository = AnalyticsRepository(session)
    result = CleanupResult(
        analytics_events=await repository.delete_events_before(
            now - timedelta(days=analytics_retention_days)
        ),
        user_activities=await repository.delete_activities_before(
            now - timedelta(days=activity_retention_days)
        ),
    )
    if result.analytics_events or result.user_activities:
        logger.info(
            "Purged %s analytics events and %s user activities",
            result.analytics_events,
            result.user_activities,
        )
    return result


__all__ = ["CleanupResult", "purge_expired_activity"]
