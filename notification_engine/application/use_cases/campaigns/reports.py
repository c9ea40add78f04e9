"""Use case for computing periodic activity reports and sending them to admins."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.application.use_cases.notifications import (
    BulkSendResult,
    send_bulk_notifications,
)
from notification_engine.domain.entities import NotificationChannel, NotificationPriority
from notification_engine.domain.exceptions import NotificationValidationError
from notification_engine.infrastructure.repositories import (
    AnalyticsRepository,
    CourseRepository,
    UserRepository,
)
from notification_engine.utils import now_in_app_timezone

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import RetryQueueEngine
    from notification_engine.infrastructure.notifications import LivePushGateway

logger = logging.getLogger(__name__)

REPORT_PERIODS: dict[str, int] = {"daily": 1, "weekly": 7, "monthly": 30}
TOP_COURSES_LIMIT = 5
_COURSE_TITLE_LIMIT = 60


@dataclass
class TrendPoint:
    """Metrics for a single day inside the report window."""

    date: str
    registrations: int
    enrollments: int
    completions: int
    active_users: int


@dataclass
class TopCourse:
    course_id: str
    title: str
    enrollments: int


@dataclass
class Engagement:
    activity_events: int
    active_users: int
    total_users: int
    rate: float


@dataclass
class ActivityReport:
    """Aggregate platform metrics over a trailing window."""

    period: str
    start: datetime
    end: datetime
    registrations: int
    enrollments: int
    completions: int
    active_users: int
    engagement: Engagement
    revenue: float = 0.0
    top_courses: list[TopCourse] = field(default_factory=list)
    trend: list[TrendPoint] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "registrations": self.registrations,
            "enrollments": self.enrollments,
            "completions": self.completions,
            "active_users": self.active_users,
            "engagement": asdict(self.engagement),
            "revenue": self.revenue,
            # Titles are free text and stay out of the validated payload.
            "top_courses": [
                {"course_id": course.course_id, "enrollments": course.enrollments}
                for course in self.top_courses
            ],
            "trend": [asdict(point) for point in self.trend],
        }


def _truncate(title: str) -> str:
    if len(title) <= _COURSE_TITLE_LIMIT:
        return title
    return title[: _COURSE_TITLE_LIMIT - 3].rstrip() + "..."


def report_window(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` of the trailing window ending at midnight of ``now``."""

    try:
        days = REPORT_PERIODS[period]
    except KeyError as exc:
        allowed = ", ".join(REPORT_PERIODS)
        raise NotificationValidationError(
            f"period must be one of {allowed}", field="period"
        ) from exc
    end = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return end - timedelta(days=days), end


async def compute_activity_report(
    session: AsyncSession, period: str, *, now: datetime | None = None
) -> ActivityReport:
    now = now or now_in_app_timezone()
    start, end = report_window(period, now)
    users = UserRepository(session)
    courses = CourseRepository(session)
    analytics = AnalyticsRepository(session)

    trend: list[TrendPoint] = []
    day = start
    while day < end:
        next_day = day + timedelta(days=1)
        trend.append(
            TrendPoint(
                date=day.date().isoformat(),
                registrations=await users.count_created_between(day, next_day),
                enrollments=await courses.count_enrollments_between(day, next_day),
                completions=await courses.count_completions_between(day, next_day),
                active_users=await users.count_logged_in_between(day, next_day),
            )
        )
        day = next_day

    active_users = await users.count_logged_in_between(start, end)
    total_users = await users.count_active()
    engagement = Engagement(
        activity_events=await analytics.count_activities_between(start, end),
        active_users=active_users,
        total_users=total_users,
        rate=round(active_users / total_users * 100, 2) if total_users else 0.0,
    )
    rankings = await courses.top_courses_between(start, end, limit=TOP_COURSES_LIMIT)

    report = ActivityReport(
        period=period,
        start=start,
        end=end,
        registrations=sum(point.registrations for point in trend),
        enrollments=sum(point.enrollments for point in trend),
        completions=sum(point.completions for point in trend),
        active_users=active_users,
        engagement=engagement,
        top_courses=[
            TopCourse(
                course_id=ranking.course_id,
                title=_truncate(ranking.title),
                enrollments=ranking.enrollments,
            )
            for ranking in rankings
        ],
        trend=trend,
    )
    logger.info(
        "Computed %s report for %s..%s: %s registrations, %s enrollments, %s completions",
        period,
        start.date(),
        end.date(),
        report.registrations,
        report.enrollments,
        report.completions,
    )
    return report


async def publish_activity_report(
    session: AsyncSession,
    report: ActivityReport,
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    now: datetime | None = None,
) -> BulkSendResult:
    """Send ``report`` as one in-app notification to every active admin."""

    admins = await UserRepository(session).list_admins()
    if not admins:
        logger.info("No admins to receive the %s report", report.period)
        return BulkSendResult()

    title = f"{report.period.capitalize()} activity report"
    message = (
        f"{report.registrations} registrations, {report.enrollments} enrollments, "
        f"{report.completions} completions and {report.active_users} active users "
        f"between {report.start.date().isoformat()} and {report.end.date().isoformat()}."
    )
    return await send_bulk_notifications(
        session,
        {
            "recipient_ids": [admin.id for admin in admins if admin.id],
            "channel": NotificationChannel.IN_APP,
            "priority": NotificationPriority.LOW,
            "title": title,
            "message": message,
            "payload": report.to_payload(),
            "event_type": f"report.{report.period}",
        },
        queue=queue,
        gateway=gateway,
        now=now,
    )


__all__ = [
    "ActivityReport",
    "Engagement",
    "REPORT_PERIODS",
    "TopCourse",
    "TrendPoint",
    "compute_activity_report",
    "publish_activity_report",
    "report_window",
]
