"""Tests for reminder rules, activity reports and retention cleanup."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import create_user
from notification_engine.application.use_cases.campaigns import (
    EVENT_INACTIVE_USER,
    EVENT_STALLED_PROGRESS,
    RULE_INACTIVE_USERS,
    RULE_INCOMPLETE_ENROLLMENTS,
    RULE_STALLED_PROGRESS,
    RULE_WEEKLY_SUMMARY,
    CampaignOptions,
    compute_activity_report,
    publish_activity_report,
    purge_expired_activity,
    reminders,
    run_reminder_campaign,
)
from notification_engine.domain.entities import (
    PROGRESS_STATUS_COMPLETED,
    Course,
    CourseEnrollment,
    CourseProgress,
    NotificationChannel,
    NotificationPriority,
)
from notification_engine.domain.exceptions import NotificationValidationError
from notification_engine.infrastructure.models import AnalyticsEventModel, UserActivityModel
from notification_engine.infrastructure.repositories import (
    CourseRepository,
    NotificationRepository,
)
from notification_engine.utils import ensure_app_naive_datetime, now_in_app_timezone

NOON = now_in_app_timezone().replace(hour=12, minute=0, second=0, microsecond=0)
MIDNIGHT = NOON.replace(hour=0)


def _naive(value):
    return ensure_app_naive_datetime(value)


async def _add_course(session_factory, title: str = "Python Basics") -> Course:
    async with session_factory() as session:
        return await CourseRepository(session).add_course(Course(id=None, title=title))


async def _add_progress(session_factory, user_id: str, course_id: str, **fields) -> None:
    async with session_factory() as session:
        await CourseRepository(session).add_progress(
            CourseProgress(id=None, user_id=user_id, course_id=course_id, **fields)
        )


async def _add_enrollment(session_factory, user_id: str, course_id: str, enrolled_at) -> None:
    async with session_factory() as session:
        await CourseRepository(session).add_enrollment(
            CourseEnrollment(id=None, user_id=user_id, course_id=course_id, enrolled_at=enrolled_at)
        )


async def _notifications_for(session_factory, user_id: str):
    async with session_factory() as session:
        return await NotificationRepository(session).list_for_recipient(user_id, limit=None)


async def _campaign(runtime, **options):
    return await run_reminder_campaign(
        runtime.session_factory,
        queue=runtime.queue,
        gateway=runtime.gateway,
        options=CampaignOptions(**options),
        now=NOON,
    )


@pytest.mark.asyncio
async def test_stalled_progress_produces_one_reminder(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory)
    await _add_progress(
        runtime.session_factory,
        user.id,
        course.id,
        completion_percentage=45.0,
        updated_at=NOON - timedelta(days=8),
    )

    result = await _campaign(runtime)

    stalled = result.outcome(RULE_STALLED_PROGRESS)
    assert (stalled.matched, stalled.created) == (1, 1)
    assert result.outcome(RULE_INACTIVE_USERS).matched == 0
    assert result.outcome(RULE_WEEKLY_SUMMARY).matched == 0
    [notification] = await _notifications_for(runtime.session_factory, user.id)
    assert notification.event_type == EVENT_STALLED_PROGRESS
    assert notification.title == "Continue Python Basics"
    assert notification.message.startswith("You are 45% through Python Basics.")
    assert notification.payload["course_id"] == course.id
    assert notification.payload["days_since_update"] == 8


@pytest.mark.asyncio
async def test_reminders_repeat_on_every_run_without_suppression(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory)
    await _add_progress(
        runtime.session_factory,
        user.id,
        course.id,
        completion_percentage=30.0,
        updated_at=NOON - timedelta(days=10),
    )

    await _campaign(runtime)
    await _campaign(runtime)

    assert len(await _notifications_for(runtime.session_factory, user.id)) == 2


@pytest.mark.asyncio
async def test_suppression_window_skips_recent_reminders(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory)
    await _add_progress(
        runtime.session_factory,
        user.id,
        course.id,
        completion_percentage=30.0,
        updated_at=NOON - timedelta(days=10),
    )

    await _campaign(runtime, suppression_hours=24)
    second = await _campaign(runtime, suppression_hours=24)

    assert second.outcome(RULE_STALLED_PROGRESS).suppressed == 1
    assert second.created == 0
    assert len(await _notifications_for(runtime.session_factory, user.id)) == 1


@pytest.mark.asyncio
async def test_inactive_users_get_an_email_reminder(runtime) -> None:
    idle = await create_user(
        runtime.session_factory, email="idle@example.com", last_login_at=NOON - timedelta(days=10)
    )
    await create_user(runtime.session_factory, email="busy@example.com", last_login_at=NOON)
    await create_user(runtime.session_factory, email=None, name="No email")

    result = await _campaign(runtime)

    assert result.outcome(RULE_INACTIVE_USERS).created == 1
    [notification] = await _notifications_for(runtime.session_factory, idle.id)
    assert notification.event_type == EVENT_INACTIVE_USER
    assert notification.channel is NotificationChannel.EMAIL
    assert notification.message.startswith("It has been 10 days since your last visit.")
    assert notification.payload == {"days_inactive": 10}


@pytest.mark.asyncio
async def test_incomplete_enrollment_reminder(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory, "Data Analysis")
    finished = await _add_course(runtime.session_factory, "Finished Course")
    await _add_enrollment(runtime.session_factory, user.id, course.id, NOON - timedelta(days=5))
    await _add_enrollment(runtime.session_factory, user.id, finished.id, NOON - timedelta(days=5))
    await _add_progress(
        runtime.session_factory,
        user.id,
        finished.id,
        completion_percentage=100.0,
        status=PROGRESS_STATUS_COMPLETED,
        updated_at=NOON - timedelta(days=9),
    )

    result = await _campaign(runtime)

    assert result.outcome(RULE_INCOMPLETE_ENROLLMENTS).created == 1
    [notification] = await _notifications_for(runtime.session_factory, user.id)
    assert notification.title == "Start Data Analysis"
    assert notification.payload["course_id"] == course.id


@pytest.mark.asyncio
async def test_full_progress_counts_as_completed_for_enrollment_reminders(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory, "Data Analysis")
    await _add_enrollment(runtime.session_factory, user.id, course.id, NOON - timedelta(days=5))
    await _add_progress(
        runtime.session_factory,
        user.id,
        course.id,
        completion_percentage=100.0,
        updated_at=NOON - timedelta(days=9),
    )

    result = await _campaign(runtime)

    assert result.outcome(RULE_INCOMPLETE_ENROLLMENTS).matched == 0
    assert result.outcome(RULE_STALLED_PROGRESS).matched == 0
    assert await _notifications_for(runtime.session_factory, user.id) == []


@pytest.mark.asyncio
async def test_weekly_summary_and_weekday_gate(runtime) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    first = await _add_course(runtime.session_factory, "First")
    second = await _add_course(runtime.session_factory, "Second")
    await _add_progress(
        runtime.session_factory,
        user.id,
        first.id,
        completion_percentage=100.0,
        status=PROGRESS_STATUS_COMPLETED,
        updated_at=NOON - timedelta(days=1),
    )
    await _add_progress(
        runtime.session_factory,
        user.id,
        second.id,
        completion_percentage=50.0,
        updated_at=NOON - timedelta(days=2),
    )

    skipped = await _campaign(runtime, weekly_summary_weekday=(NOON.weekday() + 1) % 7)
    assert skipped.outcome(RULE_WEEKLY_SUMMARY).skipped is True

    result = await _campaign(runtime, weekly_summary_weekday=NOON.weekday())
    assert result.outcome(RULE_WEEKLY_SUMMARY).created == 1
    [summary] = await _notifications_for(runtime.session_factory, user.id)
    assert summary.title == "Your weekly progress"
    assert summary.message == "This week you made progress in 2 course(s) and completed 1."
    assert summary.payload == {
        "courses_in_progress": 2,
        "courses_completed": 1,
        "average_completion": 75.0,
    }


@pytest.mark.asyncio
async def test_failing_rule_does_not_stop_the_campaign(runtime, monkeypatch) -> None:
    user = await create_user(runtime.session_factory, last_login_at=NOON)
    course = await _add_course(runtime.session_factory)
    await _add_progress(
        runtime.session_factory,
        user.id,
        course.id,
        completion_percentage=20.0,
        updated_at=NOON - timedelta(days=8),
    )

    async def broken(session, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(reminders, "find_inactive_user_reminders", broken)

    result = await _campaign(runtime)

    failed = result.outcome(RULE_INACTIVE_USERS)
    assert failed.error is not None
    assert "boom" in failed.error
    assert result.outcome(RULE_STALLED_PROGRESS).created == 1


async def _seed_activity(session_factory, course_title: str = "Statistics"):
    yesterday = MIDNIGHT - timedelta(hours=12)
    admin = await create_user(session_factory, name="Admin", email="admin@example.com", admin=True)
    learner = await create_user(
        session_factory,
        email="new@example.com",
        created_at=yesterday,
        last_login_at=yesterday + timedelta(hours=2),
    )
    course = await _add_course(session_factory, course_title)
    await _add_enrollment(session_factory, learner.id, course.id, yesterday)
    await _add_progress(
        session_factory,
        learner.id,
        course.id,
        completion_percentage=100.0,
        status=PROGRESS_STATUS_COMPLETED,
        updated_at=yesterday + timedelta(hours=1),
    )
    async with session_factory() as session:
        session.add(
            UserActivityModel(
                user_id=learner.id, activity_type="login", created_at=_naive(yesterday)
            )
        )
        await session.commit()
    return admin, learner, course


@pytest.mark.asyncio
async def test_daily_report_counts_the_previous_day(runtime, session) -> None:
    _, _, course = await _seed_activity(runtime.session_factory)

    report = await compute_activity_report(session, "daily", now=NOON)

    assert report.start == MIDNIGHT - timedelta(days=1)
    assert report.end == MIDNIGHT
    assert (report.registrations, report.enrollments, report.completions) == (1, 1, 1)
    assert report.active_users == 1
    assert report.engagement.activity_events == 1
    assert report.engagement.total_users == 2
    assert report.engagement.rate == 50.0
    assert report.revenue == 0.0
    assert [(c.course_id, c.enrollments) for c in report.top_courses] == [(course.id, 1)]
    assert len(report.trend) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("period, days", [("weekly", 7), ("monthly", 30)])
async def test_longer_reports_have_one_trend_point_per_day(runtime, session, period, days) -> None:
    await _seed_activity(runtime.session_factory)

    report = await compute_activity_report(session, period, now=NOON)

    assert len(report.trend) == days
    assert report.trend[-1].registrations == 1
    assert report.registrations == 1


@pytest.mark.asyncio
async def test_unknown_report_period_is_rejected(session) -> None:
    with pytest.raises(NotificationValidationError):
        await compute_activity_report(session, "yearly", now=NOON)


@pytest.mark.asyncio
async def test_report_is_published_to_admins(runtime, session) -> None:
    admin, learner, _ = await _seed_activity(runtime.session_factory)
    report = await compute_activity_report(session, "daily", now=NOON)

    result = await publish_activity_report(
        session, report, queue=runtime.queue, gateway=runtime.gateway, now=NOON
    )

    [notification] = result.successful
    assert notification.recipient_id == admin.id
    assert notification.title == "Daily activity report"
    assert notification.event_type == "report.daily"
    assert notification.priority is NotificationPriority.LOW
    assert notification.payload["registrations"] == 1
    assert await _notifications_for(runtime.session_factory, learner.id) == []


@pytest.mark.asyncio
async def test_report_reaches_admins_whatever_the_course_titles(runtime) -> None:
    admin, _, course = await _seed_activity(
        runtime.session_factory, course_title="Big Data: Foundations"
    )

    report = await runtime.run_report("daily", NOON)

    assert report.top_courses[0].title == "Big Data: Foundations"
    [notification] = await _notifications_for(runtime.session_factory, admin.id)
    assert notification.payload["top_courses"] == [{"course_id": course.id, "enrollments": 1}]


@pytest.mark.asyncio
async def test_report_without_admins_sends_nothing(runtime, session) -> None:
    report = await compute_activity_report(session, "daily", now=NOON)

    result = await publish_activity_report(
        session, report, queue=runtime.queue, gateway=runtime.gateway, now=NOON
    )

    assert result.successful == []
    assert result.failed == []


@pytest.mark.asyncio
async def test_cleanup_purges_rows_past_retention(session) -> None:
    session.add_all(
        [
            AnalyticsEventModel(event_type="page_view", created_at=_naive(NOON - timedelta(days=400))),
            AnalyticsEventModel(event_type="page_view", created_at=_naive(NOON - timedelta(days=10))),
            UserActivityModel(
                user_id="u-1", activity_type="login", created_at=_naive(NOON - timedelta(days=200))
            ),
            UserActivityModel(
                user_id="u-1", activity_type="login", created_at=_naive(NOON - timedelta(days=10))
            ),
        ]
    )
    await session.commit()

    first = await purge_expired_activity(session, now=NOON)
    second = await purge_expired_activity(session, now=NOON)

    assert (first.analytics_events, first.user_activities) == (1, 1)
    assert (second.analytics_events, second.user_activities) == (0, 0)
