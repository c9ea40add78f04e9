"""Rule-based reminder campaign run once a day by the scheduler.

Each rule selects its audience with read-only queries and then creates one
notification per match. Rules run in isolation: a failing rule is logged and
the remaining rules still run. Reminders are not deduplicated across runs
unless a suppression window is configured.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.application.use_cases.notifications import create_notification
from notification_engine.domain.entities import NotificationChannel
from notification_engine.domain.exceptions import NotificationValidationError, SchedulerRuleError
from notification_engine.infrastructure.database import SessionFactory
from notification_engine.infrastructure.repositories import (
    CourseRepository,
    NotificationRepository,
    UserRepository,
)
from notification_engine.utils import now_in_app_timezone

if TYPE_CHECKING:
    from notification_engine.infrastructure.delivery import RetryQueueEngine
    from notification_engine.infrastructure.notifications import LivePushGateway

logger = logging.getLogger(__name__)

RULE_INACTIVE_USERS = "inactive_users"
RULE_INCOMPLETE_ENROLLMENTS = "incomplete_enrollments"
RULE_STALLED_PROGRESS = "stalled_progress"
RULE_WEEKLY_SUMMARY = "weekly_summary"

EVENT_INACTIVE_USER = "reminder.inactive_user"
EVENT_INCOMPLETE_ENROLLMENT = "reminder.incomplete_enrollment"
EVENT_STALLED_PROGRESS = "reminder.stalled_progress"
EVENT_WEEKLY_SUMMARY = "summary.weekly_progress"

_COURSE_TITLE_LIMIT = 100


@dataclass
class ReminderCandidate:
    recipient_id: str
    title: str
    message: str
    event_type: str
    channel: NotificationChannel = NotificationChannel.IN_APP
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleOutcome:
    rule: str
    matched: int = 0
    created: int = 0
    suppressed: int = 0
    rejected: int = 0
    skipped: bool = False
    error: str | None = None


@dataclass
class CampaignResult:
    rules: list[RuleOutcome] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(outcome.created for outcome in self.rules)

    def outcome(self, rule: str) -> RuleOutcome:
        for outcome in self.rules:
            if outcome.rule == rule:
                return outcome
        raise KeyError(rule)


@dataclass
class CampaignOptions:
    inactive_after_days: int = 7
    enrollment_reminder_after_days: int = 3
    stalled_progress_after_days: int = 7
    suppression_hours: int = 0
    weekly_summary_weekday: int | None = None


def _short_title(title: str) -> str:
    if len(title) <= _COURSE_TITLE_LIMIT:
        return title
    return title[: _COURSE_TITLE_LIMIT - 3].rstrip() + "..."


async def find_inactive_user_reminders(
    session: AsyncSession, *, now: datetime, inactive_after_days: int = 7
) -> list[ReminderCandidate]:
    """Users with an email whose last login is older than the threshold or missing."""

    users = await UserRepository(session).list_inactive_since(
        now - timedelta(days=inactive_after_days)
    )
    candidates: list[ReminderCandidate] = []
    for user in users:
        if user.last_login_at is None:
            message = "You have not visited yet. Your courses are waiting for you."
            days_inactive = None
        else:
            days_inactive = (now - user.last_login_at).days
            message = (
                f"It has been {days_inactive} days since your last visit. "
                "Come back and continue learning."
            )
        candidates.append(
            ReminderCandidate(
                recipient_id=user.id or "",
                title="We miss you",
                message=message,
                event_type=EVENT_INACTIVE_USER,
                channel=NotificationChannel.EMAIL,
                payload={"days_inactive": days_inactive},
            )
        )
    return candidates


async def find_incomplete_enrollment_reminders(
    session: AsyncSession, *, now: datetime, enrolled_after_days: int = 3
) -> list[ReminderCandidate]:
    """Enrollments older than the threshold with no completed progress yet."""

    rows = await CourseRepository(session).list_incomplete_enrollments(
        enrolled_before=now - timedelta(days=enrolled_after_days)
    )
    candidates: list[ReminderCandidate] = []
    for row in rows:
        enrolled_at = row.enrollment.enrolled_at
        days = (now - enrolled_at).days if enrolled_at else enrolled_after_days
        title = _short_title(row.course_title)
        candidates.append(
            ReminderCandidate(
                recipient_id=row.enrollment.user_id,
                title=f"Start {title}",
                message=f"You enrolled in {title} {days} days ago. Pick up where you left off.",
                event_type=EVENT_INCOMPLETE_ENROLLMENT,
                payload={
                    "course_id": row.enrollment.course_id,
                    "enrolled_at": enrolled_at.isoformat() if enrolled_at else None,
                },
            )
        )
    return candidates


async def find_stalled_progress_reminders(
    session: AsyncSession, *, now: datetime, stalled_after_days: int = 7
) -> list[ReminderCandidate]:
    """Partially completed courses that nobody touched within the threshold."""

    rows = await CourseRepository(session).list_stalled_progress(
        updated_before=now - timedelta(days=stalled_after_days)
    )
    candidates: list[ReminderCandidate] = []
    for row in rows:
        progress = row.progress
        percentage = round(progress.completion_percentage)
        days = (now - progress.updated_at).days if progress.updated_at else stalled_after_days
        title = _short_title(row.course_title)
        candidates.append(
            ReminderCandidate(
                recipient_id=progress.user_id,
                title=f"Continue {title}",
                message=(
                    f"You are {percentage}% through {title}. "
                    "A few minutes today keeps your progress going."
                ),
                event_type=EVENT_STALLED_PROGRESS,
                payload={
                    "course_id": progress.course_id,
                    "completion_percentage": progress.completion_percentage,
                    "days_since_update": days,
                },
            )
        )
    return candidates


async def find_weekly_progress_summaries(
    session: AsyncSession, *, now: datetime
) -> list[ReminderCandidate]:
    """One achievement-style summary per user with progress in the last seven days."""

    rows = await CourseRepository(session).list_progress_updated_since(now - timedelta(days=7))
    by_user: dict[str, dict[str, float]] = defaultdict(dict)
    completed: dict[str, set[str]] = defaultdict(set)
    for progress in rows:
        by_user[progress.user_id][progress.course_id] = progress.completion_percentage
        if progress.is_completed():
            completed[progress.user_id].add(progress.course_id)

    candidates: list[ReminderCandidate] = []
    for user_id, courses in by_user.items():
        finished = len(completed[user_id])
        average = round(sum(courses.values()) / len(courses), 1)
        message = f"This week you made progress in {len(courses)} course(s)"
        message += f" and completed {finished}." if finished else "."
        candidates.append(
            ReminderCandidate(
                recipient_id=user_id,
                title="Your weekly progress",
                message=message,
                event_type=EVENT_WEEKLY_SUMMARY,
                payload={
                    "courses_in_progress": len(courses),
                    "courses_completed": finished,
                    "average_completion": average,
                },
            )
        )
    return candidates


RuleFinder = Callable[[AsyncSession, datetime], Awaitable[Sequence[ReminderCandidate]]]


def build_rules(options: CampaignOptions) -> list[tuple[str, RuleFinder]]:
    return [
        (
            RULE_INACTIVE_USERS,
            lambda session, now: find_inactive_user_reminders(
                session, now=now, inactive_after_days=options.inactive_after_days
            ),
        ),
        (
            RULE_INCOMPLETE_ENROLLMENTS,
            lambda session, now: find_incomplete_enrollment_reminders(
                session, now=now, enrolled_after_days=options.enrollment_reminder_after_days
            ),
        ),
        (
            RULE_STALLED_PROGRESS,
            lambda session, now: find_stalled_progress_reminders(
                session, now=now, stalled_after_days=options.stalled_progress_after_days
            ),
        ),
        (
            RULE_WEEKLY_SUMMARY,
            lambda session, now: find_weekly_progress_summaries(session, now=now),
        ),
    ]


async def _deliver_candidates(
    session: AsyncSession,
    outcome: RuleOutcome,
    candidates: Sequence[ReminderCandidate],
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    options: CampaignOptions,
    now: datetime,
) -> None:
    repository = NotificationRepository(session)
    suppression = timedelta(hours=options.suppression_hours)
    for candidate in candidates:
        if options.suppression_hours and await repository.exists_since(
            recipient_id=candidate.recipient_id,
            event_type=candidate.event_type,
            since=now - suppression,
        ):
            outcome.suppressed += 1
            continue
        try:
            await create_notification(
                session,
                {
                    "recipient_id": candidate.recipient_id,
                    "channel": candidate.channel,
                    "title": candidate.title,
                    "message": candidate.message,
                    "payload": candidate.payload,
                    "event_type": candidate.event_type,
                },
                queue=queue,
                gateway=gateway,
                now=now,
            )
        except NotificationValidationError as exc:
            outcome.rejected += 1
            logger.warning(
                "Rule %s produced an invalid reminder for %s: %s",
                outcome.rule,
                candidate.recipient_id,
                exc,
            )
            continue
        outcome.created += 1


async def run_reminder_campaign(
    session_factory: SessionFactory,
    *,
    queue: "RetryQueueEngine",
    gateway: "LivePushGateway",
    options: CampaignOptions | None = None,
    now: datetime | None = None,
) -> CampaignResult:
    """Evaluate every reminder rule and create the resulting notifications."""

    options = options or CampaignOptions()
    now = now or now_in_app_timezone()
    result = CampaignResult()
    for rule, finder in build_rules(options):
        outcome = RuleOutcome(rule=rule)
        result.rules.append(outcome)
        if (
            rule == RULE_WEEKLY_SUMMARY
            and options.weekly_summary_weekday is not None
            and now.weekday() != options.weekly_summary_weekday
        ):
            outcome.skipped = True
            continue
        try:
            async with session_factory() as session:
                candidates = await finder(session, now)
                outcome.matched = len(candidates)
                await _deliver_candidates(
                    session,
                    outcome,
                    candidates,
                    queue=queue,
                    gateway=gateway,
                    options=options,
                    now=now,
                )
        except Exception as exc:
            error = SchedulerRuleError(rule, exc)
            outcome.error = str(error)
            logger.exception("%s", error)
            continue
        logger.info(
            "Reminder rule %s: %s matched, %s created, %s suppressed",
            rule,
            outcome.matched,
            outcome.created,
            outcome.suppressed,
        )
    return result


__all__ = [
    "CampaignOptions",
    "CampaignResult",
    "EVENT_INACTIVE_USER",
    "EVENT_INCOMPLETE_ENROLLMENT",
    "EVENT_STALLED_PROGRESS",
    "EVENT_WEEKLY_SUMMARY",
    "RULE_INACTIVE_USERS",
    "RULE_INCOMPLETE_ENROLLMENTS",
    "RULE_STALLED_PROGRESS",
    "RULE_WEEKLY_SUMMARY",
    "ReminderCandidate",
    "RuleOutcome",
    "build_rules",
    "find_inactive_user_reminders",
    "find_incomplete_enrollment_reminders",
    "find_stalled_progress_reminders",
    "find_weekly_progress_summaries",
    "run_reminder_campaign",
]
