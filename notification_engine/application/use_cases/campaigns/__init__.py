"""Scheduled campaigns: reminders, reports and retention cleanup."""

from .cleanup import CleanupResult, purge_expired_activity
from .reminders import (
    EVENT_INACTIVE_USER,
    EVENT_INCOMPLETE_ENROLLMENT,
    EVENT_STALLED_PROGRESS,
    EVENT_WEEKLY_SUMMARY,
    RULE_INACTIVE_USERS,
    RULE_INCOMPLETE_ENROLLMENTS,
    RULE_STALLED_PROGRESS,
    RULE_WEEKLY_SUMMARY,
    CampaignOptions,
    CampaignResult,
    ReminderCandidate,
    RuleOutcome,
    build_rules,
    find_inactive_user_reminders,
    find_incomplete_enrollment_reminders,
    find_stalled_progress_reminders,
    find_weekly_progress_summaries,
    run_reminder_campaign,
)
from .reports import (
    REPORT_PERIODS,
    ActivityReport,
    Engagement,
    TopCourse,
    TrendPoint,
    compute_activity_report,
    publish_activity_report,
    report_window,
)

__all__ = [
    "ActivityReport",
    "CampaignOptions",
    "CampaignResult",
    "CleanupResult",
    "EVENT_INACTIVE_USER",
    "EVENT_INCOMPLETE_ENROLLMENT",
    "EVENT_STALLED_PROGRESS",
    "EVENT_WEEKLY_SUMMARY",
    "Engagement",
    "REPORT_PERIODS",
    "RULE_INACTIVE_USERS",
    "RULE_INCOMPLETE_ENROLLMENTS",
    "RULE_STALLED_PROGRESS",
    "RULE_WEEKLY_SUMMARY",
    "ReminderCandidate",
    "RuleOutcome",
    "TopCourse",
    "TrendPoint",
    "build_rules",
    "compute_activity_report",
    "find_inactive_user_reminders",
    "find_incomplete_enrollment_reminders",
    "find_stalled_progress_reminders",
    "find_weekly_progress_summaries",
    "publish_activity_report",
    "purge_expired_activity",
    "report_window",
    "run_reminder_campaign",
]
