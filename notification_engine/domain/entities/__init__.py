"""Domain entities exposed by the application."""

from .course import (
    ENROLLMENT_STATUS_ACTIVE,
    PROGRESS_STATUS_COMPLETED,
    PROGRESS_STATUS_IN_PROGRESS,
    Course,
    CourseEnrollment,
    CourseProgress,
)
from .notification import (
    DEFAULT_EVENT_TYPE,
    UNREAD_STATUSES,
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from .notification_template import NotificationTemplate
from .queue_job import QueueJob, QueueJobState
from .user import ROLE_ADMIN, ROLE_USER, User

__all__ = [
    "Course",
    "CourseEnrollment",
    "CourseProgress",
    "DEFAULT_EVENT_TYPE",
    "ENROLLMENT_STATUS_ACTIVE",
    "Notification",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationTemplate",
    "PROGRESS_STATUS_COMPLETED",
    "PROGRESS_STATUS_IN_PROGRESS",
    "QueueJob",
    "QueueJobState",
    "ROLE_ADMIN",
    "ROLE_USER",
    "UNREAD_STATUSES",
    "User",
]
