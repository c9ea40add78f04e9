"""Repository implementations for infrastructure layer."""

from .analytics_repository import AnalyticsRepository
from .course_repository import (
    CourseRanking,
    CourseRepository,
    EnrollmentWithCourse,
    ProgressWithCourse,
)
from .notification_repository import NotificationRepository
from .notification_template_repository import NotificationTemplateRepository
from .user_repository import UserRepository

__all__ = [
    "AnalyticsRepository",
    "CourseRanking",
    "CourseRepository",
    "EnrollmentWithCourse",
    "NotificationRepository",
    "NotificationTemplateRepository",
    "ProgressWithCourse",
    "UserRepository",
]
