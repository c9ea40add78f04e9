"""ORM models used by the application infrastructure."""

from .analytics import AnalyticsEventModel, UserActivityModel
from .course import CourseEnrollmentModel, CourseModel, CourseProgressModel
from .notification import NotificationModel
from .notification_template import NotificationTemplateModel
from .user import UserModel

__all__ = [
    "AnalyticsEventModel",
    "CourseEnrollmentModel",
    "CourseModel",
    "CourseProgressModel",
    "NotificationModel",
    "NotificationTemplateModel",
    "UserActivityModel",
    "UserModel",
]
