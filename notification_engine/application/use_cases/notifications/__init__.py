"""Use cases for creating, reading and delivering notifications."""

from .create_notification import create_notification
from .delete_notification import delete_notification
from .get_stats import NotificationStats, get_notification_stats
from .list_notifications import list_my_notifications, list_unread_notifications
from .mark_read import mark_all_notifications_read, mark_notification_read
from .send_bulk import BulkFailure, BulkSendResult, send_bulk_notifications
from .send_from_template import send_from_template
from .sweep import SweepResult, sweep_due_notifications
from .templates import create_template, list_templates, render_template

__all__ = [
    "BulkFailure",
    "BulkSendResult",
    "NotificationStats",
    "SweepResult",
    "create_notification",
    "create_template",
    "delete_notification",
    "get_notification_stats",
    "list_my_notifications",
    "list_templates",
    "list_unread_notifications",
    "mark_all_notifications_read",
    "mark_notification_read",
    "render_template",
    "send_bulk_notifications",
    "send_from_template",
    "sweep_due_notifications",
]
