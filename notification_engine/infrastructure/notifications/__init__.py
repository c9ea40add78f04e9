"""Realtime notification helpers for the infrastructure layer."""

from .gateway import LivePushGateway, serialize_notification, user_group
from .manager import ConnectionHandle, NotificationConnectionManager

__all__ = [
    "ConnectionHandle",
    "LivePushGateway",
    "NotificationConnectionManager",
    "serialize_notification",
    "user_group",
]
