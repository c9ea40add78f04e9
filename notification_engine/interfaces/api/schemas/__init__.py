from .device import DeviceRead, DeviceSubscribe
from .notification import (
    BroadcastRequest,
    BroadcastResponse,
    BulkFailureRead,
    BulkSendResultRead,
    MarkAllReadResponse,
    NotificationBulkCreate,
    NotificationCreate,
    NotificationRead,
    NotificationStatsRead,
)
from .queue import QueueClearResponse, QueueCountsRead, QueueJobRead
from .template import TemplateCreate, TemplateRead, TemplateSendRequest

__all__ = [
    "BroadcastRequest",
    "BroadcastResponse",
    "BulkFailureRead",
    "BulkSendResultRead",
    "DeviceRead",
    "DeviceSubscribe",
    "MarkAllReadResponse",
    "NotificationBulkCreate",
    "NotificationCreate",
    "NotificationRead",
    "NotificationStatsRead",
    "QueueClearResponse",
    "QueueCountsRead",
    "QueueJobRead",
    "TemplateCreate",
    "TemplateRead",
    "TemplateSendRequest",
]
