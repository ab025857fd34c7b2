"""Domain entities exposed by the application."""

from .connection import ConnectionRecord, is_user_topic, user_topic
from .dispatch import (
    BatchDispatchResult,
    DispatchResult,
    NotificationContent,
    RenderContext,
)
from .notification import (
    Notification,
    NotificationStats,
    NotificationType,
    PaginatedNotifications,
)
from .realtime_event import RealtimeEvent
from .user import ROLE_ADMIN, ROLE_MEMBER, ROLE_VOLUNTEER, CurrentUser

__all__ = [
    "BatchDispatchResult",
    "ConnectionRecord",
    "CurrentUser",
    "DispatchResult",
    "Notification",
    "NotificationContent",
    "NotificationStats",
    "NotificationType",
    "PaginatedNotifications",
    "RealtimeEvent",
    "RenderContext",
    "ROLE_ADMIN",
    "ROLE_MEMBER",
    "ROLE_VOLUNTEER",
    "is_user_topic",
    "user_topic",
]
