"""Public helpers for emitting domain notifications."""

from .dispatcher import NotificationDispatcher, NotificationStore
from .events import (
    notify_care_update,
    notify_emergency_alert,
    notify_family_activity,
    notify_message_posted,
    notify_simple,
    notify_system_announcement,
    remind_complete_profile,
    welcome_new_user,
)

__all__ = [
    "NotificationDispatcher",
    "NotificationStore",
    "notify_care_update",
    "notify_emergency_alert",
    "notify_family_activity",
    "notify_message_posted",
    "notify_simple",
    "notify_system_announcement",
    "remind_complete_profile",
    "welcome_new_user",
]
