"""Utility helpers to push notification events to a user's personal channel."""

from __future__ import annotations

from typing import Any

from villages.domain.entities import Notification, NotificationContent, NotificationType
from villages.utils import isoformat_or_none

from .broadcaster import LiveBroadcaster

EVENT_NOTIFICATION = "notification"
EVENT_UNREAD_COUNT = "unread-count"
EVENT_NOTIFICATION_READ = "notification-read"
EVENT_ALL_READ = "all-read"


class NotificationPublisher:
    """Serialize notifications and push them to ``user:{id}`` topics."""

    def __init__(self, broadcaster: LiveBroadcaster) -> None:
        self._broadcaster = broadcaster

    async def push_notification(self, notification: Notification) -> int:
        return await self._broadcaster.publish_to_user(
            notification.recipient_id, EVENT_NOTIFICATION, serialize_notification(notification)
        )

    async def push_content(
        self, recipient_id: str, type: NotificationType, content: NotificationContent
    ) -> int:
        """Push a notification that has no persisted record behind it."""

        return await self._broadcaster.publish_to_user(
            recipient_id, EVENT_NOTIFICATION, serialize_content(type, content)
        )

    async def push_unread_count(self, user_id: str, count: int) -> int:
        return await self._broadcaster.publish_to_user(
            user_id, EVENT_UNREAD_COUNT, {"count": count}
        )

    async def push_notification_read(self, user_id: str, notification_id: int) -> int:
        return await self._broadcaster.publish_to_user(
            user_id, EVENT_NOTIFICATION_READ, {"notification_id": notification_id}
        )

    async def push_all_read(self, user_id: str) -> int:
        return await self._broadcaster.publish_to_user(user_id, EVENT_ALL_READ, {})


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Return the websocket payload representation for ``notification``."""

    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "type": NotificationType(notification.type).value,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "is_actionable": notification.is_actionable,
        "action_url": notification.action_url,
        "is_read": notification.is_read,
        "created_at": isoformat_or_none(notification.created_at),
        "expires_at": isoformat_or_none(notification.expires_at),
    }


def serialize_content(type: NotificationType, content: NotificationContent) -> dict[str, Any]:
    return {
        "id": None,
        "type": NotificationType(type).value,
        "title": content.title,
        "message": content.message,
        "data": content.data or {},
        "is_actionable": content.is_actionable,
        "action_url": content.action_url,
    }


__all__ = [
    "EVENT_ALL_READ",
    "EVENT_NOTIFICATION",
    "EVENT_NOTIFICATION_READ",
    "EVENT_UNREAD_COUNT",
    "NotificationPublisher",
    "serialize_content",
    "serialize_notification",
]
