"""Realtime delivery helpers for the infrastructure layer."""

from .broadcaster import LiveBroadcaster
from .manager import ConnectionManager, Transport
from .publisher import (
    EVENT_ALL_READ,
    EVENT_NOTIFICATION,
    EVENT_NOTIFICATION_READ,
    EVENT_UNREAD_COUNT,
    NotificationPublisher,
    serialize_content,
    serialize_notification,
)
from .registry import ConnectionRegistry
from .services import RealtimeServices, build_realtime_services

__all__ = [
    "RealtimeServices",
    "build_realtime_services",
    "ConnectionManager",
    "ConnectionRegistry",
    "EVENT_ALL_READ",
    "EVENT_NOTIFICATION",
    "EVENT_NOTIFICATION_READ",
    "EVENT_UNREAD_COUNT",
    "LiveBroadcaster",
    "NotificationPublisher",
    "Transport",
    "serialize_content",
    "serialize_notification",
]
