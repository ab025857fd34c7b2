"""Domain entity representing a user notification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    """Categories of notifications delivered to family members and volunteers."""

    MESSAGE = "MESSAGE"
    CARE_UPDATE = "CARE_UPDATE"
    EMERGENCY_ALERT = "EMERGENCY_ALERT"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"
    FAMILY_ACTIVITY = "FAMILY_ACTIVITY"


@dataclass
class Notification:
    """Persisted inbox entry owned by a single recipient.

    Only ``is_read``/``read_at`` change after creation; everything else is
    fixed until the record is deleted.
    """

    id: int | None
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_actionable: bool = False
    action_url: str | None = None
    is_read: bool = False
    created_at: datetime | None = None
    read_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` when the notification expired before ``now``."""

        return self.expires_at is not None and self.expires_at <= now


@dataclass
class PaginatedNotifications:
    """Page of notifications returned by repository listings."""

    items: list[Notification] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def has_next_page(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


@dataclass
class NotificationStats:
    """Aggregated counters for a user's inbox."""

    total: int
    unread: int
    by_type: dict[str, int] = field(default_factory=dict)


__all__ = [
    "Notification",
    "NotificationStats",
    "NotificationType",
    "PaginatedNotifications",
]
