"""Pydantic models describing notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from villages.domain.entities import NotificationType


class NotificationRead(BaseModel):
    """Representation of a notification delivered to the client."""

    id: int
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_actionable: bool = False
    action_url: str | None = None
    is_read: bool = False
    created_at: datetime | None = None
    read_at: datetime | None = None
    expires_at: datetime | None = None


class NotificationPage(BaseModel):
    items: list[NotificationRead]
    total: int
    page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


class UnreadCountRead(BaseModel):
    count: int


class NotificationUpdate(BaseModel):
    """Payload used to change the read state of a notification."""

    is_read: bool = Field(True, description="Only marking as read is supported")


class MarkReadBySourceRequest(BaseModel):
    """Mark every notification produced by one source (e.g. a conversation) as read."""

    source_field: str = Field(..., min_length=1, examples=["conversationId"])
    source_value: str = Field(..., min_length=1)


class BulkUpdateResponse(BaseModel):
    updated: int


__all__ = [
    "BulkUpdateResponse",
    "MarkReadBySourceRequest",
    "NotificationPage",
    "NotificationRead",
    "NotificationUpdate",
    "UnreadCountRead",
]
