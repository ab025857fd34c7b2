"""Schemas for the administrator notification tooling."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from villages.domain.entities import NotificationType


class NotificationTestRequest(BaseModel):
    """Payload used to send a test notification through the dispatcher."""

    recipient_id: str | None = Field(
        None, description="Defaults to the calling administrator"
    )
    type: NotificationType = NotificationType.SYSTEM_ANNOUNCEMENT
    title: str = Field("Test notification", min_length=1, max_length=255)
    message: str = Field("This is a test notification.", min_length=1)
    data: dict[str, Any] | None = None
    action_url: str | None = None
    origin_topic_id: str | None = None
    expires_at: datetime | None = None


class DispatchResultRead(BaseModel):
    recipient_id: str
    success: bool
    sse_delivered: bool
    persisted: bool
    notification_id: int | None = None
    error: str | None = None


class PipelineLogRead(BaseModel):
    timestamp: str
    level: str
    logger: str
    message: str
    notification_id: int | None = None
    user_id: str | None = None
    topic_id: str | None = None
    latency_ms: int | None = None
    error: str | None = None


class PipelineLogsResponse(BaseModel):
    entries: list[PipelineLogRead]
    realtime: dict[str, Any]


class CleanupResponse(BaseModel):
    expired_deleted: int
    read_deleted: int


__all__ = [
    "CleanupResponse",
    "DispatchResultRead",
    "PipelineLogRead",
    "PipelineLogsResponse",
    "NotificationTestRequest",
]
