"""Value objects describing notification dispatch requests and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class NotificationContent:
    """Rendered content of a notification."""

    title: str
    message: str
    data: dict[str, Any] | None = None
    action_url: str | None = None
    is_actionable: bool = False


@dataclass
class RenderContext:
    """Where the triggering event happened and how long its record lives."""

    origin_topic_id: str | None = None
    expires_at: datetime | None = None


@dataclass
class DispatchResult:
    """Outcome of dispatching one notification to one recipient."""

    recipient_id: str
    success: bool
    sse_delivered: bool = False
    persisted: bool = False
    notification_id: int | None = None
    error: str | None = None


@dataclass
class BatchDispatchResult:
    """Per-recipient outcomes of a bulk dispatch, in recipient order."""

    results: list[DispatchResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def delivered_count(self) -> int:
        return sum(1 for result in self.results if result.sse_delivered)

    @property
    def persisted_count(self) -> int:
        return sum(1 for result in self.results if result.persisted)

    def for_recipient(self, recipient_id: str) -> DispatchResult | None:
        for result in self.results:
            if result.recipient_id == recipient_id:
                return result
        return None


__all__ = [
    "BatchDispatchResult",
    "DispatchResult",
    "NotificationContent",
    "RenderContext",
]
