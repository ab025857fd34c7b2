"""Envelope pushed over live channels."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class RealtimeEvent:
    """Event delivered to every member of a topic."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_message(self) -> dict[str, Any]:
        """Return the JSON-serializable wire representation."""

        return {
            "type": self.type,
            "data": copy.deepcopy(self.data),
            "timestamp": self.timestamp.isoformat(),
        }


__all__ = ["RealtimeEvent"]
