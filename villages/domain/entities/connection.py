"""Ephemeral presence record kept by the connection registry."""

from __future__ import annotations

from dataclasses import dataclass

USER_TOPIC_PREFIX = "user:"


@dataclass
class ConnectionRecord:
    """A user holding a live channel open on a topic.

    Timestamps are monotonic seconds, so they are only comparable within the
    process that created them.
    """

    topic_id: str
    user_id: str
    connected_at: float
    last_seen_at: float

    def is_stale(self, now: float, ttl_seconds: float) -> bool:
        return now - self.last_seen_at > ttl_seconds


def user_topic(user_id: str) -> str:
    """Return the personal topic identifier for ``user_id``."""

    return f"{USER_TOPIC_PREFIX}{user_id}"


def is_user_topic(topic_id: str) -> bool:
    return topic_id.startswith(USER_TOPIC_PREFIX)


__all__ = ["ConnectionRecord", "USER_TOPIC_PREFIX", "is_user_topic", "user_topic"]
