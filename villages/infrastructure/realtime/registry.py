"""Process-wide membership table of live channels."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Callable, DefaultDict

from villages.domain.entities import ConnectionRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 90.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 30.0


class ConnectionRegistry:
    """Track which users currently hold a live channel on which topic.

    Mutations are plain dict operations and assume they run on a single event
    loop; there is no locking. Records whose ``last_seen_at`` is older than
    ``ttl_seconds`` are reported as offline immediately and removed by the
    next :meth:`sweep`, which covers transports that vanish without a close.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._topics: DefaultDict[str, dict[str, ConnectionRecord]] = defaultdict(dict)
        self._sweep_task: asyncio.Task[None] | None = None

    def register(self, topic_id: str, user_id: str) -> ConnectionRecord:
        """Add ``user_id`` to ``topic_id``, refreshing an existing record."""

        now = self._clock()
        members = self._topics[topic_id]
        record = members.get(user_id)
        if record is None:
            record = ConnectionRecord(
                topic_id=topic_id, user_id=user_id, connected_at=now, last_seen_at=now
            )
            members[user_id] = record
            logger.debug("Registered %s on topic %s", user_id, topic_id)
        else:
            record.last_seen_at = now
        return record

    def unregister(self, topic_id: str, user_id: str) -> None:
        """Remove ``user_id`` from ``topic_id``. Unknown pairs are ignored."""

        members = self._topics.get(topic_id)
        if members is None:
            return
        if members.pop(user_id, None) is not None:
            logger.debug("Unregistered %s from topic %s", user_id, topic_id)
        if not members:
            self._topics.pop(topic_id, None)

    def touch(self, topic_id: str, user_id: str) -> ConnectionRecord:
        """Record a heartbeat for ``user_id`` on ``topic_id``."""

        return self.register(topic_id, user_id)

    def is_connected(self, topic_id: str, user_id: str) -> bool:
        members = self._topics.get(topic_id)
        if not members:
            return False
        record = members.get(user_id)
        return record is not None and not record.is_stale(self._clock(), self.ttl_seconds)

    def connected_users(self, topic_id: str) -> set[str]:
        members = self._topics.get(topic_id)
        if not members:
            return set()
        now = self._clock()
        return {
            user_id
            for user_id, record in members.items()
            if not record.is_stale(now, self.ttl_seconds)
        }

    def topics_for(self, user_id: str) -> set[str]:
        """Return every topic on which ``user_id`` is currently live."""

        now = self._clock()
        return {
            topic_id
            for topic_id, members in self._topics.items()
            if user_id in members and not members[user_id].is_stale(now, self.ttl_seconds)
        }

    def records(self) -> list[ConnectionRecord]:
        return [record for members in self._topics.values() for record in members.values()]

    def sweep(self) -> list[ConnectionRecord]:
        """Drop stale records and return them."""

        now = self._clock()
        removed: list[ConnectionRecord] = []
        for topic_id in list(self._topics):
            members = self._topics[topic_id]
            for user_id, record in list(members.items()):
                if record.is_stale(now, self.ttl_seconds):
                    removed.append(members.pop(user_id))
            if not members:
                self._topics.pop(topic_id, None)
        if removed:
            logger.info("Swept %d stale live connections", len(removed))
        return removed

    def clear(self) -> None:
        self._topics.clear()

    def start(self) -> None:
        """Begin periodic sweeping on the running event loop."""

        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        """Cancel the sweeper and forget every record."""

        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.clear()

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()

    def stats(self) -> dict[str, object]:
        return {
            "topics": len(self._topics),
            "connections": sum(len(members) for members in self._topics.values()),
            "ttl_seconds": self.ttl_seconds,
        }


__all__ = ["ConnectionRegistry", "DEFAULT_SWEEP_INTERVAL_SECONDS", "DEFAULT_TTL_SECONDS"]
