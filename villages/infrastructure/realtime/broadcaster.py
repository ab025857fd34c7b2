"""Fire-and-forget fan-out of realtime events to topic members."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Set

from anyio import from_thread

from villages.domain.entities import RealtimeEvent, user_topic

from .manager import ConnectionManager
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class LiveBroadcaster:
    """Deliver :class:`RealtimeEvent` envelopes to everyone registered on a topic.

    There is no acknowledgement and no retry. A failed write to one member is
    dropped; that member catches up from the persisted record, if any, on
    the next read.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._pending: Set[asyncio.Task[int]] = set()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._manager.registry

    async def publish(self, topic_id: str, event: RealtimeEvent) -> int:
        """Send ``event`` to every current member and return how many received it."""

        members = self.registry.connected_users(topic_id)
        if not members:
            return 0

        message = event.to_message()
        outcomes = await asyncio.gather(
            *(
                self._manager.send_to_member(topic_id, user_id, message)
                for user_id in members
            ),
            return_exceptions=True,
        )
        delivered = 0
        for user_id, outcome in zip(members, outcomes):
            if isinstance(outcome, BaseException):
                logger.debug("Dropped %s event for %s: %s", event.type, user_id, outcome)
            elif outcome:
                delivered += 1
        return delivered

    async def publish_to_user(
        self, user_id: str, event_type: str, data: dict[str, Any]
    ) -> int:
        return await self.publish(user_topic(user_id), RealtimeEvent(type=event_type, data=data))

    def broadcast(self, topic_id: str, event: RealtimeEvent) -> None:
        """Schedule delivery of ``event`` and return immediately."""

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                from_thread.run(self._publish_quietly, topic_id, event)
            except RuntimeError as exc:
                logger.warning(
                    "Dropped %s event for topic %s outside of an event loop: %s",
                    event.type,
                    topic_id,
                    exc,
                )
        else:
            task = loop.create_task(self._publish_quietly(topic_id, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def broadcast_to_user(self, user_id: str, event_type: str, data: dict[str, Any]) -> None:
        self.broadcast(user_topic(user_id), RealtimeEvent(type=event_type, data=data))

    async def drain(self) -> None:
        """Wait for scheduled broadcasts to finish."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _publish_quietly(self, topic_id: str, event: RealtimeEvent) -> int:
        try:
            return await self.publish(topic_id, event)
        except Exception:
            logger.exception("Broadcast of %s to topic %s failed", event.type, topic_id)
            return 0


__all__ = ["LiveBroadcaster"]
