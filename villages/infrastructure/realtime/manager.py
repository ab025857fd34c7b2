"""Connection management helpers for live websocket channels."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Protocol, Set

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything able to push a JSON message to one client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class ConnectionManager:
    """Own the open transports per (topic, user) and mirror them in the registry.

    A user may hold several sockets on one topic (multiple tabs); the registry
    entry is created with the first socket and removed with the last one.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry
        self._connections: DefaultDict[tuple[str, str], Set[Transport]] = defaultdict(set)

    async def connect(self, topic_id: str, user_id: str, websocket: Any) -> None:
        """Accept the websocket connection and register it on ``topic_id``."""

        await websocket.accept()
        self.attach(topic_id, user_id, websocket)

    def attach(self, topic_id: str, user_id: str, transport: Transport) -> None:
        """Register an already-open ``transport`` for ``user_id`` on ``topic_id``."""

        self._connections[(topic_id, user_id)].add(transport)
        self.registry.register(topic_id, user_id)

    def disconnect(self, topic_id: str, user_id: str, transport: Transport) -> None:
        """Remove ``transport``; unregister the user once no transport is left."""

        key = (topic_id, user_id)
        connections = self._connections.get(key)
        if connections is not None:
            connections.discard(transport)
            if connections:
                return
            self._connections.pop(key, None)
        self.registry.unregister(topic_id, user_id)

    def heartbeat(self, topic_id: str, user_id: str) -> None:
        self.registry.touch(topic_id, user_id)

    def transports_for(self, topic_id: str, user_id: str) -> list[Transport]:
        return list(self._connections.get((topic_id, user_id), set()))

    async def send_to_member(
        self, topic_id: str, user_id: str, message: dict[str, Any]
    ) -> bool:
        """Send ``message`` to every transport of ``user_id`` on ``topic_id``.

        Broken transports are dropped. Returns ``True`` when at least one
        transport accepted the message.
        """

        delivered = False
        for transport in self.transports_for(topic_id, user_id):
            try:
                await transport.send_json(message)
            except Exception as exc:
                logger.debug(
                    "Dropping transport for %s on %s after send failure: %s",
                    user_id,
                    topic_id,
                    exc,
                )
                self.disconnect(topic_id, user_id, transport)
            else:
                delivered = True
        return delivered


__all__ = ["ConnectionManager", "Transport"]
