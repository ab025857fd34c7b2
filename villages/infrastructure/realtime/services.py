"""Wiring of the realtime components into one service object."""

from __future__ import annotations

from dataclasses import dataclass

from villages.config import Settings, get_settings

from .broadcaster import LiveBroadcaster
from .manager import ConnectionManager
from .publisher import NotificationPublisher
from .registry import ConnectionRegistry


@dataclass
class RealtimeServices:
    """Registry, transports and publishers sharing one membership table."""

    registry: ConnectionRegistry
    manager: ConnectionManager
    broadcaster: LiveBroadcaster
    publisher: NotificationPublisher

    def start(self) -> None:
        self.registry.start()

    async def stop(self) -> None:
        await self.broadcaster.drain()
        await self.registry.stop()


def build_realtime_services(settings: Settings | None = None) -> RealtimeServices:
    """Create a fresh, unstarted set of realtime services."""

    settings = settings or get_settings()
    registry = ConnectionRegistry(
        ttl_seconds=settings.realtime_ttl_seconds,
        sweep_interval_seconds=settings.realtime_sweep_interval_seconds,
    )
    manager = ConnectionManager(registry)
    broadcaster = LiveBroadcaster(manager)
    return RealtimeServices(
        registry=registry,
        manager=manager,
        broadcaster=broadcaster,
        publisher=NotificationPublisher(broadcaster),
    )


__all__ = ["RealtimeServices", "build_realtime_services"]
