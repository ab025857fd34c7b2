"""Decide, per recipient, between live delivery and a persisted notification."""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol, TypeVar

import anyio

from villages.domain.entities import (
    BatchDispatchResult,
    DispatchResult,
    Notification,
    NotificationContent,
    NotificationType,
    RenderContext,
)
from villages.infrastructure.realtime import ConnectionRegistry, NotificationPublisher
from villages.utils import now_in_app_timezone

logger = logging.getLogger(__name__)

R = TypeVar("R")


class NotificationStore(Protocol):
    """Subset of the notification repository the dispatcher relies on."""

    def create(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        is_actionable: bool = False,
        action_url: str | None = None,
        expires_at: datetime | None = None,
    ) -> Notification: ...

    def get_unread_count(self, user_id: str) -> int: ...

    def mark_as_read(self, notification_id: int) -> Notification: ...

    def mark_all_as_read(self, user_id: str) -> int: ...


class NotificationDispatcher:
    """Route one event to each recipient through the cheapest adequate path.

    A recipient who is live on the event's originating topic is already
    looking at the context, so they only get a live push on their personal
    channel. Everyone else gets a persisted record plus a best-effort push so
    badges update wherever they happen to be connected.

    Presence is only checked on the originating topic. A recipient live on a
    different topic still gets a persisted record.

    Store calls run in a worker thread, one at a time, since the repository
    wraps a single session.
    """

    def __init__(
        self,
        repository: NotificationStore,
        registry: ConnectionRegistry,
        publisher: NotificationPublisher,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._publisher = publisher
        self._store_lock = asyncio.Lock()

    async def dispatch_notification(
        self,
        recipient_id: str,
        type: NotificationType,
        content: NotificationContent,
        render_context: RenderContext | None = None,
    ) -> DispatchResult:
        """Deliver one notification and report what happened. Never raises."""

        context = render_context or RenderContext()
        origin = context.origin_topic_id
        log_context = {"user_id": recipient_id, "topic_id": origin}

        if origin is not None and self._registry.is_connected(origin, recipient_id):
            try:
                await self._publisher.push_content(recipient_id, type, content)
            except Exception as exc:
                logger.warning(
                    "Live delivery to %s failed, persisting instead: %s",
                    recipient_id,
                    exc,
                    extra=log_context,
                )
            else:
                logger.info(
                    "Delivered %s live to %s viewing %s",
                    NotificationType(type).value,
                    recipient_id,
                    origin,
                    extra=log_context,
                )
                return DispatchResult(
                    recipient_id=recipient_id,
                    success=True,
                    sse_delivered=True,
                    persisted=False,
                )

        try:
            notification = await self._call_store(
                self._repository.create,
                recipient_id,
                type,
                content.title,
                content.message,
                data=content.data,
                is_actionable=content.is_actionable,
                action_url=content.action_url,
                expires_at=context.expires_at,
            )
        except Exception as exc:
            logger.error(
                "Persisting notification for %s failed: %s",
                recipient_id,
                exc,
                extra=log_context,
            )
            return DispatchResult(
                recipient_id=recipient_id,
                success=False,
                error=f"Persistence failed: {exc}",
            )

        logger.info(
            "Notification %s created for %s",
            notification.id,
            recipient_id,
            extra={**log_context, "notification_id": notification.id},
        )
        result = DispatchResult(
            recipient_id=recipient_id,
            success=True,
            persisted=True,
            notification_id=notification.id,
        )
        result.sse_delivered, result.error = await self._push_persisted(notification)
        return result

    async def dispatch_bulk(
        self,
        recipient_ids: Iterable[str],
        type: NotificationType,
        content: NotificationContent,
        render_context: RenderContext | None = None,
    ) -> BatchDispatchResult:
        """Dispatch to every recipient; one failure never cancels the others."""

        recipients: list[str] = []
        for recipient_id in recipient_ids:
            if recipient_id and recipient_id not in recipients:
                recipients.append(recipient_id)

        outcomes = await asyncio.gather(
            *(
                self.dispatch_notification(recipient_id, type, content, render_context)
                for recipient_id in recipients
            ),
            return_exceptions=True,
        )

        results: list[DispatchResult] = []
        for recipient_id, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Dispatch to %s failed unexpectedly: %s",
                    recipient_id,
                    outcome,
                    extra={"user_id": recipient_id},
                )
                outcome = DispatchResult(
                    recipient_id=recipient_id,
                    success=False,
                    error=f"Failed to dispatch: {outcome}",
                )
            results.append(outcome)

        batch = BatchDispatchResult(results=results)
        logger.info(
            "Bulk dispatch complete: total=%d success=%d failed=%d delivered=%d persisted=%d",
            len(results),
            batch.success_count,
            batch.failure_count,
            batch.delivered_count,
            batch.persisted_count,
        )
        return batch

    async def mark_notification_as_read(self, notification_id: int, user_id: str) -> Notification:
        """Mark one notification read and refresh the owner's live counters."""

        notification = await self._call_store(self._repository.mark_as_read, notification_id)
        try:
            await self._publisher.push_notification_read(user_id, notification_id)
            await self._publisher.push_unread_count(
                user_id, await self._call_store(self._repository.get_unread_count, user_id)
            )
        except Exception as exc:
            logger.warning(
                "Could not push read state for %s: %s",
                notification_id,
                exc,
                extra={"user_id": user_id, "notification_id": notification_id},
            )
        return notification

    async def mark_all_notifications_as_read(self, user_id: str) -> int:
        """Mark every notification of ``user_id`` read and tell their live channels."""

        updated = await self._call_store(self._repository.mark_all_as_read, user_id)
        try:
            await self._publisher.push_all_read(user_id)
            await self._publisher.push_unread_count(user_id, 0)
        except Exception as exc:
            logger.warning(
                "Could not push all-read for %s: %s", user_id, exc, extra={"user_id": user_id}
            )
        return updated

    async def _call_store(self, func: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        async with self._store_lock:
            return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))

    async def _push_persisted(self, notification: Notification) -> tuple[bool, str | None]:
        recipient_id = notification.recipient_id
        log_context = {"user_id": recipient_id, "notification_id": notification.id}
        try:
            await self._publisher.push_notification(notification)
        except Exception as exc:
            logger.warning(
                "Live push of notification %s failed: %s",
                notification.id,
                exc,
                extra=log_context,
            )
            return False, f"Live push failed: {exc}"

        if notification.created_at is not None and notification.created_at.tzinfo is not None:
            latency = now_in_app_timezone() - notification.created_at
            log_context["latency_ms"] = int(latency.total_seconds() * 1000)
        logger.debug("Pushed notification %s", notification.id, extra=log_context)

        try:
            await self._publisher.push_unread_count(
                recipient_id,
                await self._call_store(self._repository.get_unread_count, recipient_id),
            )
        except Exception as exc:
            logger.debug(
                "Unread count refresh for %s skipped: %s", recipient_id, exc, extra=log_context
            )
        return True, None


__all__ = ["NotificationDispatcher", "NotificationStore"]
