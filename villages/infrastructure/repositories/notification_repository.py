"""Persistence helpers for notification entities."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from villages.domain.entities import (
    Notification,
    NotificationStats,
    NotificationType,
    PaginatedNotifications,
)
from villages.domain.errors import NotFoundError, StoreUnavailableError
from villages.infrastructure.models import NotificationModel
from villages.utils import (
    ensure_app_naive_datetime,
    ensure_app_timezone,
    now_in_app_naive_datetime,
)

_UNAVAILABLE_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


class NotificationRepository:
    """Provide CRUD operations for :class:`Notification` objects.

    Connectivity failures raised by SQLAlchemy surface as
    :class:`StoreUnavailableError` so callers can tell an outage apart from
    a bad request.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except _UNAVAILABLE_ERRORS as exc:
            self.session.rollback()
            raise StoreUnavailableError(f"Database connection error: {exc}") from exc
        except Exception:
            # Leave the shared session usable for the next caller.
            self.session.rollback()
            raise

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
    ) -> Notification:
        model = NotificationModel(
            recipient_id=recipient_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            data=data,
            is_actionable=bool(is_actionable),
            action_url=action_url,
            is_read=False,
            created_at=now_in_app_naive_datetime(),
            expires_at=ensure_app_naive_datetime(expires_at),
        )
        with self._guard():
            self.session.add(model)
            self.session.commit()
            self.session.refresh(model)
        return self._to_entity(model)

    def get(self, notification_id: int) -> Notification | None:
        with self._guard():
            model = self.session.get(NotificationModel, notification_id)
        return self._to_entity(model) if model is not None else None

    def list(
        self,
        user_id: str,
        *,
        is_read: bool | None = None,
        type: NotificationType | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaginatedNotifications:
        """Return a page of unexpired notifications, newest first."""

        page = max(page, 1)
        query = self._active_query(user_id)
        if is_read is not None:
            query = query.filter(NotificationModel.is_read.is_(is_read))
        if type is not None:
            query = query.filter(NotificationModel.type == NotificationType(type).value)

        with self._guard():
            total = query.count()
            models = (
                query.order_by(
                    NotificationModel.created_at.desc(), NotificationModel.id.desc()
                )
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        return PaginatedNotifications(
            items=[self._to_entity(model) for model in models],
            total=total,
            page=page,
            limit=limit,
        )

    def get_unread_count(self, user_id: str) -> int:
        query = self._active_query(user_id).filter(NotificationModel.is_read.is_(False))
        with self._guard():
            return query.count()

    def mark_as_read(self, notification_id: int) -> Notification:
        with self._guard():
            model = self.session.get(NotificationModel, notification_id)
            if model is None:
                raise NotFoundError(f"Notification with id {notification_id} not found")
            if not model.is_read:
                model.is_read = True
                model.read_at = now_in_app_naive_datetime()
                self.session.add(model)
                self.session.commit()
                self.session.refresh(model)
        return self._to_entity(model)

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification of ``user_id`` as read."""

        with self._guard():
            updated = (
                self.session.query(NotificationModel)
                .filter(
                    NotificationModel.recipient_id == user_id,
                    NotificationModel.is_read.is_(False),
                )
                .update(
                    {
                        NotificationModel.is_read: True,
                        NotificationModel.read_at: now_in_app_naive_datetime(),
                    },
                    synchronize_session=False,
                )
            )
            self.session.commit()
        return updated

    def mark_read_by_source(
        self, user_id: str, source_field: str, source_value: str
    ) -> int:
        """Mark unread notifications whose ``data[source_field]`` equals ``source_value``."""

        query = self._active_query(user_id).filter(NotificationModel.is_read.is_(False))
        with self._guard():
            candidates = query.all()
            matching = [
                model
                for model in candidates
                if isinstance(model.data, dict)
                and model.data.get(source_field) == source_value
            ]
            if not matching:
                return 0
            read_at = now_in_app_naive_datetime()
            for model in matching:
                model.is_read = True
                model.read_at = read_at
                self.session.add(model)
            self.session.commit()
        return len(matching)

    def delete(self, notification_id: int) -> None:
        with self._guard():
            model = self.session.get(NotificationModel, notification_id)
            if model is None:
                raise NotFoundError(f"Notification with id {notification_id} not found")
            self.session.delete(model)
            self.session.commit()

    def delete_expired(self) -> int:
        with self._guard():
            deleted = (
                self.session.query(NotificationModel)
                .filter(NotificationModel.expires_at.is_not(None))
                .filter(NotificationModel.expires_at < now_in_app_naive_datetime())
                .delete(synchronize_session=False)
            )
            self.session.commit()
        return deleted

    def cleanup_read_older_than(self, days: int = 30) -> int:
        """Delete read notifications whose ``read_at`` is older than ``days``."""

        threshold = now_in_app_naive_datetime() - timedelta(days=days)
        with self._guard():
            deleted = (
                self.session.query(NotificationModel)
                .filter(NotificationModel.is_read.is_(True))
                .filter(NotificationModel.read_at < threshold)
                .delete(synchronize_session=False)
            )
            self.session.commit()
        return deleted

    def get_stats(self, user_id: str) -> NotificationStats:
        with self._guard():
            total = (
                self.session.query(NotificationModel)
                .filter(NotificationModel.recipient_id == user_id)
                .count()
            )
            rows = (
                self.session.query(NotificationModel.type, func.count(NotificationModel.id))
                .filter(NotificationModel.recipient_id == user_id)
                .group_by(NotificationModel.type)
                .all()
            )
        return NotificationStats(
            total=total,
            unread=self.get_unread_count(user_id),
            by_type={row_type: count for row_type, count in rows},
        )

    def _active_query(self, user_id: str):
        now = now_in_app_naive_datetime()
        return self.session.query(NotificationModel).filter(
            NotificationModel.recipient_id == user_id,
            or_(
                NotificationModel.expires_at.is_(None),
                NotificationModel.expires_at > now,
            ),
        )

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            type=NotificationType(model.type),
            title=model.title,
            message=model.message,
            data=model.data,
            is_actionable=bool(model.is_actionable),
            action_url=model.action_url,
            is_read=bool(model.is_read),
            created_at=ensure_app_timezone(model.created_at),
            read_at=ensure_app_timezone(model.read_at),
            expires_at=ensure_app_timezone(model.expires_at),
        )


__all__ = ["NotificationRepository"]
