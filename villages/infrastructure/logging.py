"""Logging configuration and the in-memory buffer behind the admin log view."""

from __future__ import annotations

import logging
import logging.config
from collections import deque
from datetime import datetime, timezone
from typing import Any

from villages.config import Settings, get_settings

PIPELINE_LOGGERS = (
    "villages.application.use_cases.notifications",
    "villages.infrastructure.realtime",
)
_CONTEXT_FIELDS = ("notification_id", "user_id", "topic_id", "latency_ms")


class RecentRecordsHandler(logging.Handler):
    """Keep the most recent records as plain dictionaries, newest first."""

    def __init__(self, capacity: int = 500, level: int = logging.DEBUG) -> None:
        super().__init__(level=level)
        self._records: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = str(record.exc_info[1])
        self._records.appendleft(entry)

    def recent(
        self,
        limit: int = 100,
        *,
        level: str | None = None,
        user_id: str | None = None,
        notification_id: int | None = None,
    ) -> list[dict[str, Any]]:
        selected = []
        for entry in self._records:
            if level is not None and entry["level"] != level.upper():
                continue
            if user_id is not None and entry.get("user_id") != user_id:
                continue
            if notification_id is not None and entry.get("notification_id") != notification_id:
                continue
            selected.append(entry)
            if len(selected) >= limit:
                break
        return selected

    def clear(self) -> None:
        self._records.clear()


_pipeline_handler: RecentRecordsHandler | None = None


def get_pipeline_log_buffer() -> RecentRecordsHandler:
    """Return the buffer attached to the notification pipeline loggers."""

    global _pipeline_handler
    if _pipeline_handler is None:
        capacity = get_settings().notification_log_buffer_size
        _pipeline_handler = RecentRecordsHandler(capacity=capacity)
        for name in PIPELINE_LOGGERS:
            pipeline_logger = logging.getLogger(name)
            pipeline_logger.addHandler(_pipeline_handler)
            if pipeline_logger.level == logging.NOTSET:
                pipeline_logger.setLevel(logging.DEBUG)
    return _pipeline_handler


def configure_logging(settings: Settings | None = None) -> None:
    """Configure console logging and attach the pipeline buffer."""

    settings = settings or get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": settings.log_level.upper(),
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
    get_pipeline_log_buffer()


__all__ = [
    "PIPELINE_LOGGERS",
    "RecentRecordsHandler",
    "configure_logging",
    "get_pipeline_log_buffer",
]
