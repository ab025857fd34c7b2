"""Administrator tooling for the notification pipeline."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from villages.application.use_cases.notifications import NotificationDispatcher
from villages.domain.entities import CurrentUser, NotificationContent, RenderContext
from villages.domain.errors import VillagesError
from villages.infrastructure.logging import get_pipeline_log_buffer
from villages.infrastructure.realtime import RealtimeServices
from villages.infrastructure.repositories import NotificationRepository
from villages.interfaces.api.dependencies import (
    get_dispatcher,
    get_notification_repository,
    get_realtime_services,
    require_admin,
)
from villages.interfaces.api.routes_helpers import to_http_exception
from villages.interfaces.api.schemas import (
    CleanupResponse,
    DispatchResultRead,
    NotificationTestRequest,
    PipelineLogRead,
    PipelineLogsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/notifications", tags=["admin"])


@router.post("/test", response_model=DispatchResultRead)
async def send_test_notification(
    payload: NotificationTestRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(require_admin),
) -> DispatchResultRead:
    """Run one notification through the dispatcher and report the outcome."""

    content = NotificationContent(
        title=payload.title,
        message=payload.message,
        data=payload.data,
        action_url=payload.action_url,
        is_actionable=bool(payload.action_url),
    )
    result = await dispatcher.dispatch_notification(
        payload.recipient_id or current_user.id,
        payload.type,
        content,
        RenderContext(
            origin_topic_id=payload.origin_topic_id, expires_at=payload.expires_at
        ),
    )
    return DispatchResultRead(
        recipient_id=result.recipient_id,
        success=result.success,
        sse_delivered=result.sse_delivered,
        persisted=result.persisted,
        notification_id=result.notification_id,
        error=result.error,
    )


@router.get("/logs", response_model=PipelineLogsResponse)
def list_pipeline_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: str | None = Query(None),
    user_id: str | None = Query(None),
    notification_id: int | None = Query(None),
    realtime: RealtimeServices = Depends(get_realtime_services),
    current_user: CurrentUser = Depends(require_admin),
) -> PipelineLogsResponse:
    """Return recent pipeline log records, newest first."""

    entries = get_pipeline_log_buffer().recent(
        limit, level=level, user_id=user_id, notification_id=notification_id
    )
    return PipelineLogsResponse(
        entries=[PipelineLogRead(**entry) for entry in entries],
        realtime=realtime.registry.stats(),
    )


@router.delete("/logs", response_model=CleanupResponse)
def cleanup_notifications(
    older_than_days: int = Query(30, ge=1),
    repository: NotificationRepository = Depends(get_notification_repository),
    current_user: CurrentUser = Depends(require_admin),
) -> CleanupResponse:
    """Purge expired and long-read notifications and reset the log buffer."""

    try:
        expired = repository.delete_expired()
        read = repository.cleanup_read_older_than(older_than_days)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    get_pipeline_log_buffer().clear()
    logger.info(
        "Notification cleanup by %s: expired=%d read=%d older_than_days=%d",
        current_user.id,
        expired,
        read,
        older_than_days,
    )
    return CleanupResponse(expired_deleted=expired, read_deleted=read)
