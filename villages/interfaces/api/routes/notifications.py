"""Inbox endpoints for the authenticated user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from villages.application.use_cases.notifications import NotificationDispatcher
from villages.domain.entities import CurrentUser, Notification, NotificationType
from villages.domain.errors import VillagesError
from villages.infrastructure.realtime import RealtimeServices
from villages.infrastructure.repositories import NotificationRepository
from villages.interfaces.api.dependencies import (
    get_current_user,
    get_dispatcher,
    get_notification_repository,
    get_realtime_services,
)
from villages.interfaces.api.routes_helpers import to_http_exception
from villages.interfaces.api.schemas import (
    BulkUpdateResponse,
    MarkReadBySourceRequest,
    NotificationPage,
    NotificationRead,
    NotificationUpdate,
    UnreadCountRead,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_to_schema(notification: Notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id or 0,
        recipient_id=notification.recipient_id,
        type=notification.type,
        title=notification.title,
        message=notification.message,
        data=notification.data or {},
        is_actionable=notification.is_actionable,
        action_url=notification.action_url,
        is_read=notification.is_read,
        created_at=notification.created_at,
        read_at=notification.read_at,
        expires_at=notification.expires_at,
    )


def _get_owned_notification(
    repository: NotificationRepository,
    notification_id: int,
    current_user: CurrentUser,
    *,
    allow_admin: bool = False,
) -> Notification:
    try:
        notification = repository.get(notification_id)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )
    if notification.recipient_id != current_user.id and not (
        allow_admin and current_user.is_admin()
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return notification


@router.get("", response_model=NotificationPage)
def list_notifications(
    is_read: bool | None = Query(None),
    type: NotificationType | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    repository: NotificationRepository = Depends(get_notification_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationPage:
    """Return a page of the caller's unexpired notifications, newest first."""

    try:
        result = repository.list(
            current_user.id, is_read=is_read, type=type, page=page, limit=limit
        )
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return NotificationPage(
        items=[_notification_to_schema(notification) for notification in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_next_page=result.has_next_page,
        has_prev_page=result.has_prev_page,
    )


@router.get("/unread-count", response_model=UnreadCountRead)
def get_unread_count(
    repository: NotificationRepository = Depends(get_notification_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> UnreadCountRead:
    try:
        count = repository.get_unread_count(current_user.id)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return UnreadCountRead(count=count)


@router.get("/{notification_id}", response_model=NotificationRead)
def get_notification(
    notification_id: int,
    repository: NotificationRepository = Depends(get_notification_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationRead:
    notification = _get_owned_notification(
        repository, notification_id, current_user, allow_admin=True
    )
    return _notification_to_schema(notification)


@router.patch("/{notification_id}", response_model=NotificationRead)
async def update_notification(
    notification_id: int,
    payload: NotificationUpdate,
    repository: NotificationRepository = Depends(get_notification_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationRead:
    """Mark one of the caller's notifications as read."""

    if not payload.is_read:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Notifications cannot be marked as unread",
        )
    await run_in_threadpool(
        _get_owned_notification, repository, notification_id, current_user
    )
    try:
        notification = await dispatcher.mark_notification_as_read(
            notification_id, current_user.id
        )
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return _notification_to_schema(notification)


@router.post("/mark-all-read", response_model=BulkUpdateResponse)
async def mark_all_read(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkUpdateResponse:
    try:
        updated = await dispatcher.mark_all_notifications_as_read(current_user.id)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return BulkUpdateResponse(updated=updated)


@router.post("/mark-read-by-source", response_model=BulkUpdateResponse)
async def mark_read_by_source(
    payload: MarkReadBySourceRequest,
    repository: NotificationRepository = Depends(get_notification_repository),
    realtime: RealtimeServices = Depends(get_realtime_services),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkUpdateResponse:
    """Mark read everything produced by one source, e.g. an opened conversation."""

    try:
        updated = await run_in_threadpool(
            repository.mark_read_by_source,
            current_user.id,
            payload.source_field,
            payload.source_value,
        )
        if updated:
            count = await run_in_threadpool(repository.get_unread_count, current_user.id)
            await realtime.publisher.push_unread_count(current_user.id, count)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return BulkUpdateResponse(updated=updated)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    repository: NotificationRepository = Depends(get_notification_repository),
    realtime: RealtimeServices = Depends(get_realtime_services),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Delete a notification; owners and administrators only."""

    notification = await run_in_threadpool(
        _get_owned_notification,
        repository,
        notification_id,
        current_user,
        allow_admin=True,
    )
    try:
        await run_in_threadpool(repository.delete, notification_id)
        if not notification.is_read:
            count = await run_in_threadpool(
                repository.get_unread_count, notification.recipient_id
            )
            await realtime.publisher.push_unread_count(notification.recipient_id, count)
    except VillagesError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
