"""Websocket channels and presence queries."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from villages.application.use_cases.notifications import NotificationDispatcher
from villages.domain.entities import CurrentUser, is_user_topic, user_topic
from villages.domain.errors import VillagesError
from villages.infrastructure.database import SessionLocal
from villages.infrastructure.realtime import RealtimeServices
from villages.infrastructure.repositories import NotificationRepository
from villages.interfaces.api.dependencies import get_current_user, get_realtime_services
from villages.interfaces.api.schemas import PresenceRead

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008


async def _acknowledge(
    realtime: RealtimeServices, user: CurrentUser, ids: list[object]
) -> None:
    session = SessionLocal()
    try:
        repository = NotificationRepository(session)
        dispatcher = NotificationDispatcher(repository, realtime.registry, realtime.publisher)
        for raw_id in ids:
            if not isinstance(raw_id, int):
                continue
            notification = await run_in_threadpool(repository.get, raw_id)
            if notification is None or notification.recipient_id != user.id:
                continue
            await dispatcher.mark_notification_as_read(raw_id, user.id)
    except VillagesError as exc:
        logger.warning("Acknowledging notifications for %s failed: %s", user.id, exc)
    finally:
        session.close()


@router.websocket("/realtime/ws")
async def realtime_websocket(websocket: WebSocket) -> None:
    """Subscribe the caller to a topic (their personal channel by default)."""

    realtime: RealtimeServices = websocket.app.state.realtime
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=POLICY_VIOLATION)
        return

    try:
        user = websocket.app.state.identity_provider.resolve(token)
    except ValueError:
        await websocket.close(code=POLICY_VIOLATION)
        return

    topic_id = websocket.query_params.get("topic") or user_topic(user.id)
    if is_user_topic(topic_id) and topic_id != user_topic(user.id):
        await websocket.close(code=POLICY_VIOLATION)
        return

    await realtime.manager.connect(topic_id, user.id, websocket)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except WebSocketDisconnect:
                raise
            except ValueError:
                continue

            if not isinstance(message, dict):
                continue

            message_type = message.get("type")
            if message_type == "ping":
                realtime.manager.heartbeat(topic_id, user.id)
                await websocket.send_json({"type": "pong"})
                continue

            if message_type == "ack":
                ids = message.get("ids", [])
                if isinstance(ids, list) and ids:
                    await _acknowledge(realtime, user, ids)
                continue
    except WebSocketDisconnect:
        realtime.manager.disconnect(topic_id, user.id, websocket)
    except Exception:
        realtime.manager.disconnect(topic_id, user.id, websocket)
        raise


@router.get("/conversations/{conversation_id}/presence", response_model=PresenceRead)
def get_presence(
    conversation_id: str,
    realtime: RealtimeServices = Depends(get_realtime_services),
    current_user: CurrentUser = Depends(get_current_user),
) -> PresenceRead:
    """Return the users currently live on a conversation."""

    online = sorted(realtime.registry.connected_users(conversation_id))
    return PresenceRead(
        conversation_id=conversation_id, online_user_ids=online, count=len(online)
    )
