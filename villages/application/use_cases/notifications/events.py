"""Utility helpers to generate and dispatch domain notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from villages.domain.entities import (
    BatchDispatchResult,
    DispatchResult,
    NotificationContent,
    NotificationType,
    RealtimeEvent,
    RenderContext,
)
from villages.infrastructure.realtime import LiveBroadcaster
from villages.utils import now_in_app_timezone

from .dispatcher import NotificationDispatcher
from .templates import (
    RenderedTemplate,
    render_care_update,
    render_emergency_alert,
    render_family_activity,
    render_message,
    render_system_announcement,
)

logger = logging.getLogger(__name__)

EVENT_NEW_MESSAGE = "new_message"
PROFILE_REMINDER_LIFETIME = timedelta(days=7)


def _content(
    rendered: RenderedTemplate, *, data: dict | None = None, action_url: str | None = None
) -> NotificationContent:
    payload = dict(data or {})
    if rendered.rich_message:
        payload["rich_message"] = rendered.rich_message
    if rendered.cta_label:
        payload["cta_label"] = rendered.cta_label
    return NotificationContent(
        title=rendered.title,
        message=rendered.message,
        data=payload or None,
        action_url=action_url,
        is_actionable=bool(action_url),
    )


async def notify_message_posted(
    dispatcher: NotificationDispatcher,
    broadcaster: LiveBroadcaster,
    *,
    conversation_id: str,
    message_id: str,
    sender_id: str,
    sender_name: str,
    message_preview: str,
    participant_ids: Iterable[str],
    action_url: str | None = None,
) -> BatchDispatchResult:
    """Fan a new chat message out to the conversation and notify the other participants.

    Participants currently viewing the conversation receive the message on
    its topic and a live badge; the rest get a persisted notification.
    """

    event = RealtimeEvent(
        type=EVENT_NEW_MESSAGE,
        data={
            "conversation_id": conversation_id,
            "message_id": message_id,
            "sender_id": sender_id,
            "sender_name": sender_name,
            "content": message_preview,
        },
    )
    try:
        await broadcaster.publish(conversation_id, event)
    except Exception as exc:
        logger.warning(
            "Broadcast of message %s to conversation %s failed: %s",
            message_id,
            conversation_id,
            exc,
            extra={"topic_id": conversation_id},
        )

    recipients = [user_id for user_id in participant_ids if user_id and user_id != sender_id]
    content = _content(
        render_message(
            sender_name=sender_name, message_preview=message_preview, action_url=action_url
        ),
        data={
            "conversationId": conversation_id,
            "messageId": message_id,
            "senderId": sender_id,
        },
        action_url=action_url,
    )
    return await dispatcher.dispatch_bulk(
        recipients,
        NotificationType.MESSAGE,
        content,
        RenderContext(origin_topic_id=conversation_id),
    )


async def notify_care_update(
    dispatcher: NotificationDispatcher,
    *,
    recipient_ids: Iterable[str],
    family_id: str,
    update_title: str,
    update_content: str,
    update_author: str,
    family_name: str,
    action_url: str | None = None,
) -> BatchDispatchResult:
    """Notify family members and volunteers about a new care update."""

    content = _content(
        render_care_update(
            update_title=update_title,
            update_content=update_content,
            update_author=update_author,
            family_name=family_name,
            action_url=action_url,
        ),
        data={"familyId": family_id},
        action_url=action_url,
    )
    return await dispatcher.dispatch_bulk(recipient_ids, NotificationType.CARE_UPDATE, content)


async def notify_emergency_alert(
    dispatcher: NotificationDispatcher,
    *,
    recipient_ids: Iterable[str],
    family_id: str,
    alert_title: str,
    alert_content: str,
    severity: str = "medium",
    contact_info: str | None = None,
    action_url: str | None = None,
) -> BatchDispatchResult:
    content = _content(
        render_emergency_alert(
            alert_title=alert_title,
            alert_content=alert_content,
            severity=severity,
            contact_info=contact_info,
            action_url=action_url,
        ),
        data={"familyId": family_id, "severity": severity},
        action_url=action_url,
    )
    return await dispatcher.dispatch_bulk(
        recipient_ids, NotificationType.EMERGENCY_ALERT, content
    )


async def notify_system_announcement(
    dispatcher: NotificationDispatcher,
    *,
    recipient_ids: Iterable[str],
    announcement_title: str,
    announcement_content: str,
    author_name: str = "Living & Leaving Team",
    action_url: str | None = None,
    expires_at: datetime | None = None,
) -> BatchDispatchResult:
    content = _content(
        render_system_announcement(
            announcement_title=announcement_title,
            announcement_content=announcement_content,
            author_name=author_name,
            action_url=action_url,
        ),
        action_url=action_url,
    )
    return await dispatcher.dispatch_bulk(
        recipient_ids,
        NotificationType.SYSTEM_ANNOUNCEMENT,
        content,
        RenderContext(expires_at=expires_at),
    )


async def notify_family_activity(
    dispatcher: NotificationDispatcher,
    *,
    recipient_ids: Iterable[str],
    family_id: str,
    activity_title: str,
    activity_description: str,
    family_name: str,
    action_url: str | None = None,
) -> BatchDispatchResult:
    content = _content(
        render_family_activity(
            activity_title=activity_title,
            activity_description=activity_description,
            family_name=family_name,
            action_url=action_url,
        ),
        data={"familyId": family_id},
        action_url=action_url,
    )
    return await dispatcher.dispatch_bulk(
        recipient_ids, NotificationType.FAMILY_ACTIVITY, content
    )


async def notify_simple(
    dispatcher: NotificationDispatcher,
    recipient_id: str,
    *,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM_ANNOUNCEMENT,
    action_url: str | None = None,
    expires_at: datetime | None = None,
) -> DispatchResult:
    """Send a plain in-app notification without a template."""

    content = NotificationContent(
        title=title,
        message=message,
        action_url=action_url,
        is_actionable=bool(action_url),
    )
    return await dispatcher.dispatch_notification(
        recipient_id, type, content, RenderContext(expires_at=expires_at)
    )


async def welcome_new_user(dispatcher: NotificationDispatcher, user_id: str) -> DispatchResult:
    return await notify_simple(
        dispatcher,
        user_id,
        title="Welcome to Living & Leaving!",
        message=(
            "Get started by setting up your family profile and inviting family "
            "members to join."
        ),
    )


async def remind_complete_profile(
    dispatcher: NotificationDispatcher, user_id: str
) -> DispatchResult:
    return await notify_simple(
        dispatcher,
        user_id,
        title="Complete Your Profile",
        message="Help your family connect with you by completing your profile information.",
        action_url="/profile",
        expires_at=now_in_app_timezone() + PROFILE_REMINDER_LIFETIME,
    )


__all__ = [
    "EVENT_NEW_MESSAGE",
    "notify_care_update",
    "notify_emergency_alert",
    "notify_family_activity",
    "notify_message_posted",
    "notify_simple",
    "notify_system_announcement",
    "remind_complete_profile",
    "welcome_new_user",
]
