"""Notification templates with ``{{variable}}`` interpolation."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from villages.domain.entities import NotificationType

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

MESSAGE_PREVIEW_LENGTH = 100
CARE_UPDATE_PREVIEW_LENGTH = 200
ANNOUNCEMENT_PREVIEW_LENGTH = 150
ACTIVITY_PREVIEW_LENGTH = 150

SEVERITY_PREFIXES = {
    "critical": "CRITICAL",
    "high": "URGENT",
    "medium": "ALERT",
    "low": "Notice",
}


@dataclass(frozen=True)
class NotificationTemplate:
    type: NotificationType
    title: str
    message: str
    rich_message: str | None = None
    cta_label: str | None = None
    cta_url: str | None = None


@dataclass
class RenderedTemplate:
    title: str
    message: str
    rich_message: str | None = None
    cta_label: str | None = None
    cta_url: str | None = None


MESSAGE_TEMPLATE = NotificationTemplate(
    type=NotificationType.MESSAGE,
    title="New message from {{senderName}}",
    message="{{messagePreview}}",
    rich_message="**{{senderName}}** sent you a message:\n\n> {{messagePreview}}",
    cta_label="Reply",
    cta_url="{{actionUrl}}",
)

CARE_UPDATE_TEMPLATE = NotificationTemplate(
    type=NotificationType.CARE_UPDATE,
    title="Care Update: {{updateTitle}}",
    message="{{updateAuthor}} posted an update for {{familyName}}",
    rich_message="## {{updateTitle}}\n\n{{updateContent}}\n\n*Posted by {{updateAuthor}}*",
    cta_label="View Update",
    cta_url="{{actionUrl}}",
)

EMERGENCY_ALERT_TEMPLATE = NotificationTemplate(
    type=NotificationType.EMERGENCY_ALERT,
    title="URGENT: {{alertTitle}}",
    message="{{alertContent}}",
    rich_message=(
        "## Emergency Alert\n\n**{{alertTitle}}**\n\n{{alertContent}}"
        "\n\n---\n\n*Contact: {{contactInfo}}*"
    ),
    cta_label="View Details",
    cta_url="{{actionUrl}}",
)

SYSTEM_ANNOUNCEMENT_TEMPLATE = NotificationTemplate(
    type=NotificationType.SYSTEM_ANNOUNCEMENT,
    title="{{announcementTitle}}",
    message="{{announcementContent}}",
    rich_message="## {{announcementTitle}}\n\n{{announcementContent}}\n\n*From the {{authorName}}*",
    cta_label="Learn More",
    cta_url="{{actionUrl}}",
)

FAMILY_ACTIVITY_TEMPLATE = NotificationTemplate(
    type=NotificationType.FAMILY_ACTIVITY,
    title="{{activityTitle}}",
    message="{{activityDescription}}",
    rich_message="## {{activityTitle}}\n\n{{activityDescription}}\n\n*{{familyName}} Family*",
    cta_label="View Activity",
    cta_url="{{actionUrl}}",
)


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders; missing or ``None`` values become empty."""

    def _substitute(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


def render_template(
    template: NotificationTemplate, variables: Mapping[str, Any]
) -> RenderedTemplate:
    def _optional(value: str | None) -> str | None:
        return interpolate(value, variables) if value else None

    return RenderedTemplate(
        title=interpolate(template.title, variables),
        message=interpolate(template.message, variables),
        rich_message=_optional(template.rich_message),
        cta_label=_optional(template.cta_label),
        cta_url=_optional(template.cta_url),
    )


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def get_display_name(
    first_name: str | None, last_name: str | None, email: str | None = None
) -> str:
    if first_name and last_name:
        return f"{first_name} {last_name}"
    if first_name:
        return first_name
    if last_name:
        return last_name
    if email:
        return email.split("@")[0]
    return "Unknown"


def format_notification_date(value: datetime, *, now: datetime | None = None) -> str:
    """Render ``value`` relative to ``now`` ("5 minutes ago", "Mar 3")."""

    now = now or datetime.now(tz=value.tzinfo or timezone.utc)
    elapsed = (now - value).total_seconds()
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    if days < 7:
        return f"{days} day{'' if days == 1 else 's'} ago"
    label = f"{value:%b} {value.day}"
    if value.year != now.year:
        label = f"{label}, {value.year}"
    return label


def render_message(
    *, sender_name: str, message_preview: str, action_url: str | None = None
) -> RenderedTemplate:
    return render_template(
        MESSAGE_TEMPLATE,
        {
            "senderName": sender_name,
            "messagePreview": truncate_text(message_preview, MESSAGE_PREVIEW_LENGTH),
            "actionUrl": action_url,
        },
    )


def render_care_update(
    *,
    update_title: str,
    update_content: str,
    update_author: str,
    family_name: str,
    action_url: str | None = None,
) -> RenderedTemplate:
    return render_template(
        CARE_UPDATE_TEMPLATE,
        {
            "updateTitle": update_title,
            "updateContent": truncate_text(update_content, CARE_UPDATE_PREVIEW_LENGTH),
            "updateAuthor": update_author,
            "familyName": family_name,
            "actionUrl": action_url,
        },
    )


def render_emergency_alert(
    *,
    alert_title: str,
    alert_content: str,
    severity: str = "medium",
    contact_info: str | None = None,
    action_url: str | None = None,
) -> RenderedTemplate:
    prefix = SEVERITY_PREFIXES.get(severity.lower(), SEVERITY_PREFIXES["low"])
    template = replace(EMERGENCY_ALERT_TEMPLATE, title=f"{prefix}: {{{{alertTitle}}}}")
    return render_template(
        template,
        {
            "alertTitle": alert_title,
            "alertContent": alert_content,
            "contactInfo": contact_info,
            "actionUrl": action_url,
        },
    )


def render_system_announcement(
    *,
    announcement_title: str,
    announcement_content: str,
    author_name: str = "Living & Leaving Team",
    action_url: str | None = None,
) -> RenderedTemplate:
    return render_template(
        SYSTEM_ANNOUNCEMENT_TEMPLATE,
        {
            "announcementTitle": announcement_title,
            "announcementContent": truncate_text(
                announcement_content, ANNOUNCEMENT_PREVIEW_LENGTH
            ),
            "authorName": author_name,
            "actionUrl": action_url,
        },
    )


def render_family_activity(
    *,
    activity_title: str,
    activity_description: str,
    family_name: str,
    action_url: str | None = None,
) -> RenderedTemplate:
    return render_template(
        FAMILY_ACTIVITY_TEMPLATE,
        {
            "activityTitle": activity_title,
            "activityDescription": truncate_text(
                activity_description, ACTIVITY_PREVIEW_LENGTH
            ),
            "familyName": family_name,
            "actionUrl": action_url,
        },
    )


__all__ = [
    "CARE_UPDATE_TEMPLATE",
    "EMERGENCY_ALERT_TEMPLATE",
    "FAMILY_ACTIVITY_TEMPLATE",
    "MESSAGE_TEMPLATE",
    "NotificationTemplate",
    "RenderedTemplate",
    "SYSTEM_ANNOUNCEMENT_TEMPLATE",
    "format_notification_date",
    "get_display_name",
    "interpolate",
    "render_care_update",
    "render_emergency_alert",
    "render_family_activity",
    "render_message",
    "render_system_announcement",
    "render_template",
    "truncate_text",
]
