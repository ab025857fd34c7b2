from __future__ import annotations

from datetime import datetime, timedelta, timezone

from villages.application.use_cases.notifications.templates import (
    format_notification_date,
    get_display_name,
    interpolate,
    render_emergency_alert,
    render_message,
    truncate_text,
)


def test_interpolate_blanks_missing_values():
    assert interpolate("Hi {{name}}, {{missing}}!", {"name": "Ana"}) == "Hi Ana, !"


def test_message_preview_is_truncated():
    rendered = render_message(sender_name="Ana", message_preview="x" * 150)

    assert rendered.title == "New message from Ana"
    assert len(rendered.message) == 100
    assert rendered.message.endswith("...")
    assert rendered.cta_label == "Reply"


def test_emergency_alert_prefix_follows_severity():
    assert render_emergency_alert(
        alert_title="Fall", alert_content="", severity="critical"
    ).title == "CRITICAL: Fall"
    assert render_emergency_alert(alert_title="Fall", alert_content="").title == "ALERT: Fall"
    assert render_emergency_alert(
        alert_title="Fall", alert_content="", severity="unknown"
    ).title == "Notice: Fall"


def test_truncate_text_keeps_short_text():
    assert truncate_text("short", 10) == "short"


def test_display_name_fallbacks():
    assert get_display_name("Ana", "Silva") == "Ana Silva"
    assert get_display_name(None, None, "ana@example.com") == "ana"
    assert get_display_name(None, None) == "Unknown"


def test_format_notification_date_is_relative():
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    assert format_notification_date(now - timedelta(seconds=20), now=now) == "just now"
    assert format_notification_date(now - timedelta(minutes=1), now=now) == "1 minute ago"
    assert format_notification_date(now - timedelta(hours=3), now=now) == "3 hours ago"
    assert format_notification_date(now - timedelta(days=10), now=now) == "Apr 30"
    assert format_notification_date(now - timedelta(days=400), now=now) == "Apr 6, 2023"
