"""Human-readable text for non-chat channel events."""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from .models import ChannelNotification


def _toggle(enabled: bool, label: str) -> str:
    return f"{label} enabled" if enabled else f"{label} disabled"


def format_chat_settings(event: dict[str, Any]) -> str:
    """Combine every sub-setting present in the event into one sentence."""
    parts: list[str] = []

    if event.get("emote_mode") is not None:
        parts.append(_toggle(event["emote_mode"], "Emote Only Mode"))

    if event.get("follower_mode") is not None:
        if event["follower_mode"]:
            duration = event.get("follower_mode_duration_minutes") or 0
            if duration > 0:
                parts.append(f"Followers Only Mode enabled ({duration} minutes)")
            else:
                parts.append("Followers Only Mode enabled")
        else:
            parts.append("Followers Only Mode disabled")

    if event.get("slow_mode") is not None:
        if event["slow_mode"]:
            parts.append(f"Slow Mode enabled ({event.get('slow_mode_wait_time_seconds')} seconds)")
        else:
            parts.append("Slow Mode disabled")

    if event.get("subscriber_mode") is not None:
        parts.append(_toggle(event["subscriber_mode"], "Subscribers Only Mode"))

    if event.get("unique_chat_mode") is not None:
        parts.append(_toggle(event["unique_chat_mode"], "Unique Chat Mode"))

    return ", ".join(parts) if parts else "Chat settings updated"


def _format_ban(event: dict[str, Any]) -> str:
    reason = event.get("reason")
    suffix = f": {reason}" if reason else ""
    return f"{event.get('user_name', 'Someone')} has been banned{suffix}"


_EVENT_FORMATTERS: dict[str, Callable[[dict[str, Any]], str]] = {
    "channel.chat_settings.update": format_chat_settings,
    "channel.moderator.add": lambda e: f"{e.get('user_name', 'Someone')} has been made a moderator",
    "channel.moderator.remove": lambda e: f"{e.get('user_name', 'Someone')} is no longer a moderator",
    "channel.ban": _format_ban,
    "channel.unban": lambda e: f"{e.get('user_name', 'Someone')} has been unbanned",
}


def format_channel_event(event_type: str, event: dict[str, Any] | None) -> str:
    """Render a channel event. Unknown types get a generic line; never raises."""
    formatter = _EVENT_FORMATTERS.get(event_type)
    if formatter is None:
        return f"Channel event: {event_type}"
    try:
        return formatter(event or {})
    except (TypeError, ValueError, AttributeError):
        return f"Channel event: {event_type}"


def build_notification(
    event_type: str, event: dict[str, Any] | None, timestamp: str = ""
) -> ChannelNotification:
    """Create a ChannelNotification for a non-chat event."""
    return ChannelNotification(
        id=f"notification_{uuid.uuid4().hex}",
        event_type=event_type,
        text=format_channel_event(event_type, event),
        timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
    )
