"""EventSub WebSocket frame parsing.

Every frame is JSON of the form::

    {"metadata": {"message_type": ..., "message_timestamp": ...}, "payload": {...}}

``parse_frame`` turns the raw text into one variant of ``Frame`` keyed on
``metadata.message_type``. Malformed input never raises; it becomes an
``UnknownFrame``.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Union

from .models import BadgeType, ChatBadge, ChatMessage

logger = logging.getLogger(__name__)

MESSAGE_TYPE_WELCOME = "session_welcome"
MESSAGE_TYPE_KEEPALIVE = "session_keepalive"
MESSAGE_TYPE_NOTIFICATION = "notification"
MESSAGE_TYPE_RECONNECT = "session_reconnect"
MESSAGE_TYPE_REVOCATION = "revocation"

CHAT_MESSAGE_EVENT = "channel.chat.message"

_ALLOWED_BADGES = {badge.value for badge in BadgeType}


@dataclass(frozen=True)
class WelcomeFrame:
    session_id: str
    keepalive_timeout_seconds: int | None = None
    timestamp: str = ""


@dataclass(frozen=True)
class KeepaliveFrame:
    timestamp: str = ""


@dataclass(frozen=True)
class NotificationFrame:
    subscription_type: str
    event: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""
    message_id: str = ""


@dataclass(frozen=True)
class ReconnectFrame:
    reconnect_url: str | None
    timestamp: str = ""


@dataclass(frozen=True)
class RevocationFrame:
    subscription_id: str
    subscription_type: str
    status: str
    timestamp: str = ""


@dataclass(frozen=True)
class UnknownFrame:
    message_type: str | None
    raw: str = ""


Frame = Union[
    WelcomeFrame, KeepaliveFrame, NotificationFrame, ReconnectFrame, RevocationFrame, UnknownFrame
]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_frame(raw: str) -> Frame:
    """Parse a raw text frame into a typed frame."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Discarding malformed frame: {e}")
        return UnknownFrame(message_type=None, raw=str(raw)[:500])

    if not isinstance(data, dict):
        return UnknownFrame(message_type=None, raw=raw[:500])

    metadata = _as_dict(data.get("metadata"))
    payload = _as_dict(data.get("payload"))
    message_type = metadata.get("message_type")
    if not isinstance(message_type, str):
        message_type = None
    timestamp = metadata.get("message_timestamp", "")

    try:
        if message_type == MESSAGE_TYPE_WELCOME:
            session = _as_dict(payload.get("session"))
            return WelcomeFrame(
                session_id=session["id"],
                keepalive_timeout_seconds=session.get("keepalive_timeout_seconds"),
                timestamp=timestamp,
            )

        if message_type == MESSAGE_TYPE_KEEPALIVE:
            return KeepaliveFrame(timestamp=timestamp)

        if message_type == MESSAGE_TYPE_NOTIFICATION:
            subscription_type = _as_dict(payload.get("subscription"))["type"]
            if not isinstance(subscription_type, str):
                raise TypeError("subscription.type")
            return NotificationFrame(
                subscription_type=subscription_type,
                event=_as_dict(payload.get("event")),
                timestamp=timestamp,
                message_id=metadata.get("message_id", ""),
            )

        if message_type == MESSAGE_TYPE_RECONNECT:
            session = _as_dict(payload.get("session"))
            return ReconnectFrame(
                reconnect_url=session.get("reconnect_url"),
                timestamp=timestamp,
            )

        if message_type == MESSAGE_TYPE_REVOCATION:
            subscription = _as_dict(payload.get("subscription"))
            return RevocationFrame(
                subscription_id=subscription.get("id", ""),
                subscription_type=subscription.get("type", ""),
                status=subscription.get("status", ""),
                timestamp=timestamp,
            )
    except (KeyError, TypeError) as e:
        logger.warning(f"Malformed {message_type} frame: missing {e}")

    return UnknownFrame(message_type=message_type, raw=raw[:500])


def parse_badges(raw_badges: list[dict] | None) -> tuple[ChatBadge, ...]:
    """Map EventSub badges through the allow-list, dropping unknown ones."""
    if not isinstance(raw_badges, list):
        return ()
    badges: list[ChatBadge] = []
    for badge in raw_badges:
        if not isinstance(badge, dict):
            continue
        set_id = badge.get("set_id")
        if not isinstance(set_id, str) or set_id not in _ALLOWED_BADGES:
            continue
        badges.append(ChatBadge(type=BadgeType(set_id), info=badge.get("info") or None))
    return tuple(badges)


def parse_chat_message(event: dict[str, Any], timestamp: str) -> ChatMessage:
    """Build a ChatMessage from a channel.chat.message event.

    The timestamp comes from frame metadata; the event does not carry one.
    """
    message = _as_dict(event.get("message"))
    return ChatMessage(
        id=event.get("message_id") or str(uuid.uuid4()),
        sender_id=event.get("chatter_user_id", ""),
        sender_login=event.get("chatter_user_login", ""),
        sender_display_name=event.get("chatter_user_name", ""),
        text=message.get("text", ""),
        timestamp=timestamp,
        color=event.get("color") or None,
        badges=parse_badges(event.get("badges")),
    )
