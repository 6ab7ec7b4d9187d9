"""Data models for the chat session and emote catalogs."""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union


class SessionStatus(str, Enum):
    """Lifecycle of an EventSub WebSocket session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class BadgeType(str, Enum):
    """Chat badges that are kept; anything else is dropped."""

    BROADCASTER = "broadcaster"
    MODERATOR = "moderator"
    VIP = "vip"
    SUBSCRIBER = "subscriber"
    PREMIUM = "premium"
    STAFF = "staff"
    GLOBAL_MOD = "global_mod"
    ADMIN = "admin"


class EmoteProviderType(str, Enum):
    """Emote catalog sources, in merge priority order."""

    TWITCH = "twitch"
    SEVENTV = "7tv"
    BTTV = "bttv"
    FFZ = "ffz"


@dataclass(frozen=True)
class SessionState:
    """Observable snapshot of a chat session."""

    status: SessionStatus = SessionStatus.IDLE
    session_id: str | None = None
    reconnect_attempt: int = 0
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.status == SessionStatus.OPEN


@dataclass(frozen=True)
class ChatBadge:
    """A chat badge (sub, mod, etc.)."""

    type: BadgeType
    info: str | None = None  # e.g. subscriber months


@dataclass(frozen=True)
class ChatMessage:
    """A single chat message from channel.chat.message."""

    id: str
    sender_id: str
    sender_login: str
    sender_display_name: str
    text: str
    timestamp: str  # ISO-8601 from frame metadata
    color: str | None = None
    badges: tuple[ChatBadge, ...] = ()


@dataclass(frozen=True)
class ChannelNotification:
    """Human-readable rendering of a non-chat channel event."""

    id: str
    event_type: str
    text: str
    timestamp: str


ChatItem = Union[ChatMessage, ChannelNotification]


@dataclass(frozen=True)
class ChatEmote:
    """An emote from any provider."""

    id: str
    name: str  # Text code (e.g., "KEKW")
    url: str
    provider: EmoteProviderType
    source: str = ""  # "Global", "Available", "Channel", "Shared"
    resolved_at: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "provider": self.provider.value,
            "source": self.source,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatEmote":
        return cls(
            id=data["id"],
            name=data["name"],
            url=data["url"],
            provider=EmoteProviderType(data["provider"]),
            source=data.get("source", ""),
            resolved_at=data.get("resolved_at", 0.0),
        )


@dataclass(frozen=True)
class EmoteCatalog:
    """Name-keyed emote map for one channel.

    Never edited in place; a refresh builds a new catalog.
    """

    channel: str
    emotes: Mapping[str, ChatEmote]
    populated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.emotes, MappingProxyType):
            object.__setattr__(self, "emotes", MappingProxyType(dict(self.emotes)))

    def __len__(self) -> int:
        return len(self.emotes)

    def __contains__(self, name: object) -> bool:
        return name in self.emotes

    def get(self, name: str) -> ChatEmote | None:
        return self.emotes.get(name)

    @classmethod
    def empty(cls, channel: str) -> "EmoteCatalog":
        return cls(channel=channel, emotes={}, populated_at=0.0)
