"""Chat connections."""

from .base import BaseChatConnection
from .eventsub import EventSubChatConnection
from .subscription import (
    DuplicateSubscriptionError,
    StaleSubscriptionError,
    SubscriptionError,
    SubscriptionManager,
)
from .transport import WebSocketTransport

__all__ = [
    "BaseChatConnection",
    "DuplicateSubscriptionError",
    "EventSubChatConnection",
    "StaleSubscriptionError",
    "SubscriptionError",
    "SubscriptionManager",
    "WebSocketTransport",
]
