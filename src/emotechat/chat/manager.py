"""Chat manager - one EventSub session and emote catalog per open channel."""

import asyncio
import dataclasses
import logging
from collections import deque
from collections.abc import Callable

import aiohttp
from PySide6.QtCore import QObject, Signal

from ..api.base import ApiError
from ..api.twitch import IdentityResolutionError, TwitchApiClient
from ..core.settings import Settings
from ..core.storage import JsonStore
from .connections.eventsub import EventSubChatConnection
from .emotes.aggregator import EmoteAggregator
from .emotes.cache import EmoteCatalogCache
from .emotes.favorites import FavoriteEmotes
from .emotes.tokenizer import Segment, tokenize_message
from .models import ChannelNotification, ChatItem, ChatMessage, EmoteCatalog, SessionState
from .sender import ChatSender, clean_message

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[TwitchApiClient, str], EventSubChatConnection]


class ChatManager(QObject):
    """Opens channels, keeps their recent history and tokenizes messages."""

    # channel, ChatMessage (text cleaned), list of str | ChatEmote segments
    message_received = Signal(str, object, list)
    # channel, ChannelNotification
    notification_received = Signal(str, object)
    # channel, EmoteCatalog
    emotes_loaded = Signal(str, object)
    # channel, SessionState
    state_changed = Signal(str, object)
    # channel, message
    error = Signal(str, str)

    def __init__(
        self,
        settings: Settings,
        api: TwitchApiClient | None = None,
        store: JsonStore | None = None,
        aggregator: EmoteAggregator | None = None,
        connection_factory: ConnectionFactory | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.settings = settings
        self._api = api or TwitchApiClient(settings.twitch)
        self._store = store
        if aggregator is None:
            cache = EmoteCatalogCache(store, max_age=settings.chat.emote_cache_max_age)
            aggregator = EmoteAggregator(
                self._api, cache=cache, enabled=settings.chat.emote_providers
            )
        self._aggregator = aggregator
        self._connection_factory = connection_factory or self._create_connection

        self._connections: dict[str, EventSubChatConnection] = {}
        self._history: dict[str, deque[ChatItem]] = {}
        self._senders: dict[str, ChatSender] = {}
        self._emote_tasks: dict[str, asyncio.Task] = {}

    @property
    def api(self) -> TwitchApiClient:
        return self._api

    @property
    def channels(self) -> list[str]:
        return list(self._connections)

    def connection(self, channel: str) -> EventSubChatConnection | None:
        return self._connections.get(channel.lower())

    def is_connected(self, channel: str) -> bool:
        conn = self.connection(channel)
        return conn.is_connected if conn else False

    def _create_connection(self, api: TwitchApiClient, channel: str) -> EventSubChatConnection:
        return EventSubChatConnection(api, channel, settings=self.settings.chat)

    # --- Channels ---

    def open_channel(self, channel: str) -> EventSubChatConnection:
        """Connect to a channel's chat and start loading its emotes.

        Must be called with a running event loop. Opening an already open
        channel returns the existing connection.
        """
        key = channel.lower()
        existing = self._connections.get(key)
        if existing is not None:
            return existing

        conn = self._connection_factory(self._api, key)
        conn.message_received.connect(lambda msg, k=key: self._on_message(k, msg))
        conn.notification_received.connect(lambda n, k=key: self._on_notification(k, n))
        conn.state_changed.connect(lambda state, k=key: self._on_state_changed(k, state))
        conn.error.connect(lambda message, k=key: self._on_connection_error(k, message))

        self._connections[key] = conn
        self._history[key] = deque(maxlen=max(1, self.settings.chat.history_size))
        self._emote_tasks[key] = asyncio.ensure_future(self._load_emotes(key))

        logger.info(f"Opening chat for #{key}")
        conn.connect()
        return conn

    async def close_channel(self, channel: str) -> None:
        key = channel.lower()
        conn = self._connections.pop(key, None)
        task = self._emote_tasks.pop(key, None)
        if task and not task.done():
            task.cancel()
        self._senders.pop(key, None)
        self._history.pop(key, None)
        if conn is not None:
            await conn.close()
            logger.info(f"Closed chat for #{key}")

    async def close(self) -> None:
        """Close every channel and the HTTP session."""
        for key in list(self._connections):
            await self.close_channel(key)
        await self._api.close()

    # --- Emotes ---

    async def _load_emotes(self, channel: str) -> None:
        try:
            catalog = await self._aggregator.load_emotes(channel)
        except IdentityResolutionError as e:
            logger.error(f"Could not load emotes for #{channel}: {e}")
            self.error.emit(channel, str(e))
            return
        self.emotes_loaded.emit(channel, catalog)

    async def wait_for_emotes(self, channel: str) -> None:
        task = self._emote_tasks.get(channel.lower())
        if task is not None:
            await asyncio.shield(task)

    def emote_catalog(self, channel: str) -> EmoteCatalog:
        """Current catalog for a channel; empty until the first load finishes."""
        catalog = self._aggregator.cache.get(channel)
        return catalog if catalog is not None else EmoteCatalog.empty(channel.lower())

    def tokenize(self, channel: str, text: str) -> list[Segment]:
        return tokenize_message(clean_message(text), self.emote_catalog(channel))

    def favorites(self, channel: str) -> FavoriteEmotes:
        if self._store is None:
            raise RuntimeError("Favourite emotes need a persistent store")
        return FavoriteEmotes(self._store, channel)

    # --- History ---

    def history(self, channel: str) -> list[ChatItem]:
        """Messages and notifications currently in the channel's window."""
        return list(self._history.get(channel.lower(), ()))

    # --- Sending ---

    async def send_message(self, channel: str, text: str) -> str | None:
        """Send a message. Returns its ID, or None if it could not be sent."""
        key = channel.lower()
        if not self.is_connected(key):
            logger.warning(f"Cannot send message: not connected to #{key}")
            return None

        sender = self._senders.get(key)
        if sender is None:
            sender = self._senders[key] = ChatSender(self._api, key)
        try:
            return await sender.send(text)
        except asyncio.TimeoutError:
            logger.error(f"Sending to #{key} timed out")
            self.error.emit(key, "Request timed out")
            return None
        except (ApiError, IdentityResolutionError, aiohttp.ClientError, ValueError) as e:
            self.error.emit(key, str(e))
            return None

    # --- Connection callbacks ---

    def _on_message(self, channel: str, message: ChatMessage) -> None:
        history = self._history.get(channel)
        if history is None:
            return
        text = clean_message(message.text)
        if text != message.text:
            # Keep the stored copy free of the duplicate marker
            message = dataclasses.replace(message, text=text)
        history.append(message)
        segments = tokenize_message(text, self.emote_catalog(channel))
        self.message_received.emit(channel, message, segments)

    def _on_notification(self, channel: str, notification: ChannelNotification) -> None:
        history = self._history.get(channel)
        if history is None:
            return
        history.append(notification)
        self.notification_received.emit(channel, notification)

    def _on_state_changed(self, channel: str, state: SessionState) -> None:
        self.state_changed.emit(channel, state)

    def _on_connection_error(self, channel: str, message: str) -> None:
        logger.error(f"Chat error for #{channel}: {message}")
        self.error.emit(channel, message)
