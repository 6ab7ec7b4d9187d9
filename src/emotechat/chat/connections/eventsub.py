"""Twitch EventSub chat connection over WebSocket.

Session lifecycle::

    idle -> connecting -> open -> closed
                ^                   |
                +--- reconnecting --+   (unrequested close, up to 5 attempts)

The welcome frame assigns the session ID and triggers the one chat
subscription for the session. Keepalive frames arm a staleness timer
that only logs; the transport close event is what drives reconnection.
"""

import asyncio
import logging
from collections.abc import Callable

from PySide6.QtCore import QObject

from ...api.twitch import IdentityResolutionError, TwitchApiClient
from ...core.settings import ChatSettings
from ..frames import (
    CHAT_MESSAGE_EVENT,
    Frame,
    KeepaliveFrame,
    NotificationFrame,
    ReconnectFrame,
    RevocationFrame,
    UnknownFrame,
    WelcomeFrame,
    parse_chat_message,
    parse_frame,
)
from ..models import SessionStatus
from ..notifications import build_notification
from .base import BaseChatConnection
from .subscription import (
    DuplicateSubscriptionError,
    StaleSubscriptionError,
    SubscriptionError,
    SubscriptionManager,
)
from .transport import WebSocketTransport, eventsub_url

logger = logging.getLogger(__name__)

KEEPALIVE_WINDOW = 60.0  # seconds
RECONNECT_EXHAUSTED_ERROR = "Failed to reconnect after multiple attempts"


class EventSubChatConnection(BaseChatConnection):
    """Realtime chat for one channel via an EventSub WebSocket session.

    Args:
        api: Helix client (token source and identity resolver).
        channel: Broadcaster login to follow.
        settings: Chat settings; defaults are used when omitted.
        transport_factory: Builds a fresh transport for each connection.
    """

    def __init__(
        self,
        api: TwitchApiClient,
        channel: str,
        settings: ChatSettings | None = None,
        transport_factory: Callable[[], WebSocketTransport] = WebSocketTransport,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._api = api
        self._channel = channel.lower()
        self._settings = settings or ChatSettings()
        self._transport_factory = transport_factory
        self._subscriptions = SubscriptionManager(
            api,
            self._channel,
            treat_existing_as_success=self._settings.treat_existing_subscription_as_success,
        )

        self._transport: WebSocketTransport | None = None
        self._transport_task: asyncio.Task | None = None
        # Old transport kept alive while a session_reconnect migration completes
        self._retiring_transport: WebSocketTransport | None = None
        self._migrating = False
        self._intentionally_closed = False
        self._keepalive_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._subscription_task: asyncio.Task | None = None
        self._subscribed: asyncio.Future | None = None

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def session_id(self) -> str | None:
        return self._state.session_id

    @property
    def subscription_id(self) -> str | None:
        return self._subscriptions.subscription_id

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._subscriptions

    @property
    def url(self) -> str:
        return eventsub_url(self._settings.keepalive_timeout_seconds)

    # --- Public API ---

    def connect(self) -> None:
        """Open the session. Also the way to recover after reconnects ran out."""
        self._intentionally_closed = False
        self._reset_backoff()
        loop = asyncio.get_running_loop()
        if self._subscribed is None or self._subscribed.done():
            self._subscribed = loop.create_future()
            # Failures are surfaced through the state too; nobody has to await this
            self._subscribed.add_done_callback(
                lambda f: None if f.cancelled() else f.exception()
            )
        self._open(self.url)

    async def wait_until_subscribed(self, timeout: float | None = None) -> str | None:
        """Wait for the initial chat subscription.

        Raises:
            SubscriptionError / IdentityResolutionError: initial setup failed.
            asyncio.TimeoutError: nothing happened within ``timeout``.
        """
        if self._subscribed is None:
            raise RuntimeError("connect() has not been called")
        return await asyncio.wait_for(asyncio.shield(self._subscribed), timeout)

    async def close(self) -> None:
        """Close the session, deleting our subscription (best effort)."""
        already_closed = self._intentionally_closed and self._transport is None
        self._intentionally_closed = True

        self._cancel_keepalive()
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        await self._subscriptions.delete_subscription()

        transports = [t for t in (self._transport, self._retiring_transport) if t is not None]
        self._transport = None
        self._retiring_transport = None
        self._migrating = False
        for transport in transports:
            await transport.close()

        if self._subscribed is not None and not self._subscribed.done():
            self._subscribed.cancel()

        was_open = self._state.status == SessionStatus.OPEN
        self._update_state(status=SessionStatus.CLOSED, session_id=None)
        if was_open:
            self.disconnected.emit()
        if not already_closed:
            logger.info(f"EventSub session for #{self._channel} closed")

    # --- Transport wiring ---

    def _open(self, url: str) -> None:
        transport = self._transport_factory()
        transport.opened.connect(lambda t=transport: self._on_transport_opened(t))
        transport.frame_received.connect(lambda raw, t=transport: self._on_frame(t, raw))
        transport.error_occurred.connect(lambda msg, t=transport: self._on_transport_error(t, msg))
        transport.closed.connect(
            lambda code, reason, t=transport: self._on_transport_closed(t, code, reason)
        )
        self._transport = transport
        self._update_state(status=SessionStatus.CONNECTING)
        logger.info(f"Connecting to EventSub for #{self._channel}: {url}")
        self._transport_task = asyncio.ensure_future(transport.run(url))

    def _on_transport_opened(self, transport: WebSocketTransport) -> None:
        if transport is not self._transport:
            return
        logger.info(f"EventSub WebSocket connected for #{self._channel}")
        self._reset_backoff()
        self._update_state(status=SessionStatus.OPEN, error=None, reconnect_attempt=0)
        self.connected.emit()

    def _on_transport_error(self, transport: WebSocketTransport, message: str) -> None:
        if transport is not self._transport:
            return
        # Errors alone never reconnect; the close event that follows does.
        self._emit_error(message)

    def _on_transport_closed(self, transport: WebSocketTransport, code: int, reason: str) -> None:
        if transport is self._retiring_transport:
            self._retiring_transport = None
            logger.debug(f"Previous EventSub connection closed ({code})")
            return
        if transport is not self._transport:
            return

        logger.info(f"EventSub WebSocket closed for #{self._channel}: {code} {reason}")
        self._transport = None
        self._cancel_keepalive()
        was_open = self._state.status == SessionStatus.OPEN
        self._update_state(status=SessionStatus.CLOSED, session_id=None)
        if was_open:
            self.disconnected.emit()

        # Twitch drops subscriptions together with their session.
        self._subscriptions.forget()

        if self._migrating:
            self._migrating = False
            retiring = self._retiring_transport
            self._retiring_transport = None
            if retiring is not None:
                asyncio.ensure_future(retiring.close())

        if not self._intentionally_closed:
            self._handle_reconnect()

    # --- Frame routing ---

    def _on_frame(self, transport: WebSocketTransport, raw: str) -> None:
        if transport is not self._transport and transport is not self._retiring_transport:
            return
        self._route_frame(transport, parse_frame(raw))

    def _route_frame(self, transport: WebSocketTransport, frame: Frame) -> None:
        if isinstance(frame, WelcomeFrame):
            self._on_welcome(transport, frame)
        elif isinstance(frame, KeepaliveFrame):
            self._arm_keepalive()
        elif isinstance(frame, NotificationFrame):
            self._on_notification(frame)
        elif isinstance(frame, ReconnectFrame):
            self._on_reconnect_requested(transport, frame)
        elif isinstance(frame, RevocationFrame):
            logger.warning(
                f"Subscription revoked: {frame.subscription_type} "
                f"({frame.subscription_id}, status={frame.status})"
            )
        elif isinstance(frame, UnknownFrame):
            logger.info(f"Unknown message type: {frame.message_type} {frame.raw[:200]}")

    def _on_welcome(self, transport: WebSocketTransport, frame: WelcomeFrame) -> None:
        logger.info(f"Received session ID: {frame.session_id}")
        self._update_state(session_id=frame.session_id)

        if self._migrating and transport is self._transport:
            self._migrating = False
            retiring = self._retiring_transport
            self._retiring_transport = None
            if retiring is not None:
                asyncio.ensure_future(retiring.close())
            if self._subscriptions.has_subscription:
                # Subscriptions follow the session to the reconnect URL
                self._subscriptions.rebind(frame.session_id)
                return

        self._subscription_task = asyncio.ensure_future(
            self._create_subscription(frame.session_id)
        )

    async def _create_subscription(self, session_id: str) -> None:
        try:
            subscription_id = await self._subscriptions.create_subscription(session_id)
        except DuplicateSubscriptionError as e:
            logger.warning(f"Not subscribing again for session {session_id}: {e}")
            return
        except StaleSubscriptionError:
            # The close handler already scheduled a fresh session
            return
        except (SubscriptionError, IdentityResolutionError) as e:
            logger.error(f"Error creating chat subscription: {e}")
            self._emit_error(str(e))
            if self._subscribed is not None and not self._subscribed.done():
                self._subscribed.set_exception(e)
            return

        if self._intentionally_closed:
            # Closed while the request was in flight
            await self._subscriptions.delete_subscription()
            return

        if self._subscribed is not None and not self._subscribed.done():
            self._subscribed.set_result(subscription_id)

    def _on_notification(self, frame: NotificationFrame) -> None:
        if frame.subscription_type == CHAT_MESSAGE_EVENT:
            self.message_received.emit(parse_chat_message(frame.event, frame.timestamp))
        else:
            self.notification_received.emit(
                build_notification(frame.subscription_type, frame.event, frame.timestamp)
            )

    def _on_reconnect_requested(self, transport: WebSocketTransport, frame: ReconnectFrame) -> None:
        if transport is not self._transport:
            return
        logger.info(f"Server requested reconnect: {frame.reconnect_url}")

        if self._settings.dial_reconnect_url and frame.reconnect_url:
            self._migrating = True
            self._retiring_transport = transport
            self._open(frame.reconnect_url)
        else:
            # Generic path: drop this socket and let the close event back off
            asyncio.ensure_future(transport.close())

    # --- Timers ---

    def _arm_keepalive(self) -> None:
        self._cancel_keepalive()
        loop = asyncio.get_running_loop()
        self._keepalive_handle = loop.call_later(KEEPALIVE_WINDOW, self._on_keepalive_expired)

    def _cancel_keepalive(self) -> None:
        if self._keepalive_handle is not None:
            self._keepalive_handle.cancel()
            self._keepalive_handle = None

    def _on_keepalive_expired(self) -> None:
        self._keepalive_handle = None
        logger.warning(f"Keepalive timeout for #{self._channel} - connection may be stale")

    def _handle_reconnect(self) -> None:
        delay = self._get_next_backoff()
        if delay is None:
            self._emit_error(RECONNECT_EXHAUSTED_ERROR)
            return

        attempt = self._reconnect_attempts
        self._update_state(reconnect_attempt=attempt)
        logger.info(f"Reconnecting in {delay * 1000:.0f}ms (attempt {attempt})")
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._intentionally_closed:
            return
        self._open(self.url)
