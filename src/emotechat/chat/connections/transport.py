"""Single WebSocket transport for the EventSub session."""

import asyncio
import logging

import aiohttp
from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)

EVENTSUB_WS_URL = "wss://eventsub.wss.twitch.tv/ws"

# Close code used when the socket ends without a close frame
ABNORMAL_CLOSURE = 1006


def eventsub_url(keepalive_timeout_seconds: int = 30) -> str:
    """EventSub WebSocket URL with the requested keepalive window."""
    return f"{EVENTSUB_WS_URL}?keepalive_timeout_seconds={keepalive_timeout_seconds}"


class WebSocketTransport(QObject):
    """Owns one aiohttp WebSocket and reports what happens on it.

    ``run()`` emits ``opened``, then ``frame_received`` for each text frame
    in arrival order, and finally ``closed`` exactly once, including when
    the connection could not be established.
    """

    opened = Signal()
    frame_received = Signal(str)
    error_occurred = Signal(str)
    closed = Signal(int, str)  # close code, reason

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._closed_emitted = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def run(self, url: str) -> None:
        """Connect to ``url`` and pump frames until the socket ends."""
        code = ABNORMAL_CLOSURE
        reason = ""
        self._session = aiohttp.ClientSession()
        try:
            try:
                self._ws = await self._session.ws_connect(url)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                reason = f"Failed to connect: {e}"
                logger.error(f"WebSocket connect to {url} failed: {e}")
                self.error_occurred.emit("Failed to connect to chat")
                return

            logger.info(f"WebSocket connected: {url}")
            self.opened.emit()

            try:
                async for msg in self._ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.frame_received.emit(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.error(f"WebSocket error: {self._ws.exception()}")
                        self.error_occurred.emit("WebSocket connection error")
                        break
                    elif msg.type in (
                        aiohttp.WSMsgType.CLOSE,
                        aiohttp.WSMsgType.CLOSING,
                        aiohttp.WSMsgType.CLOSED,
                    ):
                        break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"WebSocket read failed: {e}")
                self.error_occurred.emit("WebSocket connection error")

            if self._ws.close_code is not None:
                code = self._ws.close_code
            extra = getattr(self._ws, "close_reason", None)
            if extra:
                reason = str(extra)
        finally:
            await self._cleanup()
            self._emit_closed(code, reason)

    async def close(self) -> None:
        """Close the socket. Idempotent."""
        await self._cleanup()

    def _emit_closed(self, code: int, reason: str) -> None:
        if self._closed_emitted:
            return
        self._closed_emitted = True
        logger.info(f"WebSocket closed: {code} {reason}")
        self.closed.emit(code, reason)

    async def _cleanup(self) -> None:
        """Clean up WebSocket and session."""
        if self._ws and not self._ws.closed:
            await self._ws.close()
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
