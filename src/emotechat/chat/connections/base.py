"""Base chat connection abstract class."""

import dataclasses
import logging
from abc import abstractmethod

from PySide6.QtCore import QObject, Signal

from ..models import SessionState

logger = logging.getLogger(__name__)

# Exponential backoff constants for reconnection
INITIAL_RECONNECT_DELAY = 1.0  # seconds
RECONNECT_BACKOFF_FACTOR = 2.0
MAX_RECONNECT_ATTEMPTS = 5


class BaseChatConnection(QObject):
    """Abstract base class for realtime chat connections.

    Connections run on the asyncio loop of the calling thread and emit
    signals that consumers connect to. Delivery is in arrival order.
    """

    # A single ChatMessage
    message_received = Signal(object)
    # A single ChannelNotification
    notification_received = Signal(object)
    # SessionState snapshot after every change
    state_changed = Signal(object)
    # Connection state signals
    connected = Signal()
    disconnected = Signal()
    error = Signal(str)

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._state = SessionState()
        self._reconnect_attempts: int = 0

    @property
    def state(self) -> SessionState:
        """Current session state snapshot."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether the connection is open."""
        return self._state.connected

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @abstractmethod
    def connect(self) -> None:
        """Start connecting. Must be called with a running event loop."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""

    def _update_state(self, **changes) -> None:
        """Replace the state snapshot and publish it."""
        new_state = dataclasses.replace(self._state, **changes)
        if new_state != self._state:
            self._state = new_state
            self.state_changed.emit(new_state)

    def _emit_error(self, message: str) -> None:
        """Record an error on the state and emit it."""
        logger.error(f"Chat connection error ({self.__class__.__name__}): {message}")
        self._update_state(error=message)
        self.error.emit(message)

    @staticmethod
    def backoff_delay(attempt: int) -> float:
        """Delay in seconds before reconnect attempt ``attempt`` (1-based)."""
        return INITIAL_RECONNECT_DELAY * RECONNECT_BACKOFF_FACTOR ** (attempt - 1)

    def _reset_backoff(self) -> None:
        """Reset the attempt counter after a successful connection."""
        self._reconnect_attempts = 0

    def _get_next_backoff(self) -> float | None:
        """Advance the attempt counter and return its delay.

        Returns None once MAX_RECONNECT_ATTEMPTS have been used.
        """
        if self._reconnect_attempts >= MAX_RECONNECT_ATTEMPTS:
            return None
        self._reconnect_attempts += 1
        return self.backoff_delay(self._reconnect_attempts)
