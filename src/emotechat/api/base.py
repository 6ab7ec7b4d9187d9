"""Base API client interface."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp

logger = logging.getLogger(__name__)


async def safe_json(resp: aiohttp.ClientResponse) -> dict | list | None:
    """Safely parse JSON from response, returning None on error.

    Handles HTML error pages (ContentTypeError), malformed JSON and
    empty bodies.
    """
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class ApiError(Exception):
    """An HTTP API call returned a non-success status."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")


# Retries for idempotent Helix reads (identity lookups)
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5  # seconds
RETRY_MAX_DELAY = 4.0  # seconds
RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)

REQUEST_TIMEOUT = 30  # seconds

T = TypeVar("T")


class BaseApiClient(ABC):
    """Owns one lazily created aiohttp session shared by all requests."""

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used in log messages."""

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session. Safe to call more than once."""
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def _retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        attempts: int = RETRY_ATTEMPTS,
    ) -> T:
        """Run ``operation``, retrying network failures with doubling delays.

        The last failure is re-raised once ``attempts`` are used up.
        """
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except RETRYABLE_ERRORS as e:
                if attempt == attempts:
                    logger.error(f"{self.name}: request failed after {attempts} attempts: {e}")
                    raise
                delay = min(RETRY_BASE_DELAY * 2 ** (attempt - 1), RETRY_MAX_DELAY)
                logger.warning(
                    f"{self.name}: attempt {attempt}/{attempts} failed ({e}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
        raise RuntimeError("attempts must be at least 1")
