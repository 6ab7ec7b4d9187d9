"""Sending chat messages through the Helix chat API."""

import asyncio
import logging

import aiohttp

from ..api.base import ApiError
from ..api.twitch import TwitchApiClient

logger = logging.getLogger(__name__)

# Twitch rejects an identical message sent twice in a row; appending this
# (Unicode TAG SPACE, invisible in chat) makes the second one distinct.
INVISIBLE_SPACE = "\U000E0000"


def clean_message(text: str) -> str:
    """Strip the duplicate-message marker from received text."""
    return text.replace(INVISIBLE_SPACE, "").strip()


class ChatSender:
    """Sends messages to one channel as the authenticated user."""

    def __init__(self, api: TwitchApiClient, channel: str):
        self._api = api
        self._channel = channel.lower()
        self.last_sent: str | None = None

    def prepare(self, text: str) -> str:
        """Return the text to send, marking it if it repeats the last message."""
        text = text.strip()
        if text and text == self.last_sent:
            return f"{text} {INVISIBLE_SPACE}"
        return text

    async def send(self, text: str) -> str:
        """Send ``text``. Returns the message ID.

        Raises:
            ValueError: ``text`` is empty.
            IdentityResolutionError: broadcaster or sender lookup failed.
            ApiError: Twitch refused or dropped the message.
        """
        outgoing = self.prepare(text)
        if not outgoing:
            raise ValueError("Cannot send an empty message")

        broadcaster, sender = await asyncio.gather(
            self._api.get_user(self._channel),
            self._api.get_user(),
        )
        try:
            message_id = await self._api.send_chat_message(
                broadcaster["id"], sender["id"], outgoing
            )
        except (ApiError, aiohttp.ClientError) as e:
            logger.error(f"Failed to send message to #{self._channel}: {e}")
            raise

        self.last_sent = outgoing
        logger.debug(f"Sent message {message_id} to #{self._channel}")
        return message_id
