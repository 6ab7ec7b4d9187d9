"""Twitch Helix API client."""

import logging
from typing import Any, Optional

from ..core.settings import TwitchSettings
from .base import RETRYABLE_ERRORS, ApiError, BaseApiClient, safe_json

logger = logging.getLogger(__name__)

CHAT_MESSAGE_SUBSCRIPTION = "channel.chat.message"
CHAT_MESSAGE_SUBSCRIPTION_VERSION = "1"


class IdentityResolutionError(Exception):
    """The current user or a channel login could not be resolved."""


class TwitchApiClient(BaseApiClient):
    """Client for the parts of the Twitch Helix API used by chat."""

    BASE_URL = "https://api.twitch.tv/helix"

    def __init__(self, settings: TwitchSettings) -> None:
        super().__init__()
        self.settings = settings
        self._user_cache: dict[str, dict[str, Any]] = {}
        self._current_user: Optional[dict[str, Any]] = None

    @property
    def name(self) -> str:
        return "Twitch"

    @property
    def client_id(self) -> str:
        return self.settings.effective_client_id

    @property
    def access_token(self) -> str:
        return self.settings.access_token

    def _get_headers(self) -> dict[str, str]:
        """Get headers for API requests."""
        return {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {self.settings.access_token}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> tuple[int, Any]:
        """Issue a Helix request and return (status, parsed body)."""
        async with self.session.request(
            method,
            f"{self.BASE_URL}{path}",
            headers=self._get_headers(),
            params=params,
            json=json_body,
        ) as resp:
            data = await safe_json(resp) if resp.status != 204 else None
            return resp.status, data

    @staticmethod
    def _error_message(data: Any) -> str:
        if isinstance(data, dict):
            return data.get("message") or data.get("error") or ""
        return ""

    # --- Identity ---

    async def get_user(self, login: Optional[str] = None) -> dict[str, Any]:
        """Get a user by login, or the authenticated user when login is None.

        Raises:
            IdentityResolutionError: the request failed or no user matched.
        """
        if login is None and self._current_user is not None:
            return self._current_user
        if login is not None and login.lower() in self._user_cache:
            return self._user_cache[login.lower()]

        params = {"login": login.lower()} if login else None
        try:
            status, data = await self._retry_with_backoff(
                lambda: self._request("GET", "/users", params=params)
            )
        except RETRYABLE_ERRORS as e:
            raise IdentityResolutionError(f"Failed to get user info: {e}") from e

        if status != 200:
            raise IdentityResolutionError(f"Failed to get user info: {status}")

        users = (data or {}).get("data") or []
        if not users:
            raise IdentityResolutionError(
                f'User "{login}" not found' if login else "Current user not found"
            )

        user = users[0]
        if login is None:
            self._current_user = user
        self._user_cache[user["login"].lower()] = user
        return user

    # --- EventSub ---

    async def create_chat_subscription(
        self, session_id: str, broadcaster_id: str, user_id: str
    ) -> str:
        """Create a channel.chat.message subscription bound to a WebSocket session.

        Returns:
            The new subscription ID.

        Raises:
            ApiError: non-202 response (409 means it already exists).
        """
        body = {
            "type": CHAT_MESSAGE_SUBSCRIPTION,
            "version": CHAT_MESSAGE_SUBSCRIPTION_VERSION,
            "condition": {"broadcaster_user_id": broadcaster_id, "user_id": user_id},
            "transport": {"method": "websocket", "session_id": session_id},
        }
        status, data = await self._request("POST", "/eventsub/subscriptions", json_body=body)
        if status not in (200, 202):
            raise ApiError(status, self._error_message(data) or "Failed to create subscription")

        subs = (data or {}).get("data") or []
        if not subs:
            raise ApiError(status, "Subscription response contained no data")
        return subs[0]["id"]

    async def get_subscriptions(self, sub_type: Optional[str] = None) -> list[dict[str, Any]]:
        """List EventSub subscriptions owned by this client, following pagination."""
        subscriptions: list[dict[str, Any]] = []
        cursor: Optional[str] = ""
        while cursor is not None:
            params: dict[str, str] = {}
            if sub_type:
                params["type"] = sub_type
            if cursor:
                params["after"] = cursor
            status, data = await self._request("GET", "/eventsub/subscriptions", params=params)
            if status != 200:
                raise ApiError(status, self._error_message(data) or "Failed to list subscriptions")
            data = data or {}
            subscriptions.extend(data.get("data") or [])
            cursor = (data.get("pagination") or {}).get("cursor") or None
        return subscriptions

    async def find_chat_subscription(
        self, session_id: str, broadcaster_id: str
    ) -> Optional[str]:
        """Find the chat subscription for a session and broadcaster, if any."""
        for sub in await self.get_subscriptions(CHAT_MESSAGE_SUBSCRIPTION):
            transport = sub.get("transport") or {}
            condition = sub.get("condition") or {}
            if (
                transport.get("session_id") == session_id
                and condition.get("broadcaster_user_id") == broadcaster_id
            ):
                return sub.get("id")
        return None

    async def delete_eventsub_subscription(self, subscription_id: str) -> None:
        """Delete one subscription by ID.

        Raises:
            ApiError: the subscription could not be deleted.
        """
        status, data = await self._request(
            "DELETE", "/eventsub/subscriptions", params={"id": subscription_id}
        )
        if status not in (200, 204):
            raise ApiError(status, self._error_message(data) or "Failed to delete subscription")

    async def delete_all_subscriptions(self) -> int:
        """Delete every EventSub subscription owned by this client.

        Maintenance action for cleaning up leaked subscriptions; not part of
        normal session shutdown. Returns the number deleted.
        """
        deleted = 0
        for sub in await self.get_subscriptions():
            try:
                await self.delete_eventsub_subscription(sub["id"])
                deleted += 1
            except ApiError as e:
                logger.warning(f"Failed to delete subscription {sub.get('id')}: {e}")
        logger.info(f"Deleted {deleted} EventSub subscriptions")
        return deleted

    # --- Chat ---

    async def send_chat_message(self, broadcaster_id: str, sender_id: str, text: str) -> str:
        """Send a chat message. Returns the message ID.

        Raises:
            ApiError: the request failed or Twitch dropped the message.
        """
        body = {"broadcaster_id": broadcaster_id, "sender_id": sender_id, "message": text}
        status, data = await self._request("POST", "/chat/messages", json_body=body)
        if status != 200:
            raise ApiError(status, self._error_message(data) or "Failed to send message")

        result = ((data or {}).get("data") or [{}])[0]
        if not result.get("is_sent", False):
            reason = (result.get("drop_reason") or {}).get("message", "Message was not sent")
            raise ApiError(status, reason)
        return result.get("message_id", "")
