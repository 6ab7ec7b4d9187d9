"""EventSub chat subscription lifecycle for one session and channel."""

import asyncio
import logging

import aiohttp

from ...api.base import ApiError
from ...api.twitch import TwitchApiClient

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class SubscriptionError(Exception):
    """Creating the chat subscription failed."""


class DuplicateSubscriptionError(SubscriptionError):
    """A subscription is already owned (or being created) by this manager."""


class StaleSubscriptionError(SubscriptionError):
    """The session went away while its subscription was being created."""


class SubscriptionManager:
    """Owns at most one channel.chat.message subscription.

    Each ``forget()`` starts a new generation; a creation that was in
    flight for an older generation is discarded when it completes.

    Args:
        api: Helix client used for identity lookups and subscription calls.
        channel: Broadcaster login the subscription is scoped to.
        treat_existing_as_success: Accept HTTP 409 from Twitch as success.
    """

    def __init__(
        self,
        api: TwitchApiClient,
        channel: str,
        treat_existing_as_success: bool = True,
    ) -> None:
        self._api = api
        self.channel = channel.lower()
        self.treat_existing_as_success = treat_existing_as_success
        self.subscription_id: str | None = None
        self.session_id: str | None = None
        self._active = False
        self._generation = 0
        self._creating_generation: int | None = None

    @property
    def has_subscription(self) -> bool:
        """Whether a subscription is owned or currently being created."""
        return self._active or self._creating_generation == self._generation

    async def create_subscription(self, session_id: str | None) -> str | None:
        """Create the chat subscription for ``session_id``.

        Returns the subscription ID (None when Twitch reported an existing
        subscription that could not be looked up).

        Raises:
            SubscriptionError: no session, or Twitch rejected the request.
            DuplicateSubscriptionError: a subscription already exists here.
            StaleSubscriptionError: ``forget()`` was called before Twitch answered.
            IdentityResolutionError: user or channel lookup failed.
        """
        if not session_id:
            raise SubscriptionError("Cannot create subscription without session ID")
        if self.has_subscription:
            raise DuplicateSubscriptionError("Subscription already exists")

        generation = self._generation
        self._creating_generation = generation
        self.session_id = session_id
        try:
            current_user, broadcaster = await asyncio.gather(
                self._api.get_user(),
                self._api.get_user(self.channel),
            )

            try:
                subscription_id = await self._api.create_chat_subscription(
                    session_id, broadcaster["id"], current_user["id"]
                )
            except ApiError as e:
                if e.status != HTTP_CONFLICT or not self.treat_existing_as_success:
                    raise SubscriptionError(f"Failed to subscribe to chat: {e}") from e
                logger.info(f"Chat subscription for #{self.channel} already exists, reusing it")
                subscription_id = await self._find_existing(session_id, broadcaster["id"])
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SubscriptionError(f"Failed to subscribe to chat: {e}") from e

            if generation != self._generation:
                # Twitch drops it together with the closed session
                logger.info(
                    f"Discarding subscription {subscription_id} for closed session {session_id}"
                )
                raise StaleSubscriptionError(f"Session {session_id} closed while subscribing")

            self.subscription_id = subscription_id
            self._active = True
            logger.info(f"Chat subscription created for #{self.channel} with ID: {subscription_id}")
            return subscription_id
        finally:
            if self._creating_generation == generation:
                self._creating_generation = None
                if not self._active:
                    self.session_id = None

    async def _find_existing(self, session_id: str, broadcaster_id: str) -> str | None:
        try:
            return await self._api.find_chat_subscription(session_id, broadcaster_id)
        except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not look up existing subscription for #{self.channel}: {e}")
            return None

    async def delete_subscription(self) -> bool:
        """Delete the owned subscription. Never raises.

        Returns True when Twitch confirmed the delete.
        """
        if not self._active:
            return False

        subscription_id = self.subscription_id
        self.forget()
        if subscription_id is None:
            return False

        try:
            await self._api.delete_eventsub_subscription(subscription_id)
        except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error deleting subscription {subscription_id}: {e}")
            return False

        logger.info(f"Deleted subscription: {subscription_id}")
        return True

    def rebind(self, session_id: str) -> None:
        """Move the owned (or pending) subscription to a migrated session."""
        if self.has_subscription:
            self.session_id = session_id

    def forget(self) -> None:
        """Drop local state without calling Twitch.

        Used when the server already discarded the subscription together
        with its session.
        """
        self._generation += 1
        self.subscription_id = None
        self.session_id = None
        self._active = False
