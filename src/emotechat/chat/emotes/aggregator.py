"""Fetch emote catalogs from every provider and merge them by name."""

import asyncio
import logging
from collections.abc import Iterable

from ...api.twitch import TwitchApiClient
from ..models import ChatEmote, EmoteCatalog
from .cache import EmoteCatalogCache
from .provider import BaseEmoteProvider, create_providers

logger = logging.getLogger(__name__)


def merge_emotes(emote_lists: Iterable[list[ChatEmote]]) -> dict[str, ChatEmote]:
    """Merge provider lists into one name-keyed map.

    The first claim on a name wins. A later claim with a different URL or
    provider is logged as a conflict and dropped; an identical one is not.
    """
    merged: dict[str, ChatEmote] = {}
    for emotes in emote_lists:
        for emote in emotes:
            existing = merged.get(emote.name)
            if existing is None:
                merged[emote.name] = emote
                continue
            if existing.url != emote.url or existing.provider != emote.provider:
                logger.warning(
                    f"Emote name conflict for '{emote.name}': keeping "
                    f"{existing.provider.value} ({existing.url}, resolved {existing.resolved_at:.0f}), "
                    f"ignoring {emote.provider.value} ({emote.url}, resolved {emote.resolved_at:.0f})"
                )
    return merged


class EmoteAggregator:
    """Loads merged emote catalogs per channel.

    Args:
        api: Helix client used to resolve broadcaster and viewer IDs.
        providers: Providers in merge priority order. Defaults to all four.
        cache: Catalog cache; a private in-memory one is used when omitted.
        enabled: Provider names to use when ``providers`` is omitted.
    """

    def __init__(
        self,
        api: TwitchApiClient,
        providers: list[BaseEmoteProvider] | None = None,
        cache: EmoteCatalogCache | None = None,
        enabled: list[str] | None = None,
    ):
        self._api = api
        if providers is None:
            providers = create_providers(api.settings, enabled)
        self._providers = providers
        self._cache = cache or EmoteCatalogCache()

    @property
    def cache(self) -> EmoteCatalogCache:
        return self._cache

    @property
    def providers(self) -> list[BaseEmoteProvider]:
        return list(self._providers)

    async def load_emotes(self, channel: str) -> EmoteCatalog:
        """Return the channel catalog, from cache when possible.

        Raises:
            IdentityResolutionError: broadcaster or viewer lookup failed
                (only on a cache miss; a hit never waits on the network).
        """
        return await self._cache.get_or_load(channel, self.fetch_catalog)

    async def fetch_catalog(self, channel: str) -> EmoteCatalog:
        """Fetch all providers concurrently and merge. Bypasses the cache."""
        broadcaster, current_user = await asyncio.gather(
            self._api.get_user(channel),
            self._api.get_user(),
        )

        results = await asyncio.gather(
            *(
                self._fetch_provider(provider, broadcaster["id"], current_user["id"])
                for provider in self._providers
            )
        )

        merged = merge_emotes(results)
        logger.info(
            f"Loaded {len(merged)} emotes for #{channel} ("
            + ", ".join(f"{p.name}: {len(r)}" for p, r in zip(self._providers, results))
            + ")"
        )
        return EmoteCatalog(channel=channel.lower(), emotes=merged)

    async def _fetch_provider(
        self, provider: BaseEmoteProvider, broadcaster_id: str, user_id: str
    ) -> list[ChatEmote]:
        try:
            return await provider.fetch_emotes(broadcaster_id, user_id)
        except Exception as e:
            logger.warning(f"{provider.name} emotes not available: {e}")
            return []
