"""Per-channel emote catalog cache (memory + persisted store).

A hit is returned immediately and refreshed in the background; a miss
waits for the first fetch. Catalogs are swapped wholesale, so readers
always see a complete catalog, old or new.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ...core.storage import JsonStore
from ..models import ChatEmote, EmoteCatalog

logger = logging.getLogger(__name__)

STORE_KEY_PREFIX = "emote_catalog:"
DEFAULT_MAX_AGE = 3600.0  # seconds a persisted catalog stays usable

CatalogLoader = Callable[[str], Awaitable[EmoteCatalog]]


def _catalog_to_dict(catalog: EmoteCatalog) -> dict:
    return {
        "channel": catalog.channel,
        "populated_at": catalog.populated_at,
        "emotes": [emote.to_dict() for emote in catalog.emotes.values()],
    }


def _catalog_from_dict(data: dict) -> EmoteCatalog:
    emotes = {}
    for entry in data.get("emotes", []):
        emote = ChatEmote.from_dict(entry)
        emotes[emote.name] = emote
    return EmoteCatalog(
        channel=data["channel"],
        emotes=emotes,
        populated_at=data.get("populated_at", 0.0),
    )


class EmoteCatalogCache:
    """Stale-while-revalidate cache of EmoteCatalogs keyed by channel."""

    def __init__(self, store: JsonStore | None = None, max_age: float = DEFAULT_MAX_AGE):
        self._store = store
        self._max_age = max_age
        self._catalogs: dict[str, EmoteCatalog] = {}
        self._loading: dict[str, asyncio.Future] = {}
        self._refreshing: dict[str, asyncio.Task] = {}

    @staticmethod
    def _key(channel: str) -> str:
        return channel.lower()

    def get(self, channel: str) -> EmoteCatalog | None:
        """Return the cached catalog without fetching, or None."""
        key = self._key(channel)
        catalog = self._catalogs.get(key)
        if catalog is not None:
            return catalog

        catalog = self._load_persisted(key)
        if catalog is not None:
            self._catalogs[key] = catalog
        return catalog

    def put(self, catalog: EmoteCatalog) -> None:
        """Install a new catalog, replacing any previous one."""
        key = self._key(catalog.channel)
        self._catalogs[key] = catalog
        if self._store is not None:
            self._store.set(STORE_KEY_PREFIX + key, _catalog_to_dict(catalog))

    def invalidate(self, channel: str) -> None:
        key = self._key(channel)
        self._catalogs.pop(key, None)
        if self._store is not None:
            self._store.delete(STORE_KEY_PREFIX + key)

    def is_refreshing(self, channel: str) -> bool:
        task = self._refreshing.get(self._key(channel))
        return task is not None and not task.done()

    async def get_or_load(self, channel: str, loader: CatalogLoader) -> EmoteCatalog:
        """Serve from cache (refreshing in the background) or fetch on a miss."""
        key = self._key(channel)
        cached = self.get(key)
        if cached is not None:
            self._schedule_refresh(key, loader)
            return cached

        # Concurrent misses share one fetch
        pending = self._loading.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._loading[key] = future
        try:
            catalog = await loader(key)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved; concurrent waiters still see it
            future.exception()
            raise
        else:
            self.put(catalog)
            future.set_result(catalog)
            return catalog
        finally:
            self._loading.pop(key, None)

    async def wait_for_refresh(self, channel: str) -> None:
        """Wait until a background refresh for ``channel`` (if any) finishes."""
        task = self._refreshing.get(self._key(channel))
        if task is not None:
            await asyncio.shield(task)

    def _schedule_refresh(self, key: str, loader: CatalogLoader) -> None:
        if self.is_refreshing(key):
            return
        self._refreshing[key] = asyncio.ensure_future(self._refresh(key, loader))

    async def _refresh(self, key: str, loader: CatalogLoader) -> None:
        try:
            catalog = await loader(key)
        except Exception as e:
            logger.warning(f"Background emote refresh for #{key} failed: {e}")
        else:
            self.put(catalog)
            logger.debug(f"Refreshed emote catalog for #{key}: {len(catalog)} emotes")
        finally:
            self._refreshing.pop(key, None)

    def _load_persisted(self, key: str) -> EmoteCatalog | None:
        if self._store is None:
            return None
        data = self._store.get(STORE_KEY_PREFIX + key)
        if not data:
            return None
        try:
            catalog = _catalog_from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable emote catalog for #{key}: {e}")
            return None
        if self._max_age and time.time() - catalog.populated_at > self._max_age:
            logger.debug(f"Persisted emote catalog for #{key} is too old")
            return None
        return catalog
