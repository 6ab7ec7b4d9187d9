"""Per-channel favourite emotes, persisted in the key-value store."""

import logging

from ...core.storage import JsonStore

logger = logging.getLogger(__name__)


class FavoriteEmotes:
    """Ordered list of favourite emote names for one channel."""

    def __init__(self, store: JsonStore, channel: str):
        self._store = store
        self._key = f"favorites_{channel.lower()}"

    @property
    def names(self) -> list[str]:
        value = self._store.get(self._key, [])
        return [name for name in value if isinstance(name, str)] if isinstance(value, list) else []

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def add(self, name: str) -> None:
        names = self.names
        if name not in names:
            names.append(name)
            self._store.set(self._key, names)

    def remove(self, name: str) -> None:
        names = self.names
        if name in names:
            names.remove(name)
            self._store.set(self._key, names)

    def toggle(self, name: str) -> bool:
        """Flip membership; returns True if ``name`` is now a favourite."""
        if name in self:
            self.remove(name)
            return False
        self.add(name)
        return True

    def clear(self) -> None:
        self._store.delete(self._key)
