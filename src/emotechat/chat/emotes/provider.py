"""Emote providers for Twitch, 7TV, BTTV, and FFZ."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ...api.base import safe_json
from ...core.settings import TwitchSettings
from ..models import ChatEmote, EmoteProviderType

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15  # seconds

SOURCE_GLOBAL = "Global"
SOURCE_AVAILABLE = "Available"
SOURCE_CHANNEL = "Channel"
SOURCE_SHARED = "Shared"


class BaseEmoteProvider(ABC):
    """Base class for emote providers."""

    @property
    @abstractmethod
    def provider_type(self) -> EmoteProviderType:
        """Which catalog source this is."""

    @property
    def name(self) -> str:
        return self.provider_type.value

    @abstractmethod
    async def fetch_emotes(self, broadcaster_id: str, user_id: str) -> list[ChatEmote]:
        """Fetch every emote this provider offers for the channel.

        Args:
            broadcaster_id: Twitch user ID of the channel.
            user_id: Twitch user ID of the authenticated viewer.
        """

    def _get_headers(self) -> dict[str, str]:
        return {}

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> tuple[int, Any]:
        """GET ``url`` and return (status, parsed JSON or None)."""
        async with aiohttp.ClientSession(headers=self._get_headers()) as session:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status != 200:
                    return resp.status, None
                return resp.status, await safe_json(resp)

    async def _gather_sets(self, *fetches) -> list[ChatEmote]:
        """Run independent set fetches; a failing set contributes nothing."""
        emotes: list[ChatEmote] = []
        results = await asyncio.gather(*fetches, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.debug(f"{self.name} emote set failed: {result}")
                continue
            emotes.extend(result)
        return emotes


class TwitchProvider(BaseEmoteProvider):
    """Native Twitch emotes from the Helix API (global + user-entitled)."""

    BASE_URL = "https://api.twitch.tv/helix"
    DEFAULT_TEMPLATE = (
        "https://static-cdn.jtvnw.net/emoticons/v2/{{id}}/{{format}}/{{theme_mode}}/{{scale}}"
    )

    def __init__(self, settings: TwitchSettings):
        self.settings = settings

    @property
    def provider_type(self) -> EmoteProviderType:
        return EmoteProviderType.TWITCH

    def _get_headers(self) -> dict[str, str]:
        headers = {"Client-Id": self.settings.effective_client_id}
        if self.settings.access_token:
            headers["Authorization"] = f"Bearer {self.settings.access_token}"
        return headers

    async def fetch_emotes(self, broadcaster_id: str, user_id: str) -> list[ChatEmote]:
        return await self._gather_sets(
            self._fetch_paginated("/chat/emotes/global", {}, SOURCE_GLOBAL),
            self._fetch_paginated(
                "/chat/emotes/user",
                {"user_id": user_id, "broadcaster_id": broadcaster_id},
                SOURCE_AVAILABLE,
            ),
        )

    async def _fetch_paginated(
        self, path: str, params: dict[str, str], source: str
    ) -> list[ChatEmote]:
        """Follow ``pagination.cursor`` until it runs out."""
        emotes: list[ChatEmote] = []
        cursor: str | None = ""
        while cursor is not None:
            page_params = dict(params)
            if cursor:
                page_params["after"] = cursor
            status, data = await self._get_json(f"{self.BASE_URL}{path}", page_params)
            if status != 200 or not isinstance(data, dict):
                logger.debug(f"Twitch emotes {path} failed: {status}")
                break

            template = data.get("template") or self.DEFAULT_TEMPLATE
            for emote_data in data.get("data", []):
                emote = self._parse_emote(emote_data, template, source)
                if emote:
                    emotes.append(emote)

            cursor = (data.get("pagination") or {}).get("cursor") or None
        return emotes

    def _parse_emote(self, data: dict, template: str, source: str) -> ChatEmote | None:
        """Parse a Helix emote, building its URL from the response template."""
        emote_id = data.get("id", "")
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        formats = data.get("format") or ["static"]
        themes = data.get("theme_mode") or ["light"]
        scales = data.get("scale") or ["2.0"]
        url = (
            template.replace("{{id}}", emote_id)
            .replace("{{format}}", "animated" if "animated" in formats else formats[0])
            .replace("{{theme_mode}}", "dark" if "dark" in themes else themes[0])
            .replace("{{scale}}", "2.0" if "2.0" in scales else scales[-1])
        )

        return ChatEmote(
            id=emote_id,
            name=name,
            url=url,
            provider=EmoteProviderType.TWITCH,
            source=source,
        )


class SevenTVProvider(BaseEmoteProvider):
    """7TV emote provider."""

    BASE_URL = "https://7tv.io/v3"
    GLOBAL_SET_ID = "global"

    @property
    def provider_type(self) -> EmoteProviderType:
        return EmoteProviderType.SEVENTV

    async def fetch_emotes(self, broadcaster_id: str, user_id: str) -> list[ChatEmote]:
        return await self._gather_sets(
            self._fetch_channel(broadcaster_id),
            self._fetch_global(),
        )

    async def _fetch_channel(self, broadcaster_id: str) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/users/twitch/{broadcaster_id}")
        if status == 404:
            logger.info(f"Channel (ID: {broadcaster_id}) does not have 7TV emotes configured")
            return []
        if status != 200 or not isinstance(data, dict):
            logger.warning(f"7TV API returned {status} for channel (ID: {broadcaster_id})")
            return []
        emote_set = data.get("emote_set") or {}
        return self._parse_set(emote_set.get("emotes") or [], SOURCE_CHANNEL)

    async def _fetch_global(self) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/emote-sets/{self.GLOBAL_SET_ID}")
        if status != 200 or not isinstance(data, dict):
            logger.debug(f"7TV global emotes failed: {status}")
            return []
        return self._parse_set(data.get("emotes") or [], SOURCE_GLOBAL)

    def _parse_set(self, entries: list[dict], source: str) -> list[ChatEmote]:
        emotes = []
        for emote_data in entries:
            emote = self._parse_emote(emote_data, source)
            if emote:
                emotes.append(emote)
        return emotes

    def _parse_emote(self, data: dict, source: str) -> ChatEmote | None:
        """Parse a 7TV emote from API data."""
        emote_data = data.get("data") or data
        emote_id = data.get("id") or emote_data.get("id", "")
        name = data.get("name") or emote_data.get("name", "")
        if not emote_id or not name:
            return None

        host = emote_data.get("host") or {}
        base_url = host.get("url") or f"//cdn.7tv.app/emote/{emote_id}"
        if base_url.startswith("//"):
            base_url = "https:" + base_url

        return ChatEmote(
            id=emote_id,
            name=name,
            url=f"{base_url}/2x.webp",
            provider=EmoteProviderType.SEVENTV,
            source=source,
        )


class BTTVProvider(BaseEmoteProvider):
    """BetterTTV emote provider."""

    BASE_URL = "https://api.betterttv.net/3"

    @property
    def provider_type(self) -> EmoteProviderType:
        return EmoteProviderType.BTTV

    async def fetch_emotes(self, broadcaster_id: str, user_id: str) -> list[ChatEmote]:
        return await self._gather_sets(
            self._fetch_global(),
            self._fetch_channel(broadcaster_id),
        )

    async def _fetch_global(self) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/cached/emotes/global")
        if status != 200 or not isinstance(data, list):
            logger.debug(f"BTTV global emotes failed: {status}")
            return []
        return self._parse_list(data, SOURCE_GLOBAL)

    async def _fetch_channel(self, broadcaster_id: str) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/cached/users/twitch/{broadcaster_id}")
        if status == 404:
            logger.info(f"Channel (ID: {broadcaster_id}) does not have BetterTTV emotes configured")
            return []
        if status != 200 or not isinstance(data, dict):
            logger.warning(f"BetterTTV API returned {status} for channel (ID: {broadcaster_id})")
            return []
        # Channel and shared sets are independent; either may be missing
        return self._parse_list(data.get("channelEmotes") or [], SOURCE_CHANNEL) + self._parse_list(
            data.get("sharedEmotes") or [], SOURCE_SHARED
        )

    def _parse_list(self, entries: list[dict], source: str) -> list[ChatEmote]:
        emotes = []
        for emote_data in entries:
            emote = self._parse_emote(emote_data, source)
            if emote:
                emotes.append(emote)
        return emotes

    def _parse_emote(self, data: dict, source: str) -> ChatEmote | None:
        """Parse a BTTV emote from API data."""
        emote_id = data.get("id", "")
        code = data.get("code", "")
        if not emote_id or not code:
            return None

        return ChatEmote(
            id=emote_id,
            name=code,
            url=f"https://cdn.betterttv.net/emote/{emote_id}/2x",
            provider=EmoteProviderType.BTTV,
            source=source,
        )


class FFZProvider(BaseEmoteProvider):
    """FrankerFaceZ emote provider."""

    BASE_URL = "https://api.frankerfacez.com/v1"

    @property
    def provider_type(self) -> EmoteProviderType:
        return EmoteProviderType.FFZ

    async def fetch_emotes(self, broadcaster_id: str, user_id: str) -> list[ChatEmote]:
        return await self._gather_sets(
            self._fetch_global(),
            self._fetch_room(broadcaster_id),
        )

    async def _fetch_global(self) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/set/global")
        if status != 200 or not isinstance(data, dict):
            logger.debug(f"FFZ global emotes failed: {status}")
            return []
        sets = data.get("sets") or {}
        emotes: list[ChatEmote] = []
        for set_id in data.get("default_sets") or []:
            emote_set = sets.get(str(set_id)) or {}
            emotes.extend(self._parse_set(emote_set, SOURCE_GLOBAL))
        return emotes

    async def _fetch_room(self, broadcaster_id: str) -> list[ChatEmote]:
        status, data = await self._get_json(f"{self.BASE_URL}/room/id/{broadcaster_id}")
        if status == 404:
            logger.info(f"Channel (ID: {broadcaster_id}) does not have FFZ emotes configured")
            return []
        if status != 200 or not isinstance(data, dict):
            logger.warning(f"FFZ API returned {status} for channel (ID: {broadcaster_id})")
            return []
        emotes: list[ChatEmote] = []
        for emote_set in (data.get("sets") or {}).values():
            emotes.extend(self._parse_set(emote_set, SOURCE_CHANNEL))
        return emotes

    def _parse_set(self, emote_set: dict, source: str) -> list[ChatEmote]:
        emotes = []
        for emote_data in emote_set.get("emoticons") or []:
            emote = self._parse_emote(emote_data, source)
            if emote:
                emotes.append(emote)
        return emotes

    def _parse_emote(self, data: dict, source: str) -> ChatEmote | None:
        """Parse an FFZ emote from API data."""
        emote_id = str(data.get("id", ""))
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        urls = data.get("urls") or {}
        url = urls.get("2") or urls.get("1") or ""
        if url.startswith("//"):
            url = "https:" + url
        if not url:
            return None

        return ChatEmote(
            id=emote_id,
            name=name,
            url=url,
            provider=EmoteProviderType.FFZ,
            source=source,
        )


def create_providers(
    settings: TwitchSettings, enabled: list[str] | None = None
) -> list[BaseEmoteProvider]:
    """Build providers in merge priority order, keeping only ``enabled`` ones."""
    providers: list[BaseEmoteProvider] = [
        TwitchProvider(settings),
        SevenTVProvider(),
        BTTVProvider(),
        FFZProvider(),
    ]
    if enabled is None:
        return providers
    return [p for p in providers if p.name in enabled]
