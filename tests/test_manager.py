"""Tests for ChatManager orchestration."""

import asyncio

import pytest
from conftest import make_emote, settle

from emotechat.api.base import ApiError
from emotechat.chat.connections.eventsub import EventSubChatConnection
from emotechat.chat.emotes.aggregator import EmoteAggregator
from emotechat.chat.emotes.provider import BaseEmoteProvider
from emotechat.chat.manager import ChatManager
from emotechat.chat.models import ChatMessage, EmoteProviderType
from emotechat.chat.sender import INVISIBLE_SPACE
from emotechat.core.settings import ChatSettings, Settings
from emotechat.core.storage import JsonStore


class _BTTV(BaseEmoteProvider):
    @property
    def provider_type(self):
        return EmoteProviderType.BTTV

    async def fetch_emotes(self, broadcaster_id, user_id):
        return [make_emote("catJAM", EmoteProviderType.BTTV)]


def _manager(fake_api, transports, history_size=500, store=None):
    settings = Settings(chat=ChatSettings(history_size=history_size))
    return ChatManager(
        settings,
        api=fake_api,
        store=store,
        aggregator=EmoteAggregator(fake_api, providers=[_BTTV()]),
        connection_factory=lambda api, channel: EventSubChatConnection(
            api, channel, settings=settings.chat, transport_factory=transports
        ),
    )


async def _open(manager, transports, channel="somechannel"):
    conn = manager.open_channel(channel)
    await settle()
    transports.last.opened.emit()
    transports.last.welcome("session-1")
    await conn.wait_until_subscribed(timeout=1)
    await manager.wait_for_emotes(channel)
    return transports.last


def _chat(transport, chat_event, text, message_id="m1"):
    event = dict(chat_event, message={"text": text}, message_id=message_id)
    transport.send(
        "notification",
        {"subscription": {"type": "channel.chat.message"}, "event": event},
    )


def test_messages_are_tokenized_and_kept(fake_api, transports, chat_event):
    async def scenario():
        manager = _manager(fake_api, transports)
        received, catalogs = [], []
        manager.message_received.connect(lambda ch, msg, segs: received.append((ch, msg, segs)))
        manager.emotes_loaded.connect(lambda ch, catalog: catalogs.append(catalog))
        transport = await _open(manager, transports, "SomeChannel")

        assert manager.channels == ["somechannel"]
        assert manager.is_connected("somechannel")
        assert len(catalogs) == 1

        _chat(transport, chat_event, f"look catJAM {INVISIBLE_SPACE}")
        channel, message, segments = received[0]
        assert channel == "somechannel"
        assert message.text == "look catJAM"
        assert segments[0] == "look "
        assert segments[1].name == "catJAM"
        assert len(segments) == 2
        assert manager.history("somechannel") == [message]
        await manager.close()

    asyncio.run(scenario())


def test_history_is_bounded(fake_api, transports, chat_event):
    async def scenario():
        manager = _manager(fake_api, transports, history_size=3)
        transport = await _open(manager, transports)
        for i in range(5):
            _chat(transport, chat_event, f"line {i}", message_id=f"m{i}")
        transport.send(
            "notification",
            {"subscription": {"type": "channel.ban"}, "event": {"user_name": "Bob"}},
        )
        history = manager.history("somechannel")
        assert [item.text for item in history] == ["line 3", "line 4", "Bob has been banned"]
        assert isinstance(history[0], ChatMessage)
        await manager.close()

    asyncio.run(scenario())


def test_open_twice_returns_same_connection(fake_api, transports):
    async def scenario():
        manager = _manager(fake_api, transports)
        first = manager.open_channel("somechannel")
        assert manager.open_channel("SOMECHANNEL") is first
        assert len(transports.created) == 1
        await manager.close()

    asyncio.run(scenario())


def test_tokenize_uses_current_catalog(fake_api, transports):
    async def scenario():
        manager = _manager(fake_api, transports)
        assert manager.tokenize("somechannel", "catJAM") == ["catJAM"]
        await _open(manager, transports)
        assert manager.tokenize("somechannel", "catJAM")[0].name == "catJAM"
        await manager.close()

    asyncio.run(scenario())


def test_send_message(fake_api, transports):
    async def scenario():
        manager = _manager(fake_api, transports)
        errors = []
        manager.error.connect(lambda ch, msg: errors.append((ch, msg)))

        assert await manager.send_message("somechannel", "hi") is None
        await _open(manager, transports)
        assert await manager.send_message("somechannel", "hi") == "msg-1"
        assert await manager.send_message("somechannel", "hi") == "msg-2"
        assert fake_api.sent == ["hi", f"hi {INVISIBLE_SPACE}"]

        fake_api.send_error = ApiError(400, "Message dropped")
        assert await manager.send_message("somechannel", "other") is None
        assert errors == [("somechannel", "HTTP 400: Message dropped")]
        await manager.close()

    asyncio.run(scenario())


def test_emote_failure_is_reported(fake_api, transports):
    async def scenario():
        manager = _manager(fake_api, transports)
        errors = []
        manager.error.connect(lambda ch, msg: errors.append(ch))
        manager.open_channel("nobody")
        await manager.wait_for_emotes("nobody")
        assert "nobody" in errors
        assert len(manager.emote_catalog("nobody")) == 0
        await manager.close()

    asyncio.run(scenario())


def test_close_channel(fake_api, transports, chat_event):
    async def scenario():
        manager = _manager(fake_api, transports)
        await _open(manager, transports)
        await manager.close_channel("somechannel")

        assert manager.channels == []
        assert manager.history("somechannel") == []
        assert fake_api.deleted == ["sub-1"]
        assert manager.connection("somechannel") is None
        await manager.close()
        assert fake_api.closed

    asyncio.run(scenario())


def test_favorites(fake_api, transports, tmp_path):
    manager = _manager(fake_api, transports, store=JsonStore("data", base_dir=tmp_path))
    favorites = manager.favorites("somechannel")
    favorites.add("catJAM")
    assert manager.favorites("SomeChannel").names == ["catJAM"]


def test_favorites_need_store(fake_api, transports):
    manager = _manager(fake_api, transports)
    with pytest.raises(RuntimeError):
        manager.favorites("somechannel")


def test_send_timeout_is_reported(fake_api, transports):
    async def scenario():
        manager = _manager(fake_api, transports)
        errors = []
        manager.error.connect(lambda ch, msg: errors.append((ch, msg)))
        await _open(manager, transports)

        fake_api.send_error = asyncio.TimeoutError()
        assert await manager.send_message("somechannel", "hi") is None
        assert errors == [("somechannel", "Request timed out")]
        await manager.close()

    asyncio.run(scenario())
