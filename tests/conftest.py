"""Shared test fixtures and fakes for emotechat tests."""

import asyncio
import json

import pytest
from PySide6.QtCore import QObject, Signal

from emotechat.api.twitch import IdentityResolutionError
from emotechat.chat.models import ChatEmote, EmoteProviderType
from emotechat.core.settings import TwitchSettings


class FakeApi:
    """Stands in for TwitchApiClient; records the calls it gets."""

    def __init__(self):
        self.settings = TwitchSettings(access_token="token")
        self.users = {
            None: {"id": "1", "login": "viewer"},
            "somechannel": {"id": "100", "login": "somechannel"},
        }
        self.create_calls: list[str] = []
        self.create_error: Exception | None = None
        self.create_gate: asyncio.Event | None = None
        self.existing_subscription: str | None = "sub-existing"
        self.deleted: list[str] = []
        self.sent: list[str] = []
        self.send_error: Exception | None = None
        self.closed = False

    async def get_user(self, login=None):
        key = login.lower() if login else None
        if key not in self.users:
            raise IdentityResolutionError(f'User "{login}" not found')
        return self.users[key]

    async def create_chat_subscription(self, session_id, broadcaster_id, user_id):
        self.create_calls.append(session_id)
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.create_error is not None:
            raise self.create_error
        return f"sub-{len(self.create_calls)}"

    async def find_chat_subscription(self, session_id, broadcaster_id):
        return self.existing_subscription

    async def delete_eventsub_subscription(self, subscription_id):
        self.deleted.append(subscription_id)

    async def send_chat_message(self, broadcaster_id, sender_id, text):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(text)
        return f"msg-{len(self.sent)}"

    async def close(self):
        self.closed = True


class FakeTransport(QObject):
    """In-memory transport; the test plays the server."""

    opened = Signal()
    frame_received = Signal(str)
    error_occurred = Signal(str)
    closed = Signal(int, str)

    def __init__(self):
        super().__init__()
        self.url: str | None = None
        self.close_calls = 0
        self._finished: asyncio.Event | None = None
        self._closed_emitted = False

    async def run(self, url):
        self.url = url
        self._finished = asyncio.Event()
        await self._finished.wait()

    async def close(self):
        self.close_calls += 1
        self.server_close(1000, "client close")

    def server_close(self, code=4000, reason=""):
        if self._closed_emitted:
            return
        self._closed_emitted = True
        if self._finished is not None:
            self._finished.set()
        self.closed.emit(code, reason)

    def send(self, message_type, payload=None, **metadata):
        frame = {
            "metadata": {
                "message_type": message_type,
                "message_timestamp": "2025-01-01T12:00:00Z",
                **metadata,
            },
            "payload": payload or {},
        }
        self.frame_received.emit(json.dumps(frame))

    def welcome(self, session_id="session-1"):
        self.send(
            "session_welcome",
            {"session": {"id": session_id, "keepalive_timeout_seconds": 30}},
        )


class TransportFactory:
    """Builds FakeTransports and remembers each one."""

    def __init__(self):
        self.created: list[FakeTransport] = []

    def __call__(self):
        transport = FakeTransport()
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


_real_sleep = asyncio.sleep


async def settle(rounds=5):
    """Let scheduled tasks and callbacks run."""
    for _ in range(rounds):
        await _real_sleep(0)


def make_emote(name, provider=EmoteProviderType.SEVENTV, url=None, emote_id=None):
    return ChatEmote(
        id=emote_id or f"{provider.value}-{name}",
        name=name,
        url=url or f"https://cdn.example/{provider.value}/{name}",
        provider=provider,
    )


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def transports():
    return TransportFactory()


@pytest.fixture
def chat_event():
    return {
        "broadcaster_user_id": "100",
        "broadcaster_user_login": "somechannel",
        "chatter_user_id": "200",
        "chatter_user_login": "chatter",
        "chatter_user_name": "Chatter",
        "message_id": "msg-001",
        "message": {"text": "hello Kappa", "fragments": []},
        "color": "#FF0000",
        "badges": [
            {"set_id": "subscriber", "id": "12", "info": "14"},
            {"set_id": "moderator", "id": "1", "info": ""},
            {"set_id": "glhf-pledge", "id": "1", "info": ""},
        ],
    }
