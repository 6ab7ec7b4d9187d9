"""Tests for the Helix client, with HTTP replaced by canned responses."""

import asyncio

import aiohttp
import pytest

from emotechat.api import base
from emotechat.api.base import ApiError
from emotechat.api.twitch import IdentityResolutionError, TwitchApiClient
from emotechat.core.settings import TwitchSettings


class _Helix:
    """Records requests and answers them from a queue of (status, data)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def __call__(self, method, path, params=None, json_body=None):
        self.requests.append((method, path, params, json_body))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def client(monkeypatch):
    async def no_sleep(delay):
        pass

    monkeypatch.setattr(base.asyncio, "sleep", no_sleep)
    return TwitchApiClient(TwitchSettings(client_id="cid", access_token="tok"))


def test_headers(client):
    assert client._get_headers() == {"Client-Id": "cid", "Authorization": "Bearer tok"}


def test_get_user_is_cached(client):
    helix = _Helix((200, {"data": [{"id": "100", "login": "somechannel"}]}))
    client._request = helix

    async def scenario():
        first = await client.get_user("SomeChannel")
        second = await client.get_user("somechannel")
        return first, second

    first, second = asyncio.run(scenario())
    assert first["id"] == "100"
    assert second is first
    assert helix.requests == [("GET", "/users", {"login": "somechannel"}, None)]


def test_get_current_user(client):
    client._request = _Helix((200, {"data": [{"id": "1", "login": "viewer"}]}))
    assert asyncio.run(client.get_user())["login"] == "viewer"


def test_get_user_not_found(client):
    client._request = _Helix((200, {"data": []}))
    with pytest.raises(IdentityResolutionError, match="not found"):
        asyncio.run(client.get_user("nobody"))


def test_get_user_http_error(client):
    client._request = _Helix((401, {"message": "Invalid OAuth token"}))
    with pytest.raises(IdentityResolutionError):
        asyncio.run(client.get_user())


def test_get_user_retries_network_errors(client):
    helix = _Helix(
        aiohttp.ClientConnectionError("reset"),
        (200, {"data": [{"id": "1", "login": "viewer"}]}),
    )
    client._request = helix
    assert asyncio.run(client.get_user())["id"] == "1"
    assert len(helix.requests) == 2


def test_get_user_gives_up_after_retries(client):
    client._request = _Helix(*[aiohttp.ClientConnectionError("down")] * 3)
    with pytest.raises(IdentityResolutionError, match="down"):
        asyncio.run(client.get_user())


def test_create_chat_subscription(client):
    helix = _Helix((202, {"data": [{"id": "sub-1", "status": "enabled"}]}))
    client._request = helix
    sub_id = asyncio.run(client.create_chat_subscription("session-1", "100", "1"))
    assert sub_id == "sub-1"

    method, path, _, body = helix.requests[0]
    assert (method, path) == ("POST", "/eventsub/subscriptions")
    assert body == {
        "type": "channel.chat.message",
        "version": "1",
        "condition": {"broadcaster_user_id": "100", "user_id": "1"},
        "transport": {"method": "websocket", "session_id": "session-1"},
    }


def test_create_chat_subscription_conflict(client):
    client._request = _Helix((409, {"message": "subscription already exists"}))
    with pytest.raises(ApiError) as exc_info:
        asyncio.run(client.create_chat_subscription("session-1", "100", "1"))
    assert exc_info.value.status == 409


def test_find_chat_subscription_follows_pages(client):
    helix = _Helix(
        (
            200,
            {
                "data": [
                    {
                        "id": "other",
                        "transport": {"session_id": "old"},
                        "condition": {"broadcaster_user_id": "100"},
                    }
                ],
                "pagination": {"cursor": "next"},
            },
        ),
        (
            200,
            {
                "data": [
                    {
                        "id": "mine",
                        "transport": {"session_id": "session-1"},
                        "condition": {"broadcaster_user_id": "100"},
                    }
                ],
                "pagination": {},
            },
        ),
    )
    client._request = helix
    assert asyncio.run(client.find_chat_subscription("session-1", "100")) == "mine"
    assert helix.requests[1][2] == {"type": "channel.chat.message", "after": "next"}


def test_delete_all_subscriptions(client):
    helix = _Helix(
        (200, {"data": [{"id": "a"}, {"id": "b"}], "pagination": {}}),
        (204, None),
        (404, {"message": "not found"}),
    )
    client._request = helix
    assert asyncio.run(client.delete_all_subscriptions()) == 1
    assert [r[2] for r in helix.requests[1:]] == [{"id": "a"}, {"id": "b"}]


def test_send_chat_message(client):
    helix = _Helix((200, {"data": [{"message_id": "m-1", "is_sent": True}]}))
    client._request = helix
    assert asyncio.run(client.send_chat_message("100", "1", "hi")) == "m-1"
    assert helix.requests[0][3] == {"broadcaster_id": "100", "sender_id": "1", "message": "hi"}


def test_send_chat_message_dropped(client):
    client._request = _Helix(
        (200, {"data": [{"is_sent": False, "drop_reason": {"message": "msg_duplicate"}}]})
    )
    with pytest.raises(ApiError, match="msg_duplicate"):
        asyncio.run(client.send_chat_message("100", "1", "hi"))


def test_get_subscriptions_with_unparseable_body(client):
    client._request = _Helix((200, None))
    assert asyncio.run(client.get_subscriptions()) == []
