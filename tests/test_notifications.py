"""Tests for channel event formatting."""

from emotechat.chat.notifications import (
    build_notification,
    format_channel_event,
    format_chat_settings,
)


class TestChatSettings:
    def test_emote_only(self):
        assert format_chat_settings({"emote_mode": True}) == "Emote Only Mode enabled"

    def test_followers_with_duration(self):
        event = {"follower_mode": True, "follower_mode_duration_minutes": 10}
        assert format_chat_settings(event) == "Followers Only Mode enabled (10 minutes)"

    def test_followers_without_duration(self):
        event = {"follower_mode": True, "follower_mode_duration_minutes": 0}
        assert format_chat_settings(event) == "Followers Only Mode enabled"

    def test_combined(self):
        event = {
            "emote_mode": False,
            "slow_mode": True,
            "slow_mode_wait_time_seconds": 30,
            "subscriber_mode": True,
            "unique_chat_mode": False,
        }
        assert format_chat_settings(event) == (
            "Emote Only Mode disabled, Slow Mode enabled (30 seconds), "
            "Subscribers Only Mode enabled, Unique Chat Mode disabled"
        )

    def test_nothing_present(self):
        assert format_chat_settings({}) == "Chat settings updated"

    def test_null_fields_are_skipped(self):
        assert format_chat_settings({"slow_mode": None}) == "Chat settings updated"


class TestChannelEvents:
    def test_moderator_add(self):
        text = format_channel_event("channel.moderator.add", {"user_name": "Alice"})
        assert text == "Alice has been made a moderator"

    def test_moderator_remove(self):
        text = format_channel_event("channel.moderator.remove", {"user_name": "Alice"})
        assert text == "Alice is no longer a moderator"

    def test_ban_with_reason(self):
        text = format_channel_event("channel.ban", {"user_name": "Bob", "reason": "spam"})
        assert text == "Bob has been banned: spam"

    def test_ban_without_reason(self):
        assert format_channel_event("channel.ban", {"user_name": "Bob"}) == "Bob has been banned"

    def test_unban(self):
        assert format_channel_event("channel.unban", {"user_name": "Bob"}) == (
            "Bob has been unbanned"
        )

    def test_unknown_type(self):
        assert format_channel_event("channel.raid", {}) == "Channel event: channel.raid"

    def test_missing_event(self):
        assert format_channel_event("channel.ban", None) == "Someone has been banned"


def test_build_notification():
    n = build_notification("channel.chat_settings.update", {"emote_mode": True}, "ts")
    assert n.id.startswith("notification_")
    assert n.event_type == "channel.chat_settings.update"
    assert n.text == "Emote Only Mode enabled"
    assert n.timestamp == "ts"


def test_build_notification_ids_are_unique():
    a = build_notification("channel.ban", {})
    b = build_notification("channel.ban", {})
    assert a.id != b.id
    assert a.timestamp
