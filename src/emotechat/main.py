#!/usr/bin/env python3
"""Main entry point for emotechat."""

import argparse
import asyncio
import logging
import signal
import sys

from .api.base import ApiError
from .api.twitch import IdentityResolutionError, TwitchApiClient
from .chat.connections.eventsub import RECONNECT_EXHAUSTED_ERROR
from .chat.connections.subscription import SubscriptionError
from .chat.emotes.tokenizer import Segment, render_plain
from .chat.manager import ChatManager
from .chat.models import ChannelNotification, ChatMessage, SessionState
from .core.settings import Settings
from .core.storage import JsonStore


def setup_logging(debug: bool = False) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def format_message(message: ChatMessage, segments: list[Segment]) -> str:
    """One chat line with emotes shown as ``[name]``."""
    badges = "".join(f"[{badge.type.value}]" for badge in message.badges)
    prefix = f"{badges} " if badges else ""
    return f"{prefix}{message.sender_display_name}: {render_plain(segments, '[{name}]')}"


def format_notification(notification: ChannelNotification) -> str:
    return f"* {notification.text}"


async def run_chat(settings: Settings, channel: str) -> int:
    """Follow one channel's chat until interrupted."""
    manager = ChatManager(settings, store=JsonStore("cache"))
    stop = asyncio.Event()

    def on_message(_channel: str, message: ChatMessage, segments: list) -> None:
        print(format_message(message, segments), flush=True)

    def on_notification(_channel: str, notification: ChannelNotification) -> None:
        print(format_notification(notification), flush=True)

    def on_state_changed(_channel: str, state: SessionState) -> None:
        logging.debug(f"Session state: {state}")
        if state.error == RECONNECT_EXHAUSTED_ERROR:
            stop.set()

    manager.message_received.connect(on_message)
    manager.notification_received.connect(on_notification)
    manager.state_changed.connect(on_state_changed)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows; KeyboardInterrupt still ends asyncio.run
            pass

    conn = manager.open_channel(channel)

    async def watch_subscription() -> None:
        try:
            await conn.wait_until_subscribed()
        except (SubscriptionError, IdentityResolutionError) as e:
            logging.error(f"Could not join #{channel}: {e}")
            stop.set()
        else:
            logging.info(f"Joined #{channel}")

    watcher = asyncio.ensure_future(watch_subscription())
    try:
        await stop.wait()
    finally:
        watcher.cancel()
        await manager.close()

    if conn.state.error:
        return 1
    return 0


async def cleanup_subscriptions(settings: Settings) -> int:
    api = TwitchApiClient(settings.twitch)
    try:
        deleted = await api.delete_all_subscriptions()
    except ApiError as e:
        logging.error(f"Failed to delete subscriptions: {e}")
        return 1
    finally:
        await api.close()
    print(f"Deleted {deleted} subscriptions")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="emotechat - Twitch chat with third-party emotes")
    parser.add_argument("channel", nargs="?", help="Channel login (defaults to the last one)")
    parser.add_argument("--token", help="Twitch user access token (saved to the keyring)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--cleanup-subscriptions",
        action="store_true",
        help="Delete every EventSub subscription owned by this app and exit",
    )
    args = parser.parse_args(argv)

    setup_logging(args.debug)

    settings = Settings.load()
    if args.token:
        settings.twitch.access_token = args.token
    if not settings.twitch.access_token:
        logging.error("No Twitch access token; pass one with --token")
        return 1

    if args.cleanup_subscriptions:
        return asyncio.run(cleanup_subscriptions(settings))

    channel = (args.channel or settings.chat.channel).lower()
    if not channel:
        parser.error("a channel is required")

    settings.chat.channel = channel
    settings.save()

    try:
        return asyncio.run(run_chat(settings, channel))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
