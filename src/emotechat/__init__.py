"""emotechat - Twitch EventSub chat with merged third-party emotes."""

__version__ = "0.3.0"
