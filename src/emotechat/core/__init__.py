"""Core settings and persistence for emotechat."""

from .settings import ChatSettings, Settings, TwitchSettings
from .storage import JsonStore

__all__ = [
    "ChatSettings",
    "JsonStore",
    "Settings",
    "TwitchSettings",
]
