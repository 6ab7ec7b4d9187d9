"""Settings management for emotechat."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from appdirs import user_config_dir, user_data_dir

from .credential_store import keyring_usable, load_token, restrict_to_owner, save_token

logger = logging.getLogger(__name__)

APP_NAME = "emotechat"
APP_AUTHOR = "emotechat"

# Default Twitch application client ID (public client, token-only flows)
DEFAULT_CLIENT_ID = "4iu9xwadj4m2hdbilfa7fxwaqrkz49"

DEFAULT_EMOTE_PROVIDERS = ["twitch", "7tv", "bttv", "ffz"]


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Get the data directory."""
    path = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class TwitchSettings:
    """Twitch API settings."""

    client_id: str = ""
    access_token: str = ""
    login_name: str = ""  # Twitch username of the logged-in account

    @property
    def effective_client_id(self) -> str:
        return self.client_id or DEFAULT_CLIENT_ID


@dataclass
class ChatSettings:
    """Chat session and emote settings."""

    channel: str = ""  # Last opened channel login
    keepalive_timeout_seconds: int = 30
    emote_providers: list[str] = field(default_factory=lambda: list(DEFAULT_EMOTE_PROVIDERS))
    emote_cache_max_age: int = 3600  # seconds before a persisted catalog is ignored
    history_size: int = 500  # in-memory chat window per channel
    # Dial the URL from session_reconnect instead of a fresh backoff reconnect
    dial_reconnect_url: bool = True
    # Treat HTTP 409 on subscription create as success
    treat_existing_subscription_as_success: bool = True


@dataclass
class Settings:
    """Application settings."""

    twitch: TwitchSettings = field(default_factory=TwitchSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from file."""
        if path is None:
            path = get_config_dir() / "settings.json"

        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            settings = cls._from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable settings file {path}: {e}")
            return cls()

        stored = load_token()
        if stored:
            settings.twitch.access_token = stored
        elif settings.twitch.access_token and keyring_usable():
            # Plain-text token from an older file moves to the keyring
            settings.save(path)

        return settings

    def save(self, path: Path | None = None) -> None:
        """Save settings to file."""
        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        in_keyring = save_token(self.twitch.access_token)

        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(exclude_secrets=in_keyring), f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        if not in_keyring:
            restrict_to_owner(path)

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        if "twitch" in data:
            t = data["twitch"]
            settings.twitch = TwitchSettings(
                client_id=t.get("client_id", ""),
                access_token=t.get("access_token", ""),
                login_name=t.get("login_name", ""),
            )

        if "chat" in data:
            c = data["chat"]
            defaults = ChatSettings()
            providers = c.get("emote_providers", defaults.emote_providers)
            if not isinstance(providers, list):
                providers = defaults.emote_providers
            settings.chat = ChatSettings(
                channel=c.get("channel", ""),
                keepalive_timeout_seconds=cls._validate_int(
                    c.get("keepalive_timeout_seconds"), 30, min_val=10, max_val=600
                ),
                emote_providers=[p for p in providers if p in DEFAULT_EMOTE_PROVIDERS],
                emote_cache_max_age=cls._validate_int(
                    c.get("emote_cache_max_age"), 3600, min_val=0
                ),
                history_size=cls._validate_int(
                    c.get("history_size"), 500, min_val=10, max_val=10000
                ),
                dial_reconnect_url=c.get("dial_reconnect_url", defaults.dial_reconnect_url),
                treat_existing_subscription_as_success=c.get(
                    "treat_existing_subscription_as_success",
                    defaults.treat_existing_subscription_as_success,
                ),
            )

        return settings

    def _to_dict(self, exclude_secrets: bool = False) -> dict:
        """Convert Settings to a dictionary.

        If exclude_secrets is True, the access token is omitted
        (it is stored in the system keyring instead).
        """
        return {
            "twitch": {
                "client_id": self.twitch.client_id,
                "login_name": self.twitch.login_name,
                **({"access_token": self.twitch.access_token} if not exclude_secrets else {}),
            },
            "chat": {
                "channel": self.chat.channel,
                "keepalive_timeout_seconds": self.chat.keepalive_timeout_seconds,
                "emote_providers": list(self.chat.emote_providers),
                "emote_cache_max_age": self.chat.emote_cache_max_age,
                "history_size": self.chat.history_size,
                "dial_reconnect_url": self.chat.dial_reconnect_url,
                "treat_existing_subscription_as_success": (
                    self.chat.treat_existing_subscription_as_success
                ),
            },
        }
