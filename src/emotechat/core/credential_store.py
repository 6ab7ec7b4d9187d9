"""Keyring storage for the Twitch OAuth token.

When a working keyring backend exists the token lives there and is left
out of settings.json. Otherwise settings.json keeps it and is restricted
to the owner.
"""

import logging
import os
import stat
from pathlib import Path

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)

SERVICE_NAME = "emotechat"
TOKEN_ENTRY = "twitch_access_token"
_CHECK_ENTRY = "_check"

# None until the backend has been checked
_backend_usable: bool | None = None


def keyring_usable() -> bool:
    """Whether the token can go to the keyring. Checked once per process."""
    global _backend_usable
    if _backend_usable is None:
        _backend_usable = _backend_works()
    return _backend_usable


def _backend_works() -> bool:
    backend = keyring.get_keyring()
    if isinstance(backend, FailKeyring):
        logger.info("No keyring backend, the token stays in settings.json")
        return False
    try:
        backend.set_password(SERVICE_NAME, _CHECK_ENTRY, "ok")
        readable = backend.get_password(SERVICE_NAME, _CHECK_ENTRY) == "ok"
        backend.delete_password(SERVICE_NAME, _CHECK_ENTRY)
    except Exception as e:
        logger.info(f"Keyring {type(backend).__name__} not usable: {e}")
        return False
    if readable:
        logger.info(f"Storing the token in {type(backend).__name__}")
    else:
        logger.info(f"Keyring {type(backend).__name__} did not return what was written")
    return readable


def load_token() -> str | None:
    if not keyring_usable():
        return None
    try:
        return keyring.get_keyring().get_password(SERVICE_NAME, TOKEN_ENTRY)
    except Exception as e:
        logger.warning(f"Could not read the token from the keyring: {e}")
        return None


def save_token(token: str) -> bool:
    """Put ``token`` in the keyring; an empty token removes the entry.

    Returns False when the caller has to keep the token in settings.json.
    """
    if not keyring_usable():
        return False
    backend = keyring.get_keyring()
    try:
        if token:
            backend.set_password(SERVICE_NAME, TOKEN_ENTRY, token)
        else:
            backend.delete_password(SERVICE_NAME, TOKEN_ENTRY)
    except PasswordDeleteError:
        pass
    except Exception as e:
        logger.warning(f"Could not write the token to the keyring: {e}")
        return False
    return True


def restrict_to_owner(path: Path) -> None:
    """chmod 600, for a settings file that holds the token in plain text."""
    try:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    except OSError as e:
        logger.debug(f"Could not set permissions on {path}: {e}")
