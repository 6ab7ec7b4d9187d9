"""Persisted key-value store backed by JSON files in the data directory."""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from .settings import get_data_dir

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _safe_filename(key: str) -> str:
    """Map a store key to a file name."""
    return _UNSAFE_CHARS.sub("_", key) + ".json"


class JsonStore:
    """Small key-value store, one JSON file per key.

    Used for the per-channel emote catalog cache and favourite emotes.
    Read errors return the default; write errors are logged.
    """

    def __init__(self, name: str, base_dir: Path | None = None) -> None:
        self._dir = (base_dir or get_data_dir()) / name
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / _safe_filename(key)

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)["value"]
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Failed to read store key '{key}': {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._dir, suffix=".tmp", prefix="kv_")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump({"key": key, "value": value}, f)
                os.replace(tmp_path, path)
            except Exception:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write store key '{key}': {e}")

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete store key '{key}': {e}")

    def keys(self) -> list[str]:
        """Return stored keys (original spelling, read from each file)."""
        result: list[str] = []
        for path in sorted(self._dir.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    result.append(json.load(f)["key"])
            except (OSError, json.JSONDecodeError, KeyError, TypeError):
                continue
        return result
