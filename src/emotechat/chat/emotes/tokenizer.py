"""Split message text into literal text and emote segments."""

import re
from collections.abc import Mapping
from typing import Union

from ..models import ChatEmote, EmoteCatalog

Segment = Union[str, ChatEmote]

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def tokenize_message(
    text: str, catalog: EmoteCatalog | Mapping[str, ChatEmote] | None
) -> list[Segment]:
    """Return ``text`` as a list of literal strings and ChatEmotes.

    Separating spaces are kept as literal text and merged with adjacent
    literal words, e.g. ``"hi Kappa"`` -> ``["hi ", <Kappa>]``.
    """
    emotes = catalog.emotes if isinstance(catalog, EmoteCatalog) else (catalog or {})
    normalized = normalize_whitespace(text)
    if not normalized:
        return []
    if not emotes:
        return [normalized]

    segments: list[Segment] = []
    pending: list[str] = []
    for index, token in enumerate(normalized.split(" ")):
        if index:
            pending.append(" ")
        emote = emotes.get(token)
        if emote is None:
            pending.append(token)
            continue
        if pending:
            segments.append("".join(pending))
            pending = []
        segments.append(emote)

    if pending:
        segments.append("".join(pending))
    return segments


def render_plain(segments: list[Segment], emote_format: str = "{name}") -> str:
    """Flatten segments back to text, formatting emotes with ``emote_format``."""
    parts = []
    for segment in segments:
        if isinstance(segment, ChatEmote):
            parts.append(emote_format.format(name=segment.name, provider=segment.provider.value))
        else:
            parts.append(segment)
    return "".join(parts)
