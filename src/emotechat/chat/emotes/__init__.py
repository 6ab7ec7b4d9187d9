"""Emote catalogs: providers, merging, caching, and tokenizing."""

from .aggregator import EmoteAggregator, merge_emotes
from .cache import EmoteCatalogCache
from .tokenizer import tokenize_message

__all__ = [
    "EmoteAggregator",
    "EmoteCatalogCache",
    "merge_emotes",
    "tokenize_message",
]
