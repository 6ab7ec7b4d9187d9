"""Tests for message tokenizing."""

from conftest import make_emote

from emotechat.chat.emotes.tokenizer import normalize_whitespace, render_plain, tokenize_message
from emotechat.chat.models import EmoteCatalog, EmoteProviderType


def _catalog(*names):
    return EmoteCatalog(channel="c", emotes={name: make_emote(name) for name in names})


def test_empty_text():
    assert tokenize_message("", _catalog("Kappa")) == []
    assert tokenize_message("   ", _catalog("Kappa")) == []


def test_empty_catalog_returns_normalized_text():
    assert tokenize_message("  hello   world ", EmoteCatalog.empty("c")) == ["hello world"]
    assert tokenize_message("hello", None) == ["hello"]


def test_plain_text_stays_one_segment():
    assert tokenize_message("no emotes here", _catalog("Kappa")) == ["no emotes here"]


def test_emote_between_text():
    catalog = _catalog("Kappa")
    segments = tokenize_message("hi Kappa there", catalog)
    assert segments == ["hi ", catalog.get("Kappa"), " there"]


def test_adjacent_emotes_keep_separator():
    catalog = _catalog("Kappa", "PogChamp")
    segments = tokenize_message("Kappa  Kappa PogChamp", catalog)
    kappa, pog = catalog.get("Kappa"), catalog.get("PogChamp")
    assert segments == [kappa, " ", kappa, " ", pog]


def test_match_is_case_sensitive():
    catalog = _catalog("Kappa")
    assert tokenize_message("kappa KAPPA", catalog) == ["kappa KAPPA"]


def test_punctuation_prevents_match():
    catalog = _catalog("Kappa")
    assert tokenize_message("Kappa!", catalog) == ["Kappa!"]


def test_accepts_plain_mapping():
    emote = make_emote("EZ", EmoteProviderType.BTTV)
    assert tokenize_message("EZ", {"EZ": emote}) == [emote]


def test_normalize_whitespace():
    assert normalize_whitespace("\ta \n b  ") == "a b"


def test_render_plain():
    catalog = _catalog("Kappa")
    segments = tokenize_message("hi Kappa", catalog)
    assert render_plain(segments) == "hi Kappa"
    assert render_plain(segments, "[{name}]") == "hi [Kappa]"
