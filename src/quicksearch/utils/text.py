"""Text helpers: display normalization, folding and tokenization."""

from __future__ import annotations

import html
import re
import unicodedata
from typing import List

_WS_RE = re.compile(r"\s+", re.UNICODE)
_TAG_RE = re.compile(r"<[^>]*>")
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)
_EXT_RE = re.compile(r"\.[A-Za-z0-9]+$")

ELLIPSIS = "…"

# Letters NFD does not decompose into base + combining mark.
_VARIANT_LETTERS = str.maketrans(
    {
        "ß": "ss",
        "æ": "ae",
        "œ": "oe",
        "ø": "o",
        "ł": "l",
        "đ": "d",
        "ð": "d",
        "þ": "th",
        "ı": "i",
    }
)


def normalize(text: str) -> str:
    """Decode entities, compose, collapse whitespace, trim and lowercase."""
    if not text:
        return ""
    text = html.unescape(text)
    text = unicodedata.normalize("NFC", text)
    text = _WS_RE.sub(" ", text).strip()
    return text.lower()


def fold(text: str) -> str:
    """Normalize and strip diacritics so that variant spellings compare equal."""
    text = normalize(text)
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped).translate(_VARIANT_LETTERS)


def tokenize(text: str) -> List[str]:
    """Split folded text on runs of non letter/digit characters."""
    return [token for token in _TOKEN_SPLIT_RE.split(fold(text)) if token]


def norm_text(text: str, max_len: int = 220) -> str:
    """Normalize a snippet for display: strip markup and truncate.

    Case is preserved; the result is meant for the ``title`` field only.
    """
    if not text:
        return ""
    text = html.unescape(text)
    text = _TAG_RE.sub("", text)
    text = _WS_RE.sub(" ", text).strip()
    if not text:
        return ""
    if len(text) > max_len:
        text = text[:max_len] + ELLIPSIS
    return text


def looks_meaningful(text: str) -> bool:
    """Whether a string is worth indexing: 3+ folded chars and a letter."""
    folded = fold(text)
    return len(folded) >= 3 and any(ch.isalpha() for ch in folded)


def prettify_filename(name: str) -> str:
    """Turn ``firewall_nat_edit.php`` into ``Firewall Nat Edit``."""
    pretty = _EXT_RE.sub("", name).replace("_", " ")
    pretty = _WS_RE.sub(" ", pretty).strip()
    if not pretty:
        return name
    return " ".join(word[:1].upper() + word[1:] for word in pretty.split(" "))
