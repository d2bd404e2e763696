"""Light, language-specific stemming used as a last-resort match."""

from __future__ import annotations

import re
from typing import Protocol, Sequence

MIN_STEM_CHARS = 4


class Stemmer(Protocol):
    def applies_to(self, text: str) -> bool:
        ...

    def stem(self, text: str) -> str | None:
        ...


class RussianStemmer:
    """Strip common Russian inflectional endings from each word.

    Operates on folded text, so ``й`` has already become ``и``.
    """

    _CYRILLIC_RE = re.compile(r"[Ѐ-ӿ]")
    # Longest endings first so "ами" wins over "и".
    SUFFIXES = (
        "иями", "ями", "ами", "ого", "его", "ому", "ему", "ыми", "ими",
        "ией", "иях", "ах", "ях", "ов", "ев", "ои", "еи", "ая", "яя",
        "ое", "ее", "ые", "ие", "ую", "юю", "ом", "ем", "ам", "ям",
        "ы", "и", "а", "я", "е", "у", "ю", "о", "ь",
    )

    def applies_to(self, text: str) -> bool:
        return bool(self._CYRILLIC_RE.search(text))

    def stem(self, text: str) -> str | None:
        words = []
        for word in text.split():
            for suffix in self.SUFFIXES:
                if word.endswith(suffix) and len(word) - len(suffix) >= MIN_STEM_CHARS:
                    word = word[: -len(suffix)]
                    break
            words.append(word)
        stemmed = " ".join(words)
        if stemmed == text or len(stemmed) < MIN_STEM_CHARS:
            return None
        return stemmed


DEFAULT_STEMMERS: tuple[Stemmer, ...] = (RussianStemmer(),)


def stem_fallback(query: str, stemmers: Sequence[Stemmer] = DEFAULT_STEMMERS) -> str | None:
    """Stem of the first stemmer whose script matches ``query``."""
    for stemmer in stemmers:
        if stemmer.applies_to(query):
            stem = stemmer.stem(query)
            if stem:
                return stem
    return None
