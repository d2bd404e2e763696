"""Localization hooks for page titles and widget strings."""

from __future__ import annotations

import gettext
import logging
import re
from pathlib import Path
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

Translate = Callable[[str, Optional[str]], str]

_SEPARATOR_RE = re.compile(r"(\s*[/:]\s*)")

WIDGET_STRINGS: Dict[str, str] = {
    "find": "Find",
    "no_results": "No results...",
    "request_error": "Request error",
    "whole_words": "Whole words only",
    "rebuild_index": "Rebuild index",
}


def identity_translate(text: str, path_hint: str | None = None) -> str:
    return text


def gettext_translator(
    locale_dir: Path | None,
    language: str | None,
    *,
    domain: str = "messages",
) -> Translate:
    """Translate through a compiled gettext catalog.

    Missing catalogs fall back to returning the input unchanged.
    """
    if locale_dir is None or not language:
        return identity_translate

    catalog = gettext.translation(
        domain, localedir=str(locale_dir), languages=[language], fallback=True
    )
    if type(catalog) is gettext.NullTranslations:
        LOGGER.info("No %s catalog for %s in %s", domain, language, locale_dir)

    def translate(text: str, path_hint: str | None = None) -> str:
        if not text:
            return text
        return catalog.gettext(text)

    return translate


def localize_name(name: str, translate: Translate, path_hint: str | None = None) -> str:
    """Translate a breadcrumb title segment by segment.

    ``"Firewall / NAT: Port Forward"`` is split on ``/`` and ``:``; each
    segment is translated on its own and reassembled with the original
    separators, so partially translated breadcrumbs still render.
    """
    if not name:
        return name
    parts = _SEPARATOR_RE.split(name)
    out = []
    for part in parts:
        if not part or _SEPARATOR_RE.fullmatch(part):
            out.append(part)
            continue
        stripped = part.strip()
        if not stripped:
            out.append(part)
            continue
        lead = part[: len(part) - len(part.lstrip())]
        trail = part[len(part.rstrip()) :]
        out.append(lead + translate(stripped, path_hint) + trail)
    return "".join(out)


def widget_strings(translate: Translate) -> Dict[str, str]:
    """Localized labels for the search overlay."""
    return {key: translate(value, None) for key, value in WIDGET_STRINGS.items()}
