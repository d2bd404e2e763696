"""Synonym table loading and query expansion.

Synonym files are JSON objects mapping a phrase to a list of equivalent
phrases, e.g. ``{"settings": ["configuration", "setup"]}``. Every ``*.json``
file in the configured directory is merged on top of a small built-in
multilingual table. Keys and values are folded on load so lookups need no
further normalization.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional

from quicksearch.utils.text import fold, tokenize

LOGGER = logging.getLogger(__name__)

SynonymTable = Dict[str, FrozenSet[str]]
Transliterator = Callable[[str], Optional[str]]

FALLBACK_SYNONYMS: Dict[str, list[str]] = {
    "settings": ["configuration", "setup", "options", "настройки", "einstellungen", "configuracion"],
    "configuration": ["settings", "setup", "config"],
    "setup": ["settings", "configuration", "wizard"],
    "firewall": ["filter", "rules", "брандмауэр", "межсетевой экран", "cortafuegos", "pare-feu"],
    "rules": ["firewall", "filter", "правила", "regeln", "reglas", "regles"],
    "nat": ["port forward", "outbound", "binat"],
    "forward": ["port forward", "nat", "redirect"],
    "vpn": ["openvpn", "ipsec", "wireguard", "l2tp"],
    "dns": ["resolver", "forwarder", "unbound", "dnsmasq"],
    "dhcp": ["leases", "static mapping", "relay"],
    "interfaces": ["interface", "ports", "assignments", "интерфейсы", "schnittstellen"],
    "users": ["user manager", "accounts", "пользователи", "benutzer", "usuarios"],
    "logs": ["log", "syslog", "журналы", "протоколы", "protokolle", "registros"],
    "status": ["dashboard", "monitoring", "состояние", "estado"],
    "update": ["upgrade", "обновление", "aktualisierung", "actualizacion"],
    "backup": ["restore", "резервная копия", "sicherung", "respaldo"],
    "certificate": ["cert", "certificates", "authorities", "сертификат", "zertifikat"],
    "package": ["packages", "pkg", "пакеты", "pakete", "paquetes"],
    "routing": ["routes", "gateway", "gateways", "маршрутизация"],
    "traffic": ["shaper", "limiter", "qos", "трафик"],
    "diagnostics": ["diag", "ping", "traceroute", "диагностика", "diagnose"],
}

_CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e",
    "ж": "zh", "з": "z", "и": "i", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "kh", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    "є": "ye", "і": "i", "ґ": "g",
}
_GREEK_TO_LATIN = {
    "α": "a", "β": "v", "γ": "g", "δ": "d", "ε": "e", "ζ": "z", "η": "i",
    "θ": "th", "ι": "i", "κ": "k", "λ": "l", "μ": "m", "ν": "n", "ξ": "x",
    "ο": "o", "π": "p", "ρ": "r", "σ": "s", "ς": "s", "τ": "t", "υ": "y",
    "φ": "f", "χ": "ch", "ψ": "ps", "ω": "o",
}
_TO_LATIN = str.maketrans({**_CYRILLIC_TO_LATIN, **_GREEK_TO_LATIN})


def transliterate(text: str) -> str | None:
    """Best-effort Latin approximation of Cyrillic and Greek text.

    The text is folded first, so accented letters map like their base
    letter. Returns ``None`` when there is nothing to transliterate.
    """
    folded = fold(text)
    latin = folded.translate(_TO_LATIN)
    if latin == folded:
        return None
    return latin


def _fold_phrases(values: Iterable[object]) -> set[str]:
    out: set[str] = set()
    for value in values:
        if isinstance(value, str):
            folded = fold(value)
            if folded:
                out.add(folded)
    return out


def _read_synonym_file(path: Path) -> Dict[str, set[str]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    table: Dict[str, set[str]] = {}
    for key, values in data.items():
        folded_key = fold(str(key))
        if not folded_key:
            continue
        if isinstance(values, str):
            values = [values]
        if not isinstance(values, list):
            raise ValueError(f"synonyms for {key!r} must be a list")
        table.setdefault(folded_key, set()).update(_fold_phrases(values))
    return table


def load_synonyms(
    directory: Path | None,
    *,
    fallback: Mapping[str, Iterable[str]] = FALLBACK_SYNONYMS,
) -> SynonymTable:
    """Merge every synonym file under ``directory`` with the fallback table.

    Files are read in sorted order and unioned key by key. Fallback entries
    only fill keys no file defined. Broken files are skipped; this never
    raises.
    """
    merged: Dict[str, set[str]] = {}

    paths: list[Path] = []
    if directory is not None:
        try:
            paths = sorted(Path(directory).glob("*.json"))
        except OSError as exc:
            LOGGER.warning("Cannot list synonym directory %s: %s", directory, exc)

    for path in paths:
        try:
            table = _read_synonym_file(path)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError
            LOGGER.warning("Skipping synonym file %s: %s", path, exc)
            continue
        for key, values in table.items():
            merged.setdefault(key, set()).update(values)
        LOGGER.debug("Loaded %d synonym entries from %s", len(table), path)

    for key, values in fallback.items():
        folded_key = fold(key)
        if folded_key and folded_key not in merged:
            merged[folded_key] = _fold_phrases(values)

    return {key: frozenset(values - {key}) for key, values in merged.items()}


def expand_query(
    query: str,
    table: Mapping[str, FrozenSet[str]],
    transliterator: Transliterator | None = transliterate,
) -> FrozenSet[str]:
    """Expand a raw query into base, synonym and transliterated tokens."""
    base = tokenize(query)
    terms: set[str] = set(base)

    lookups = list(dict.fromkeys(base))
    phrase = " ".join(base)
    if phrase and phrase not in lookups:
        lookups.append(phrase)
    for key in lookups:
        for synonym in table.get(key, ()):
            terms.update(tokenize(synonym))

    if transliterator is not None:
        try:
            latin = transliterator(query)
        except (LookupError, ValueError) as exc:
            LOGGER.debug("Transliteration failed for %r: %s", query, exc)
            latin = None
        if latin:
            terms.update(tokenize(latin))

    return frozenset(terms)
