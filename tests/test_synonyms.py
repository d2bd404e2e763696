"""Tests for synonym loading and query expansion."""

from __future__ import annotations

import json
from pathlib import Path

from quicksearch.index.synonyms import (
    FALLBACK_SYNONYMS,
    expand_query,
    load_synonyms,
    transliterate,
)
from quicksearch.utils.text import tokenize


def _write(path: Path, data) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


class TestLoadSynonyms:
    """Test load_synonyms."""

    def test_no_directory_returns_fallback(self) -> None:
        table = load_synonyms(None)

        assert set(table) == set(FALLBACK_SYNONYMS)
        assert "configuration" in table["settings"]

    def test_fallback_values_have_no_short_tokens(self) -> None:
        table = load_synonyms(None)

        short = {
            token
            for values in table.values()
            for phrase in values
            for token in tokenize(phrase)
            if len(token) < 3
        }

        assert short == set()

    def test_missing_directory(self, tmp_path: Path) -> None:
        table = load_synonyms(tmp_path / "nope")

        assert "settings" in table

    def test_values_are_folded(self, tmp_path: Path) -> None:
        _write(tmp_path / "es.json", {"Configuración": ["Ajustes", "PREFERENCIAS"]})

        table = load_synonyms(tmp_path, fallback={})

        assert table == {"configuracion": frozenset({"ajustes", "preferencias"})}

    def test_files_are_unioned(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.json", {"vpn": ["openvpn"]})
        _write(tmp_path / "b.json", {"vpn": ["ipsec"]})

        table = load_synonyms(tmp_path, fallback={})

        assert table["vpn"] == frozenset({"openvpn", "ipsec"})

    def test_file_entries_win_over_fallback(self, tmp_path: Path) -> None:
        _write(tmp_path / "custom.json", {"settings": ["prefs"]})

        table = load_synonyms(tmp_path, fallback={"settings": ["setup"], "dns": ["resolver"]})

        assert table["settings"] == frozenset({"prefs"})
        assert table["dns"] == frozenset({"resolver"})

    def test_malformed_file_is_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        _write(tmp_path / "list.json", ["not", "an", "object"])
        _write(tmp_path / "good.json", {"nat": ["port forward"]})

        table = load_synonyms(tmp_path, fallback={})

        assert table == {"nat": frozenset({"port forward"})}

    def test_key_not_listed_as_own_synonym(self, tmp_path: Path) -> None:
        _write(tmp_path / "self.json", {"logs": ["logs", "journal"]})

        table = load_synonyms(tmp_path, fallback={})

        assert table["logs"] == frozenset({"journal"})


class TestTransliterate:
    """Test transliterate."""

    def test_cyrillic(self) -> None:
        assert transliterate("Правила") == "pravila"

    def test_greek(self) -> None:
        assert transliterate("δίκτυο") == "diktyo"

    def test_latin_returns_none(self) -> None:
        assert transliterate("firewall") is None


class TestExpandQuery:
    """Test expand_query."""

    def test_base_tokens(self) -> None:
        assert expand_query("Port Forward", {}) == frozenset({"port", "forward"})

    def test_synonym_tokens_added(self) -> None:
        table = {"settings": frozenset({"configuration", "setup"})}

        terms = expand_query("settings", table)

        assert terms == frozenset({"settings", "configuration", "setup"})

    def test_phrase_synonyms_are_tokenized(self) -> None:
        table = {"nat": frozenset({"port forward"})}

        terms = expand_query("nat", table)

        assert {"nat", "port", "forward"} <= terms

    def test_whole_query_phrase_lookup(self) -> None:
        table = {"port forward": frozenset({"nat"})}

        assert "nat" in expand_query("Port Forward", table)

    def test_transliteration_added(self) -> None:
        terms = expand_query("правила", {})

        assert "pravila" in terms
        assert "правила" in terms

    def test_transliteration_disabled(self) -> None:
        assert expand_query("правила", {}, transliterator=None) == frozenset({"правила"})

    def test_empty_query(self) -> None:
        assert expand_query("   ", {}) == frozenset()
