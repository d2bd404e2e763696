"""Tests for CLI commands."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from quicksearch.cli import _config, _setup_logging, app
from quicksearch.index.storage import SharedMemoryStore

runner = CliRunner()

NAT_PAGE = """<?php
##|*NAME=Firewall: NAT: Port Forward
$section = new Form_Section('Port Forward Settings');
?>
"""

PFB_PAGE = """<?php
$pgtitle = array(gettext("Firewall"), gettext("pfBlockerNG"));
print_info_box(gettext("Enable pfBlockerNG to start filtering."));
?>
"""


@pytest.fixture
def web_root(tmp_path: Path) -> Path:
    root = tmp_path / "www"
    (root / "pfblockerng").mkdir(parents=True)
    (root / "firewall_nat.php").write_text(NAT_PAGE)
    (root / "pfblockerng" / "pfblockerng_general.php").write_text(PFB_PAGE)
    return root


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("quicksearch.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("quicksearch.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestConfigOverrides:
    """Tests for the _config helper."""

    def test_web_root_recomputes_exclusions(self, tmp_path: Path) -> None:
        """Exclusions follow an overridden web root."""
        with patch.dict("os.environ", {}, clear=True):
            config = _config(tmp_path, None)

        assert config.web_root == tmp_path
        assert str(tmp_path / "vendor") in config.exclude_dirs

    def test_optional_paths(self, tmp_path: Path) -> None:
        """Synonym, package and menu paths are applied."""
        with patch.dict("os.environ", {}, clear=True):
            config = _config(tmp_path, tmp_path / "syn", tmp_path / "pkg", tmp_path / "menu.json")

        assert config.synonyms_dir == tmp_path / "syn"
        assert config.package_dir == tmp_path / "pkg"
        assert config.menu_file == tmp_path / "menu.json"


    def test_malformed_environment(self, tmp_path: Path) -> None:
        """A bad integer override is reported as a usage error."""
        with patch.dict("os.environ", {"QUICKSEARCH_INDEX_TTL": "soon"}, clear=True):
            result = runner.invoke(app, ["scan", "--web-root", str(tmp_path)])

        assert result.exit_code != 0
        assert "QUICKSEARCH_INDEX_TTL" in result.output


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_prints_results(self, web_root: Path) -> None:
        """Prints a table of matching pages."""
        result = runner.invoke(app, ["search", "port forward", "--web-root", str(web_root)])

        assert result.exit_code == 0
        assert "Firewall: NAT: Port Forward" in result.stdout
        assert "/firewall_nat.php" in result.stdout

    def test_search_no_matches(self, web_root: Path) -> None:
        """Says so when nothing matches."""
        result = runner.invoke(app, ["search", "zzzzzz", "--web-root", str(web_root)])

        assert result.exit_code == 0
        assert "No matches found." in result.stdout

    def test_search_missing_web_root(self, tmp_path: Path) -> None:
        """Rejects a web root that does not exist."""
        result = runner.invoke(app, ["search", "nat", "--web-root", str(tmp_path / "missing")])

        assert result.exit_code != 0


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan_counts_records(self, web_root: Path) -> None:
        """Prints the number of indexed documents."""
        result = runner.invoke(app, ["scan", "--web-root", str(web_root)])

        assert result.exit_code == 0
        assert "Indexed records:" in result.stdout

    def test_scan_with_filter(self, web_root: Path) -> None:
        """Lists documents whose path matches the filter."""
        with patch("quicksearch.cli.console", Console(width=200)):
            result = runner.invoke(
                app, ["scan", "--web-root", str(web_root), "--filter", "pfblocker"]
            )

        assert result.exit_code == 0
        assert "pfblockerng_general.php" in result.stdout
        assert "firewall_nat.php" not in result.stdout


class TestDropCacheCommand:
    """Tests for the drop-cache command."""

    def test_drop_cache_removes_block(self) -> None:
        """Cached data is gone after the block is dropped."""
        name = f"qs-cli-{uuid.uuid4().hex[:12]}"
        store = SharedMemoryStore(name, size=4096)
        store.set("k", "v")
        store.close()

        with patch.dict("os.environ", {"QUICKSEARCH_CACHE_SIZE": "4096"}):
            result = runner.invoke(app, ["drop-cache", "--name", name])

        assert result.exit_code == 0
        assert "Removed shared cache" in result.stdout
        fresh = SharedMemoryStore(name, size=4096)
        try:
            assert fresh.get("k") is None
        finally:
            fresh.close()
            fresh.unlink()


class TestWebCommand:
    """Tests for the web command."""

    def test_web_starts_uvicorn(self, web_root: Path) -> None:
        """Hands the app to uvicorn.run."""
        pytest.importorskip("uvicorn")
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(
                app, ["web", "--host", "0.0.0.0", "--port", "9000", "--web-root", str(web_root)]
            )

        assert result.exit_code == 0
        mock_run.assert_called_once()
        assert mock_run.call_args[1]["host"] == "0.0.0.0"
        assert mock_run.call_args[1]["port"] == 9000
