"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Literal

from quicksearch.models import ScanLimits

DEFAULT_WEB_ROOT = Path("/usr/local/www")
DEFAULT_EXCLUDED = ("vendor", "assets", "js", "css", "images", "img", "apple-touch", "widgets")

ENV_PREFIX = "QUICKSEARCH_"
_PATH_FIELDS = {"web_root", "synonyms_dir", "package_dir", "menu_file", "locale_dir"}


class ConfigError(ValueError):
    """An environment override cannot be parsed."""


def _default_exclude_dirs(web_root: Path) -> tuple[str, ...]:
    return tuple(str(web_root / name) for name in DEFAULT_EXCLUDED)


@dataclass(slots=True)
class AppConfig:
    web_root: Path = DEFAULT_WEB_ROOT
    exclude_dirs: tuple[str, ...] | None = None
    synonyms_dir: Path | None = None
    package_dir: Path | None = None
    menu_file: Path | None = None
    locale_dir: Path | None = None
    language: str | None = None

    max_files: int = 10000
    max_depth: int = 12
    max_text_per_file: int = 300
    max_index_size: int = 50000
    max_str_len: int = 220
    max_file_bytes: int = 1_500_000
    max_packages: int = 500
    max_menu_entries: int = 2000

    index_ttl: int = 1800
    lock_ttl: int = 20
    synonyms_ttl: int = 3600

    result_limit: int = 50
    max_result_limit: int = 200
    min_query_chars: int = 3

    cache_backend: Literal["memory", "shm"] = "memory"
    cache_name: str = "quicksearch"
    cache_size: int = 6 * 1024 * 1024

    def __post_init__(self) -> None:
        self.web_root = Path(self.web_root)
        if self.exclude_dirs is None:
            self.exclude_dirs = _default_exclude_dirs(self.web_root)

    def scan_limits(self) -> ScanLimits:
        return ScanLimits(
            max_files=self.max_files,
            max_depth=self.max_depth,
            max_text_per_file=self.max_text_per_file,
            max_index_size=self.max_index_size,
            max_str_len=self.max_str_len,
            max_file_bytes=self.max_file_bytes,
            max_packages=self.max_packages,
            max_menu_entries=self.max_menu_entries,
        )

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.result_limit
        return max(1, min(limit, self.max_result_limit))

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "AppConfig":
        """Build a config from ``QUICKSEARCH_*`` environment variables."""
        environ = os.environ if environ is None else environ
        defaults = cls()
        values = {}
        for item in fields(cls):
            variable = ENV_PREFIX + item.name.upper()
            raw = environ.get(variable)
            if raw is None:
                continue
            if item.name == "exclude_dirs":
                values[item.name] = tuple(part for part in raw.split(os.pathsep) if part)
            elif item.name in _PATH_FIELDS:
                values[item.name] = Path(raw)
            elif isinstance(getattr(defaults, item.name), int):
                try:
                    values[item.name] = int(raw)
                except ValueError:
                    raise ConfigError(f"{variable} must be an integer, got {raw!r}") from None
            else:
                values[item.name] = raw
        return cls(**values)
