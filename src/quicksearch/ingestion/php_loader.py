"""Page source scanning for the console's PHP pages.

Each ``*.php`` file under the web root becomes one record: a resolved page
title plus the UI strings (labels, help texts, headings) found in the source.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, List, Sequence

from quicksearch.models import ScanLimits, SourceRecord
from quicksearch.utils.files import collect_php_paths, should_skip_path
from quicksearch.utils.text import looks_meaningful, norm_text, prettify_filename

LOGGER = logging.getLogger(__name__)

_NAME_DIRECTIVE_RES = (
    re.compile(r"^\s*##\|\*NAME\s*=\s*(.+)$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^\s*##\|NAME\s*=\s*(.+)$", re.MULTILINE | re.IGNORECASE),
)
_QUOTED_ARG_RE = re.compile(r"""(?:gettext\s*\(\s*)?(["'])(.*?)\1\s*\)?""", re.DOTALL)
_PGTITLE_ARRAY_RE = re.compile(r"\$pgtitle\s*=\s*array\s*\((.*?)\)\s*;", re.DOTALL)
_PGTITLE_APPEND_RE = re.compile(
    r"""\$pgtitle\[\]\s*=\s*(?:gettext\s*\(\s*)?(["'])(.*?)\1\s*\)?\s*;""", re.DOTALL
)
_PGTITLE_MERGE_RE = re.compile(
    r"\$pgtitle\s*=\s*array_merge\s*\(\s*\$pgtitle\s*,\s*array\s*\((.*?)\)\s*\)\s*;", re.DOTALL
)
_PGTITLE_SINGLE_RE = re.compile(
    r"""\$pgtitle\s*=\s*(?:gettext\s*\(\s*)?(["'])(.*?)\1\s*\)?\s*;""", re.DOTALL
)

_GETTEXT_RE = re.compile(r"""gettext(?:_noop)?\s*\(\s*(["'])(.*?)\1\s*\)""", re.DOTALL)
_FORM_CTOR_RE = re.compile(r"new\s+Form_[A-Za-z0-9_]+\s*\(\s*((?:(?!\)\s*;).)*)\)", re.DOTALL)
_STRING_RE = re.compile(r"""(["'])(.*?)\1""", re.DOTALL)
_SET_HELP_RE = re.compile(r"""->\s*setHelp\s*\(\s*(["'])(.*?)\1\s*\)""", re.DOTALL)
_HEADING_RE = re.compile(r"<(h1|h2|legend|label|th|dt)[^>]*>(.*?)</\1>", re.DOTALL | re.IGNORECASE)
_KEYED_RE = re.compile(
    r"""(?:title|label|help|description|header|caption)\s*[:=,)]?\s*(?:\(|\[|,)?\s*(["'])(.*?)\1""",
    re.DOTALL | re.IGNORECASE,
)


def derive_page_title(source: str, filename: str) -> str:
    """Resolve the human title of a page.

    Priority: ``##|*NAME=`` directive, ``$pgtitle`` breadcrumb fragments
    joined with `` / ``, a single ``$pgtitle`` assignment, then the
    prettified filename.
    """
    for pattern in _NAME_DIRECTIVE_RES:
        match = pattern.search(source)
        if match:
            title = norm_text(match.group(1))
            if title:
                return title

    crumbs: List[str] = []

    def add_from_array(inner: str) -> None:
        for match in _QUOTED_ARG_RE.finditer(inner):
            text = norm_text(match.group(2))
            if text:
                crumbs.append(text)

    for match in _PGTITLE_ARRAY_RE.finditer(source):
        add_from_array(match.group(1))
    for match in _PGTITLE_APPEND_RE.finditer(source):
        text = norm_text(match.group(2))
        if text:
            crumbs.append(text)
    for match in _PGTITLE_MERGE_RE.finditer(source):
        add_from_array(match.group(1))

    single = _PGTITLE_SINGLE_RE.search(source)
    if single:
        text = norm_text(single.group(2))
        if text:
            crumbs.append(text)

    if crumbs:
        return " / ".join(dict.fromkeys(crumbs))
    return prettify_filename(filename)


def extract_texts(source: str, *, cap: int = 300, max_len: int = 220) -> List[str]:
    """Pull likely UI strings out of page source, deduplicated in order."""
    found: dict[str, None] = {}

    def add(raw: str) -> None:
        if len(found) >= cap:
            return
        text = norm_text(raw, max_len)
        if text and looks_meaningful(text):
            found.setdefault(text)

    for match in _GETTEXT_RE.finditer(source):
        add(match.group(2))
    for match in _FORM_CTOR_RE.finditer(source):
        for arg in _STRING_RE.finditer(match.group(1)):
            add(arg.group(2))
    for match in _SET_HELP_RE.finditer(source):
        add(match.group(2))
    for match in _HEADING_RE.finditer(source):
        add(match.group(2))
    for match in _KEYED_RE.finditer(source):
        add(match.group(2))

    return list(found)


def web_path(file_path: Path, web_root: Path) -> str:
    """Navigable URL path of a file, relative to the web root."""
    try:
        relative = Path(file_path).relative_to(web_root)
    except ValueError:
        return "/" + Path(file_path).name
    return "/" + relative.as_posix()


class PhpPageSource:
    """Scan the web root for PHP pages."""

    name = "pages"

    def __init__(self, web_root: Path, *, exclude_dirs: Sequence[str] = ()) -> None:
        self.web_root = Path(web_root)
        self.exclude_dirs = tuple(exclude_dirs)

    def iter_records(self, limits: ScanLimits) -> Iterator[SourceRecord]:
        paths = collect_php_paths(
            self.web_root,
            max_files=limits.max_files,
            max_depth=limits.max_depth,
            exclude_dirs=self.exclude_dirs,
        )
        LOGGER.debug("Found %d PHP pages under %s", len(paths), self.web_root)
        for path in paths:
            if should_skip_path(str(path)):
                continue
            source = self._read(path, limits.max_file_bytes)
            if not source:
                continue
            yield SourceRecord(
                source_id=str(path),
                path=web_path(path, self.web_root),
                page_title=derive_page_title(source, path.name),
                snippets=extract_texts(
                    source, cap=limits.max_text_per_file, max_len=limits.max_str_len
                ),
            )

    @staticmethod
    def _read(path: Path, max_bytes: int) -> str:
        try:
            size = path.stat().st_size
            if size <= 0 or size > max_bytes:
                LOGGER.debug("Skipping %s (%d bytes)", path, size)
                return ""
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            LOGGER.warning("Failed to read %s: %s", path, exc)
            return ""
