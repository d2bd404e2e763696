"""Utility helpers for walking the console web root."""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Iterator, Sequence

LOGGER = logging.getLogger(__name__)


def should_skip_path(path: str) -> bool:
    """Whether a page must never be indexed or shown.

    Anything under a ``widgets`` folder, and any file whose name contains
    ``edit`` or ``widget`` (``*_edit.php``, ``pkg_edit.php``...).
    """
    lowered = str(path).lower().replace("\\", "/")
    if "/widgets/" in lowered:
        return True
    base = posixpath.basename(lowered)
    return "edit" in base or "widget" in base


def _is_excluded(path: str, exclude_dirs: Sequence[str]) -> bool:
    return any(path.startswith(prefix) for prefix in exclude_dirs)


def iter_php_paths(
    root: Path,
    *,
    max_files: int,
    max_depth: int,
    exclude_dirs: Sequence[str] = (),
) -> Iterator[Path]:
    """Yield ``*.php`` files under ``root`` honouring depth and count caps.

    Symlinks are followed; excluded directory prefixes are pruned before
    descending. Unreadable directories are skipped.
    """
    root = Path(root)
    count = 0
    base_depth = len(root.parts)
    for dirpath, dirnames, filenames in os.walk(
        root, followlinks=True, onerror=lambda exc: LOGGER.debug("Cannot list %s", exc.filename)
    ):
        depth = len(Path(dirpath).parts) - base_depth
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not _is_excluded(os.path.join(dirpath, name), exclude_dirs)
        )
        if depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            if not name.endswith(".php"):
                continue
            path = os.path.join(dirpath, name)
            if _is_excluded(path, exclude_dirs) or should_skip_path(path):
                continue
            yield Path(path)
            count += 1
            if count >= max_files:
                return


def collect_php_paths(
    root: Path,
    *,
    max_files: int,
    max_depth: int,
    exclude_dirs: Sequence[str] = (),
) -> list[Path]:
    """Collected paths in case-insensitive natural order."""
    paths = list(
        iter_php_paths(root, max_files=max_files, max_depth=max_depth, exclude_dirs=exclude_dirs)
    )
    return sorted(paths, key=lambda p: str(p).lower())
