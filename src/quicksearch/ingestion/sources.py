"""Document source interface and the structured (non-scanned) sources."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Protocol, Sequence

from quicksearch.models import ScanLimits, SourceRecord

LOGGER = logging.getLogger(__name__)


class DocumentSource(Protocol):
    """Anything that can yield raw records for the index builder.

    Implementations must drop excluded paths themselves; the builder filters
    again.
    """

    name: str

    def iter_records(self, limits: ScanLimits) -> Iterator[SourceRecord]:
        ...


class StaticSource:
    """Serve a fixed list of records, mostly useful for tests and embedding."""

    def __init__(self, records: Sequence[SourceRecord], *, name: str = "static") -> None:
        self.records = list(records)
        self.name = name

    def iter_records(self, limits: ScanLimits) -> Iterator[SourceRecord]:
        yield from self.records


def _load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


class PackageManifestSource:
    """Records for installed add-on packages.

    Each ``*.json`` manifest in ``directory`` looks like::

        {"name": "pfBlockerNG", "description": "IP and DNSBL filtering",
         "url": "/pfblockerng/pfblockerng_general.php",
         "pages": [{"title": "Alerts", "url": "/pfblockerng/pfblockerng_alerts.php"}]}
    """

    name = "packages"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def iter_records(self, limits: ScanLimits) -> Iterator[SourceRecord]:
        try:
            manifests = sorted(self.directory.glob("*.json"))
        except OSError as exc:
            LOGGER.warning("Cannot list package manifests in %s: %s", self.directory, exc)
            return

        emitted = 0
        for manifest in manifests:
            if emitted >= limits.max_packages:
                return
            try:
                data = _load_json(manifest)
            except (OSError, UnicodeDecodeError, ValueError) as exc:
                LOGGER.warning("Skipping package manifest %s: %s", manifest, exc)
                continue
            if not isinstance(data, dict):
                LOGGER.warning("Skipping package manifest %s: not an object", manifest)
                continue

            package_id = str(data.get("name") or manifest.stem)
            description = str(data.get("description") or "")
            keywords = [package_id, manifest.stem, description]

            entries = [{"title": package_id, "url": data.get("url")}]
            entries.extend(page for page in data.get("pages") or [] if isinstance(page, dict))
            for entry in entries:
                url = entry.get("url")
                if not url:
                    continue
                title = str(entry.get("title") or package_id)
                page_title = package_id if title == package_id else f"{package_id} / {title}"
                yield SourceRecord(
                    source_id=f"package:{package_id}",
                    path=str(url),
                    page_title=page_title,
                    snippets=[title, description] if description else [title],
                    keywords=keywords,
                )
                emitted += 1
                if emitted >= limits.max_packages:
                    return


class MenuTreeSource:
    """Records from the console navigation menu.

    ``path`` is a JSON file holding a list of nodes
    ``{"id", "section", "title", "url", "children": [...]}``. Page titles are
    the breadcrumb of ancestor titles.
    """

    name = "menu"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def iter_records(self, limits: ScanLimits) -> Iterator[SourceRecord]:
        try:
            tree = _load_json(self.path)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            LOGGER.warning("Skipping menu tree %s: %s", self.path, exc)
            return
        if isinstance(tree, dict):
            tree = [tree]
        if not isinstance(tree, list):
            LOGGER.warning("Skipping menu tree %s: not a list", self.path)
            return

        emitted = 0
        stack: list[tuple[dict, tuple[str, ...], str]] = [
            (node, (), "") for node in reversed(tree) if isinstance(node, dict)
        ]
        while stack and emitted < limits.max_menu_entries:
            node, crumbs, section = stack.pop()
            title = str(node.get("title") or "").strip()
            section = str(node.get("section") or section)
            trail = crumbs + (title,) if title else crumbs
            url = node.get("url")
            if url and trail:
                yield SourceRecord(
                    source_id=f"menu:{node.get('id') or url}",
                    path=str(url),
                    page_title=" / ".join(trail),
                    snippets=[title] if title else [],
                    keywords=[str(node.get("id") or ""), section, str(url)],
                )
                emitted += 1
            children = [child for child in node.get("children") or [] if isinstance(child, dict)]
            stack.extend((child, trail, section) for child in reversed(children))
