"""Core QuickSearch data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

NAME_ALIASES = ("title", "label", "name", "text", "display")


@dataclass(frozen=True, slots=True)
class Document:
    """One indexable (title, page, path, keywords) record."""

    id: int
    title: str
    page: str
    path: str
    keywords: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "page": self.page,
            "path": self.path,
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    """Immutable index contents plus the time they were built."""

    documents: Tuple[Document, ...]
    built_at: float

    def __len__(self) -> int:
        return len(self.documents)


@dataclass(slots=True)
class SourceRecord:
    """Raw record yielded by a document source before indexing."""

    source_id: str
    path: str
    page_title: str = ""
    snippets: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScanLimits:
    max_files: int = 10000
    max_depth: int = 12
    max_text_per_file: int = 300
    max_index_size: int = 50000
    max_str_len: int = 220
    max_file_bytes: int = 1_500_000
    max_packages: int = 500
    max_menu_entries: int = 2000


@dataclass(frozen=True, slots=True)
class ResultItem:
    """A ranked, deduplicated search hit."""

    id: int
    name: str
    path: str

    def to_payload(self) -> Dict[str, Any]:
        # The widget reads whichever alias it knows about.
        payload: Dict[str, Any] = {"id": self.id}
        for alias in NAME_ALIASES:
            payload[alias] = self.name
        payload["path"] = self.path
        return payload
