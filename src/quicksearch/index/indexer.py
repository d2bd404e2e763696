"""Index build pipeline."""

from __future__ import annotations

import logging
import posixpath
import time
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from quicksearch.ingestion.sources import DocumentSource
from quicksearch.localization import Translate, identity_translate, localize_name
from quicksearch.models import Document, IndexSnapshot, ScanLimits, SourceRecord
from quicksearch.utils.files import should_skip_path
from quicksearch.utils.text import looks_meaningful, norm_text, prettify_filename, tokenize

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildStats:
    records: int = 0
    documents: int = 0
    skipped: int = 0
    failed_sources: list[str] = field(default_factory=list)


def keyword_tokens(page: str, extra: Iterable[str], translate: Translate, path: str) -> tuple[str, ...]:
    """Folded matching tokens for a page: localized title plus extra keywords."""
    tokens: list[str] = []
    localized = localize_name(page, translate, path)
    tokens.extend(tokenize(localized))
    for keyword in extra:
        tokens.extend(tokenize(keyword))
    return tuple(dict.fromkeys(tokens))


class IndexBuilder:
    """Turns document sources into a capped list of documents."""

    def __init__(
        self,
        primary: DocumentSource,
        secondary: Sequence[DocumentSource] = (),
        *,
        limits: ScanLimits | None = None,
        translate: Translate = identity_translate,
    ) -> None:
        self.primary = primary
        self.secondary = list(secondary)
        self.limits = limits or ScanLimits()
        self.translate = translate
        self.stats = BuildStats()

    def build(self) -> list[Document]:
        """Drain the primary source, then the secondary ones, up to the cap."""
        self.stats = BuildStats()
        started = time.perf_counter()
        documents: list[Document] = []

        for source in [self.primary, *self.secondary]:
            if len(documents) >= self.limits.max_index_size:
                break
            try:
                for record in source.iter_records(self.limits):
                    self._add_record(record, documents)
                    if len(documents) >= self.limits.max_index_size:
                        break
            except Exception as exc:
                LOGGER.warning("Document source %s failed: %s", getattr(source, "name", source), exc)
                self.stats.failed_sources.append(str(getattr(source, "name", source)))

        self.stats.documents = len(documents)
        LOGGER.info(
            "Built index: %d documents from %d records (%d skipped) in %.2fs",
            self.stats.documents,
            self.stats.records,
            self.stats.skipped,
            time.perf_counter() - started,
        )
        return documents

    def build_snapshot(self, now: float) -> IndexSnapshot:
        return IndexSnapshot(documents=tuple(self.build()), built_at=now)

    def _add_record(self, record: SourceRecord, documents: list[Document]) -> None:
        path = (record.path or "").strip()
        if not path or should_skip_path(path):
            self.stats.skipped += 1
            return
        self.stats.records += 1

        base = posixpath.basename(path)
        page = norm_text(record.page_title, self.limits.max_str_len) or prettify_filename(base)

        snippets: list[str] = []
        for raw in record.snippets:
            text = norm_text(raw, self.limits.max_str_len)
            if text and looks_meaningful(text):
                snippets.append(text)
        snippets = list(dict.fromkeys(snippets))[: self.limits.max_text_per_file]
        if not snippets:
            snippets = [prettify_filename(base)]

        keywords = keyword_tokens(page, record.keywords, self.translate, path)
        for title in snippets:
            documents.append(
                Document(
                    id=len(documents) + 1,
                    title=title,
                    page=page,
                    path=path,
                    keywords=keywords,
                )
            )
            if len(documents) >= self.limits.max_index_size:
                return
