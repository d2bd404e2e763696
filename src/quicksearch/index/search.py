"""Ranking engine and the request-level search interface."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Any, Dict, List, Mapping, Sequence

from quicksearch.config import AppConfig
from quicksearch.index.indexer import IndexBuilder
from quicksearch.index.refresh import RefreshScheduler
from quicksearch.index.stemming import DEFAULT_STEMMERS, Stemmer, stem_fallback
from quicksearch.index.storage import CacheStore, QuickSearchCache, open_store
from quicksearch.index.synonyms import (
    SynonymTable,
    Transliterator,
    expand_query,
    load_synonyms,
    transliterate,
)
from quicksearch.ingestion.php_loader import PhpPageSource
from quicksearch.ingestion.sources import DocumentSource, MenuTreeSource, PackageManifestSource
from quicksearch.localization import Translate, gettext_translator, identity_translate, localize_name
from quicksearch.models import Document, ResultItem
from quicksearch.utils.files import should_skip_path
from quicksearch.utils.text import fold, prettify_filename, tokenize

LOGGER = logging.getLogger(__name__)

# Less than one token match: only breaks ties in favour of route hints.
PATH_BONUS = 0.1
DEBUG_SAMPLE_SIZE = 20


def _contains(haystack: str, needle: str, *, whole_words: bool) -> bool:
    if not needle:
        return False
    if not whole_words:
        return needle in haystack
    pattern = r"(?<![^\W_])" + re.escape(needle) + r"(?![^\W_])"
    return re.search(pattern, haystack) is not None


def display_name(doc: Document) -> str:
    return doc.page or prettify_filename(posixpath.basename(doc.path))


def score_document(
    doc: Document,
    terms: frozenset[str],
    folded_query: str,
    localized_page: str,
    stem: str | None,
    *,
    whole_words: bool = False,
) -> float:
    """Token overlap, then substring/stem fallbacks, plus the path bonus."""
    tokens = set(tokenize(f"{doc.title} {doc.page} {doc.path}"))
    tokens.update(doc.keywords)
    score = float(len(tokens & terms))

    if score == 0:
        blob = fold(f"{doc.title} {doc.page} {doc.path}")
        if _contains(blob, folded_query, whole_words=whole_words):
            score = 1.0
        elif _contains(localized_page, folded_query, whole_words=whole_words):
            score = 1.0
        elif stem and (
            _contains(blob, stem, whole_words=whole_words)
            or _contains(localized_page, stem, whole_words=whole_words)
        ):
            score = 1.0

    folded_path = fold(doc.path)
    if any(_contains(folded_path, term, whole_words=whole_words) for term in terms):
        score += PATH_BONUS
    return score


def rank_documents(
    docs: Sequence[Document],
    query: str,
    limit: int,
    synonyms: Mapping[str, frozenset[str]],
    *,
    translate: Translate = identity_translate,
    whole_words: bool = False,
    stemmers: Sequence[Stemmer] = DEFAULT_STEMMERS,
    transliterator: Transliterator | None = transliterate,
) -> List[ResultItem]:
    """Score, order and deduplicate documents for one query.

    Deterministic for identical inputs: ties on score are broken by the
    case-sensitive ``title``, then by ``path``, and only the first hit per
    ``path`` survives.
    """
    if not query.strip() or limit <= 0:
        return []
    terms = expand_query(query, synonyms, transliterator)
    if not terms:
        return []

    folded_query = fold(query)
    stem = stem_fallback(folded_query, stemmers)
    localized: Dict[tuple[str, str], str] = {}

    scored: list[tuple[float, Document]] = []
    for doc in docs:
        if should_skip_path(doc.path):
            continue
        key = (doc.page, doc.path)
        if key not in localized:
            localized[key] = fold(localize_name(doc.page, translate, doc.path))
        score = score_document(
            doc, terms, folded_query, localized[key], stem, whole_words=whole_words
        )
        if score > 0:
            scored.append((score, doc))

    scored.sort(key=lambda item: (-item[0], item[1].title, item[1].path))

    results: List[ResultItem] = []
    seen_paths: set[str] = set()
    for _, doc in scored:
        if doc.path in seen_paths:
            continue
        seen_paths.add(doc.path)
        results.append(
            ResultItem(
                id=len(results) + 1,
                name=localize_name(display_name(doc), translate, doc.path),
                path=doc.path,
            )
        )
        if len(results) >= limit:
            break
    return results


class Searcher:
    """High-level API: freshness checks, then ranking."""

    def __init__(
        self,
        scheduler: RefreshScheduler,
        config: AppConfig | None = None,
        *,
        translate: Translate = identity_translate,
        stemmers: Sequence[Stemmer] = DEFAULT_STEMMERS,
    ) -> None:
        self.scheduler = scheduler
        self.config = config or AppConfig()
        self.translate = translate
        self.stemmers = stemmers

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        store: CacheStore | None = None,
        translate: Translate | None = None,
        sources: Sequence[DocumentSource] | None = None,
    ) -> "Searcher":
        """Wire cache, sources and scheduler from configuration."""
        if store is None:
            store = open_store(config.cache_backend, name=config.cache_name, size=config.cache_size)
        if translate is None:
            translate = gettext_translator(config.locale_dir, config.language)
        if sources is None:
            sources = default_sources(config)
        primary, *secondary = sources
        limits = config.scan_limits()

        def builder_factory() -> IndexBuilder:
            return IndexBuilder(primary, secondary, limits=limits, translate=translate)

        scheduler = RefreshScheduler(
            QuickSearchCache(store),
            builder_factory,
            lambda: load_synonyms(config.synonyms_dir),
            index_ttl=config.index_ttl,
            lock_ttl=config.lock_ttl,
            synonyms_ttl=config.synonyms_ttl,
        )
        return cls(scheduler, config, translate=translate)

    def search(
        self, query: str, *, whole_words: bool = False, limit: int | None = None
    ) -> List[ResultItem]:
        query = query.strip()
        if len(fold(query)) < self.config.min_query_chars:
            return []
        snapshot = self.scheduler.ensure_index()
        synonyms: SynonymTable = self.scheduler.ensure_synonyms()
        return rank_documents(
            snapshot.documents,
            query,
            self.config.clamp_limit(limit),
            synonyms,
            translate=self.translate,
            whole_words=whole_words,
            stemmers=self.stemmers,
        )

    def rebuild(self) -> None:
        self.scheduler.invalidate()

    def diagnostics(self, debug_filter: str | None = None) -> Dict[str, Any]:
        """Cache statistics, plus raw documents whose path contains the filter."""
        needle = (debug_filter or "").strip().lower()
        sample: list[dict] = []
        if needle:
            snapshot = self.scheduler.ensure_index()
            for doc in snapshot.documents:
                if needle in doc.path.lower():
                    sample.append(doc.to_dict())
                    if len(sample) >= DEBUG_SAMPLE_SIZE:
                        break
        stats = self.scheduler.status()
        if needle:
            stats["sample_matching"] = sample
        return stats


def default_sources(config: AppConfig) -> list[DocumentSource]:
    sources: list[DocumentSource] = [
        PhpPageSource(config.web_root, exclude_dirs=config.exclude_dirs or ())
    ]
    if config.package_dir is not None:
        sources.append(PackageManifestSource(config.package_dir))
    if config.menu_file is not None:
        sources.append(MenuTreeSource(config.menu_file))
    return sources
