"""Freshness policy for the cached index and synonym table."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict

from quicksearch.index.indexer import IndexBuilder
from quicksearch.index.storage import QuickSearchCache
from quicksearch.index.synonyms import SynonymTable
from quicksearch.models import IndexSnapshot

LOGGER = logging.getLogger(__name__)


class RefreshScheduler:
    """Decides when the index or synonym table gets rebuilt.

    A missing index is built synchronously. A stale one is rebuilt by
    whichever request wins the advisory rebuild lock; everybody else keeps
    serving the stale snapshot instead of waiting.
    """

    def __init__(
        self,
        cache: QuickSearchCache,
        builder_factory: Callable[[], IndexBuilder],
        synonyms_loader: Callable[[], SynonymTable],
        *,
        index_ttl: float = 1800,
        lock_ttl: float = 20,
        synonyms_ttl: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.builder_factory = builder_factory
        self.synonyms_loader = synonyms_loader
        self.index_ttl = index_ttl
        self.lock_ttl = lock_ttl
        self.synonyms_ttl = synonyms_ttl
        self.clock = clock

    def _build(self, now: float) -> IndexSnapshot:
        return self.builder_factory().build_snapshot(now)

    def ensure_index(self) -> IndexSnapshot:
        now = self.clock()
        snapshot = self.cache.get_snapshot()

        if snapshot is None or not snapshot.documents:
            LOGGER.info("No cached index, building synchronously")
            snapshot = self._build(now)
            self.cache.set_snapshot(snapshot)
            return snapshot

        if now - snapshot.built_at < self.index_ttl:
            return snapshot

        if not self.cache.try_acquire_rebuild_lock(now, self.lock_ttl):
            LOGGER.debug("Index is stale but a rebuild is already running; serving stale copy")
            return snapshot

        try:
            fresh = self._build(now)
            if fresh.documents:
                self.cache.set_snapshot(fresh)
                snapshot = fresh
            else:
                LOGGER.warning("Rebuild produced no documents; keeping the previous index")
        finally:
            self.cache.release_rebuild_lock()
        return snapshot

    def ensure_synonyms(self) -> SynonymTable:
        now = self.clock()
        table, loaded_at = self.cache.get_synonyms()
        if table is not None and now - loaded_at < self.synonyms_ttl:
            return table
        table = self.synonyms_loader()
        self.cache.set_synonyms(table, now)
        LOGGER.debug("Loaded %d synonym entries", len(table))
        return table

    def invalidate(self) -> None:
        """Drop every cached artifact so the next search rebuilds from scratch."""
        self.cache.clear()
        LOGGER.info("Search cache cleared")

    def status(self) -> Dict[str, Any]:
        now = self.clock()
        snapshot = self.cache.get_snapshot()
        table, _ = self.cache.get_synonyms()
        lock_until = self.cache.rebuild_lock_until()
        return {
            "records_indexed": len(snapshot) if snapshot else 0,
            "index_age_sec": int(now - snapshot.built_at) if snapshot else 0,
            "synonyms": len(table) if table else 0,
            "rebuild_locked": lock_until >= now,
        }
