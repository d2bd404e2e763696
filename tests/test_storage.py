"""Tests for the shared cache stores."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
import uuid
from pathlib import Path
from unittest.mock import patch

import pytest

from quicksearch.index.storage import (
    INDEX_KEY,
    LOCK_KEY,
    SYNONYMS_KEY,
    CacheCapacityError,
    CacheUnavailableError,
    MemoryStore,
    QuickSearchCache,
    SharedMemoryStore,
    open_store,
)
from quicksearch.models import Document, IndexSnapshot


def _snapshot(n: int = 2, built_at: float = 100.0) -> IndexSnapshot:
    docs = tuple(
        Document(id=i + 1, title=f"Doc {i}", page="Page", path=f"/p{i}.php", keywords=("page",))
        for i in range(n)
    )
    return IndexSnapshot(documents=docs, built_at=built_at)


@pytest.fixture
def shm_store(tmp_path: Path):
    store = SharedMemoryStore(
        f"qs-test-{uuid.uuid4().hex[:12]}", size=64 * 1024, lock_path=tmp_path / "qs.lock"
    )
    yield store
    store.close()
    store.unlink()


class TestMemoryStore:
    """Test MemoryStore."""

    def test_get_set_delete(self) -> None:
        store = MemoryStore()
        assert store.get("k") is None

        store.set("k", 1)
        assert store.get("k") == 1

        store.set("k", None)
        assert store.get("k") is None

    def test_failed_transaction_is_discarded(self) -> None:
        store = MemoryStore()
        store.set("k", 1)

        with pytest.raises(RuntimeError):
            with store.transaction() as data:
                data["k"] = 2
                raise RuntimeError("boom")

        assert store.get("k") == 1

    def test_read_only_transaction_discards_changes(self) -> None:
        store = MemoryStore()
        store.set("k", 1)

        with store.transaction(write=False) as data:
            data["k"] = 2

        assert store.get("k") == 1

    def test_concurrent_increments_are_not_lost(self) -> None:
        store = MemoryStore()
        store.set("n", 0)

        def bump() -> None:
            for _ in range(200):
                with store.transaction() as data:
                    data["n"] = data["n"] + 1

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("n") == 800


class TestSharedMemoryStore:
    """Test SharedMemoryStore."""

    def test_round_trip(self, shm_store: SharedMemoryStore) -> None:
        shm_store.set("ts", 42.0)
        assert shm_store.get("ts") == 42.0
        shm_store.set("ts", None)
        assert shm_store.get("ts") is None

    def test_second_handle_sees_writes(self, shm_store: SharedMemoryStore, tmp_path: Path) -> None:
        shm_store.set("ts", 7)
        other = SharedMemoryStore(shm_store.name, size=shm_store.size, lock_path=tmp_path / "qs.lock")
        try:
            assert other.get("ts") == 7
        finally:
            other.close()

    def test_reads_do_not_write(self, shm_store: SharedMemoryStore) -> None:
        cache = QuickSearchCache(shm_store)
        cache.set_snapshot(_snapshot(2))
        cache.set_synonyms({"nat": frozenset({"port"})}, 1.0)

        with patch.object(shm_store, "_write", wraps=shm_store._write) as write:
            cache.get_snapshot()
            cache.get_synonyms()
            cache.rebuild_lock_until()
            shm_store.get(INDEX_KEY)

        write.assert_not_called()

    def test_block_survives_attached_process_exit(
        self, shm_store: SharedMemoryStore, tmp_path: Path
    ) -> None:
        shm_store.set("k", "v")
        script = (
            "import sys\n"
            "from quicksearch.index.storage import SharedMemoryStore\n"
            "store = SharedMemoryStore(sys.argv[1], size=int(sys.argv[2]), lock_path=sys.argv[3])\n"
            "print(store.get('k'))\n"
            "store.close()\n"
        )
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(p for p in sys.path if p)}

        child = subprocess.run(
            [sys.executable, "-c", script, shm_store.name, str(shm_store.size), str(shm_store.lock_path)],
            capture_output=True,
            text=True,
            env=env,
            timeout=60,
            check=True,
        )

        assert child.stdout.strip() == "v"
        other = SharedMemoryStore(shm_store.name, size=shm_store.size, lock_path=tmp_path / "qs.lock")
        try:
            assert other.get("k") == "v"
        finally:
            other.close()

    def test_unlink_removes_block(self, tmp_path: Path) -> None:
        name = f"qs-test-{uuid.uuid4().hex[:12]}"
        store = SharedMemoryStore(name, size=4096, lock_path=tmp_path / "qs.lock")
        store.set("k", "v")
        store.close()
        store.unlink()

        fresh = SharedMemoryStore(name, size=4096, lock_path=tmp_path / "qs.lock")
        try:
            assert fresh.get("k") is None
        finally:
            fresh.close()
            fresh.unlink()

    def test_oversized_value_raises(self, shm_store: SharedMemoryStore) -> None:
        with pytest.raises(CacheCapacityError):
            shm_store.set("blob", "x" * (128 * 1024))

        assert shm_store.get("blob") is None

    def test_too_small_budget(self, tmp_path: Path) -> None:
        with pytest.raises(CacheUnavailableError):
            SharedMemoryStore("qs-too-small", size=4, lock_path=tmp_path / "qs.lock")

    def test_unwritable_lock_path(self, tmp_path: Path) -> None:
        with pytest.raises(CacheUnavailableError):
            SharedMemoryStore("qs-no-lock", size=4096, lock_path=tmp_path / "missing" / "qs.lock")


class TestOpenStore:
    def test_memory(self) -> None:
        assert isinstance(open_store("memory"), MemoryStore)

    def test_unknown_backend(self) -> None:
        with pytest.raises(CacheUnavailableError):
            open_store("redis")


class TestQuickSearchCache:
    """Test typed cache accessors."""

    def test_snapshot_round_trip(self) -> None:
        cache = QuickSearchCache(MemoryStore())
        assert cache.get_snapshot() is None

        cache.set_snapshot(_snapshot(3, 50.0))
        snapshot = cache.get_snapshot()

        assert snapshot is not None
        assert len(snapshot) == 3
        assert snapshot.built_at == 50.0

    def test_snapshot_in_shared_memory(self, shm_store: SharedMemoryStore) -> None:
        cache = QuickSearchCache(shm_store)
        cache.set_snapshot(_snapshot(2))

        assert cache.get_snapshot() == _snapshot(2)

    def test_synonyms(self) -> None:
        cache = QuickSearchCache(MemoryStore())
        assert cache.get_synonyms() == (None, 0.0)

        cache.set_synonyms({"nat": frozenset({"port"})}, 10.0)

        assert cache.get_synonyms() == ({"nat": frozenset({"port"})}, 10.0)

    def test_rebuild_lock_compare_and_swap(self) -> None:
        cache = QuickSearchCache(MemoryStore())

        assert cache.try_acquire_rebuild_lock(100.0, 20)
        assert cache.rebuild_lock_until() == 120.0
        assert not cache.try_acquire_rebuild_lock(110.0, 20)

        cache.release_rebuild_lock()
        assert cache.try_acquire_rebuild_lock(111.0, 20)

    def test_expired_lock_can_be_taken(self) -> None:
        cache = QuickSearchCache(MemoryStore())
        cache.try_acquire_rebuild_lock(100.0, 20)

        assert cache.try_acquire_rebuild_lock(121.0, 20)

    def test_clear(self) -> None:
        store = MemoryStore()
        cache = QuickSearchCache(store)
        cache.set_snapshot(_snapshot())
        cache.set_synonyms({"a": frozenset()}, 1.0)
        cache.try_acquire_rebuild_lock(1.0, 20)

        cache.clear()

        assert store.get(INDEX_KEY) is None
        assert store.get(LOCK_KEY) is None
        assert store.get(SYNONYMS_KEY) is None
        assert cache.get_snapshot() is None
