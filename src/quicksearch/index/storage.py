"""Process-wide cache holding the index snapshot and synonym table.

Every operation runs under one store-wide lock. ``transaction()`` hands out
the whole key/value map for a compound read-modify-write and writes it back
on success, so the index and its timestamp never drift apart. Read-only
transactions (``write=False``) never write back; changes made to the map
inside them are discarded.
"""

from __future__ import annotations

import fcntl
import logging
import os
import pickle
import struct
import sys
import tempfile
import threading
from contextlib import contextmanager
from multiprocessing import resource_tracker, shared_memory
from pathlib import Path
from typing import Any, Dict, Iterator, Protocol

from quicksearch.index.synonyms import SynonymTable
from quicksearch.models import IndexSnapshot

LOGGER = logging.getLogger(__name__)

INDEX_KEY = "qs_src_idx"
INDEX_TS_KEY = "qs_src_idx_ts"
LOCK_KEY = "qs_build_lock"
SYNONYMS_KEY = "qs_synonyms"
SYNONYMS_TS_KEY = "qs_synonyms_ts"

_HEADER = struct.Struct("<Q")
# SharedMemory grew a `track` switch in 3.13; older versions always register
# the segment with the resource tracker, which unlinks it when the process exits.
_HAS_TRACK_FLAG = sys.version_info >= (3, 13)


class CacheError(RuntimeError):
    """Base class for cache failures."""


class CacheUnavailableError(CacheError):
    """The backing storage cannot be created or attached."""


class CacheCapacityError(CacheError):
    """A write does not fit in the configured byte budget."""


class CacheStore(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def transaction(self, write: bool = True) -> Any:
        ...

    def close(self) -> None:
        ...


class _BaseStore:
    def get(self, key: str) -> Any:
        with self.transaction(write=False) as data:
            return data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self.transaction() as data:
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value

    def transaction(self, write: bool = True) -> Any:  # pragma: no cover - overridden
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemoryStore(_BaseStore):
    """Dictionary shared by every thread of this process."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[Dict[str, Any]]:
        with self._lock:
            working = dict(self._data)
            yield working
            if write:
                self._data = working


class SharedMemoryStore(_BaseStore):
    """Map pickled into a fixed-size shared memory block.

    Worker processes attach to the same named block; a ``flock`` on a lock
    file serializes writers across processes (readers share it), and a thread
    lock serializes threads within one process.

    The block outlives every process that attaches to it. Only ``unlink()``
    removes it.
    """

    def __init__(self, name: str, *, size: int, lock_path: Path | None = None) -> None:
        if size <= _HEADER.size:
            raise CacheUnavailableError(f"Cache size {size} is too small")
        self.name = name
        self.size = size
        self.lock_path = Path(lock_path or Path(tempfile.gettempdir()) / f"{name}.lock")
        self._thread_lock = threading.RLock()
        try:
            self._lock_fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as exc:
            raise CacheUnavailableError(f"Cannot open cache lock {self.lock_path}: {exc}") from exc
        try:
            self._shm = self._attach(name, size)
        except OSError as exc:
            os.close(self._lock_fd)
            raise CacheUnavailableError(f"Cannot attach shared memory {name!r}: {exc}") from exc

    @staticmethod
    def _open_segment(name: str, *, create: bool, size: int = 0) -> shared_memory.SharedMemory:
        if _HAS_TRACK_FLAG:
            return shared_memory.SharedMemory(name=name, create=create, size=size, track=False)
        shm = shared_memory.SharedMemory(name=name, create=create, size=size)
        resource_tracker.unregister(shm._name, "shared_memory")
        return shm

    @classmethod
    def _attach(cls, name: str, size: int) -> shared_memory.SharedMemory:
        try:
            shm = cls._open_segment(name, create=True, size=size)
            shm.buf[: _HEADER.size] = _HEADER.pack(0)
            LOGGER.info("Created shared cache %s (%d bytes)", name, size)
            return shm
        except FileExistsError:
            shm = cls._open_segment(name, create=False)
            LOGGER.debug("Attached to shared cache %s", name)
            return shm

    @property
    def capacity(self) -> int:
        return min(self.size, self._shm.size) - _HEADER.size

    def _read(self) -> Dict[str, Any]:
        (length,) = _HEADER.unpack_from(self._shm.buf, 0)
        if length == 0:
            return {}
        payload = bytes(self._shm.buf[_HEADER.size : _HEADER.size + length])
        return pickle.loads(payload)

    def _write(self, data: Dict[str, Any]) -> None:
        payload = pickle.dumps(data, protocol=pickle.HIGHEST_PROTOCOL)
        if len(payload) > self.capacity:
            raise CacheCapacityError(
                f"Cache payload of {len(payload)} bytes exceeds the {self.capacity} byte budget"
            )
        self._shm.buf[_HEADER.size : _HEADER.size + len(payload)] = payload
        _HEADER.pack_into(self._shm.buf, 0, len(payload))

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[Dict[str, Any]]:
        with self._thread_lock:
            fcntl.flock(self._lock_fd, fcntl.LOCK_EX if write else fcntl.LOCK_SH)
            try:
                data = self._read()
                yield data
                if write:
                    self._write(data)
            finally:
                fcntl.flock(self._lock_fd, fcntl.LOCK_UN)

    def close(self) -> None:
        self._shm.close()
        os.close(self._lock_fd)

    def unlink(self) -> None:
        """Remove the named block; processes still attached keep their mapping."""
        if not _HAS_TRACK_FLAG:
            # unlink() unregisters the name, so hand it back to the tracker first.
            resource_tracker.register(self._shm._name, "shared_memory")
        self._shm.unlink()
        LOGGER.info("Removed shared cache %s", self.name)


class QuickSearchCache:
    """Typed access to the cached artifacts."""

    def __init__(self, store: CacheStore) -> None:
        self.store = store

    def get_snapshot(self) -> IndexSnapshot | None:
        with self.store.transaction(write=False) as data:
            documents = data.get(INDEX_KEY)
            built_at = data.get(INDEX_TS_KEY)
        if documents is None:
            return None
        return IndexSnapshot(documents=tuple(documents), built_at=float(built_at or 0.0))

    def set_snapshot(self, snapshot: IndexSnapshot | None) -> None:
        with self.store.transaction() as data:
            if snapshot is None:
                data.pop(INDEX_KEY, None)
                data.pop(INDEX_TS_KEY, None)
            else:
                data[INDEX_KEY] = snapshot.documents
                data[INDEX_TS_KEY] = snapshot.built_at

    def get_synonyms(self) -> tuple[SynonymTable | None, float]:
        with self.store.transaction(write=False) as data:
            return data.get(SYNONYMS_KEY), float(data.get(SYNONYMS_TS_KEY) or 0.0)

    def set_synonyms(self, table: SynonymTable | None, loaded_at: float | None = None) -> None:
        with self.store.transaction() as data:
            if table is None:
                data.pop(SYNONYMS_KEY, None)
                data.pop(SYNONYMS_TS_KEY, None)
            else:
                data[SYNONYMS_KEY] = table
                data[SYNONYMS_TS_KEY] = loaded_at

    def rebuild_lock_until(self) -> float:
        return float(self.store.get(LOCK_KEY) or 0.0)

    def try_acquire_rebuild_lock(self, now: float, ttl: float) -> bool:
        """Take the advisory rebuild lock unless someone holds an unexpired one."""
        with self.store.transaction() as data:
            held_until = float(data.get(LOCK_KEY) or 0.0)
            if held_until >= now:
                return False
            data[LOCK_KEY] = now + ttl
            return True

    def release_rebuild_lock(self) -> None:
        self.store.set(LOCK_KEY, None)

    def clear(self) -> None:
        with self.store.transaction() as data:
            for key in (INDEX_KEY, INDEX_TS_KEY, LOCK_KEY, SYNONYMS_KEY, SYNONYMS_TS_KEY):
                data.pop(key, None)


def open_store(backend: str, *, name: str = "quicksearch", size: int = 6 * 1024 * 1024) -> CacheStore:
    """Open the configured backend; ``shm`` failures are fatal."""
    if backend == "memory":
        return MemoryStore()
    if backend == "shm":
        return SharedMemoryStore(name, size=size)
    raise CacheUnavailableError(f"Unknown cache backend: {backend!r}")
