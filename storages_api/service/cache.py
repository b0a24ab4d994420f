"""Read-through cache for directory listings.

Entries are served until they are older than the TTL and are dropped
wholesale for a storage whenever that storage is mutated.
"""

from dataclasses import dataclass
import logging
import time
from typing import Callable, NamedTuple

from storages_api.data_models.files import FileEntry
from storages_api.utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


class CacheKey(NamedTuple):
    storage: str
    path: str
    recursive: bool
    show_hidden: bool


@dataclass
class CacheEntry:
    files: list[FileEntry]
    captured_at: float


class ListingCache:
    """TTL cache of listings keyed by CacheKey.

    Reads take a shared lock, puts and invalidations an exclusive one. Each
    storage carries a generation number that invalidation bumps; a result
    computed under an older generation is returned to its caller but never
    stored, so a listing that raced a mutation cannot outlive it.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def get(self, key: CacheKey) -> list[FileEntry] | None:
        """Copy of the cached listing, or None when missing or expired."""
        with self._lock.read_locked():
            entry = self._entries.get(key)
        if entry is None or self.clock() - entry.captured_at > self.ttl:
            return None
        return list(entry.files)

    def generation(self, storage: str) -> int:
        with self._lock.read_locked():
            return self._generations.get(storage, 0)

    def put(self, key: CacheKey, files: list[FileEntry], generation: int | None = None) -> bool:
        """Store a listing. Returns False if ``generation`` is no longer current."""
        with self._lock.write_locked():
            if generation is not None and self._generations.get(key.storage, 0) != generation:
                return False
            self._entries[key] = CacheEntry(files=list(files), captured_at=self.clock())
        return True

    def get_or_compute(
        self, key: CacheKey, compute: Callable[[], list[FileEntry]]
    ) -> list[FileEntry]:
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        generation = self.generation(key.storage)
        files = compute()
        if not self.put(key, files, generation):
            logger.debug(f"Discarding listing for {key}: storage changed while computing")
        return list(files)

    def invalidate_storage(self, storage: str) -> int:
        """Drop every entry of ``storage``; returns how many were removed."""
        with self._lock.write_locked():
            self._generations[storage] = self._generations.get(storage, 0) + 1
            stale = [key for key in self._entries if key.storage == storage]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached listings of {storage}")
        return len(stale)

    def clear(self) -> None:
        with self._lock.write_locked():
            for storage in {key.storage for key in self._entries}:
                self._generations[storage] = self._generations.get(storage, 0) + 1
            self._entries.clear()
