"""Composition root of the storage engine.

FilesystemService wires the driver, the listing paths, the index, the cache and
the scheduler together. It is built once per process and handed to the HTTP
layer explicitly.
"""

from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime
import logging
import posixpath
import time
from typing import BinaryIO, Callable, Iterable, Mapping

from storages_api.data_models.files import FileEntry, StorageInfo
from storages_api.errors import NotFound, ValidationError
from storages_api.service.cache import CacheKey, ListingCache
from storages_api.service.scheduler import DEFAULT_REINDEX_INTERVAL, IndexScheduler
from storages_api.service.thumbnails import FfmpegThumbnailer, VideoThumbnailer
from storages_api.stages.driver import LocalDriver
from storages_api.stages.lister import ConcurrentLister
from storages_api.stages.walker import RecursiveWalker
from storages_api.storage.manager import IndexStore
from storages_api.utils.config import get_filter_policy, load_filter_policy
from storages_api.utils.settings import ServiceSettings

logger = logging.getLogger(__name__)


class FilesystemService:
    """Storage browsing, search and mutation over the configured mounts.

    Listings are served through a TTL cache. Every successful mutation drops
    the cached listings of its storage before returning and schedules a
    reindex of that storage without waiting for it.
    """

    def __init__(
        self,
        driver: LocalDriver,
        index: IndexStore,
        cache: ListingCache | None = None,
        lister: ConcurrentLister | None = None,
        walker: RecursiveWalker | None = None,
        thumbnailer: VideoThumbnailer | None = None,
        reindex_interval: float = DEFAULT_REINDEX_INTERVAL,
        scheduler_clock: Callable[[], float] = time.monotonic,
    ):
        self.driver = driver
        self.index = index
        self.cache = cache if cache is not None else ListingCache()
        self.lister = lister if lister is not None else ConcurrentLister(driver)
        self.walker = walker if walker is not None else RecursiveWalker(driver)
        self.thumbnailer = thumbnailer if thumbnailer is not None else FfmpegThumbnailer()
        self.scheduler = IndexScheduler(
            [mount.name for mount in driver.mounts],
            self._reindex_storage,
            interval=reindex_interval,
            clock=scheduler_clock,
        )

    @classmethod
    def from_settings(cls, settings: ServiceSettings | None = None) -> FilesystemService:
        settings = settings or ServiceSettings()
        if settings.filters_file is not None:
            if not settings.filters_file.exists():
                raise ValueError(f"Filters file not found: {settings.filters_file}")
            policy = load_filter_policy(settings.filters_file)
        else:
            policy = get_filter_policy()

        mounts = settings.mounts
        if not mounts:
            logger.warning("No storage mounts configured")
        for name, path in mounts.items():
            logger.info(f"Storage [{name}] -> {path}")

        driver = LocalDriver(mounts, policy)
        return cls(
            driver,
            IndexStore(settings.index_path, hidden_prefixes=policy.hidden_prefixes),
            cache=ListingCache(ttl=settings.cache_ttl_seconds),
            lister=ConcurrentLister(driver, max_workers=settings.lister_workers),
            reindex_interval=settings.reindex_interval_seconds,
        )

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.index.dispose()

    def _storage(self, storage: str) -> str:
        """Canonical (configured) name of a storage."""
        return self.driver.mount(storage).name

    def _normalize(self, storage: str, path: str) -> str:
        return self.driver.relative_path(storage, self.driver.resolve(storage, path))

    # Listing

    def list_storages(self) -> list[StorageInfo]:
        return self.driver.list_storages()

    def list_files(self, storage: str, path: str = "", show_hidden: bool = False) -> list[FileEntry]:
        name = self._storage(storage)
        rel_path = self._normalize(name, path)
        key = CacheKey(name, rel_path, False, show_hidden)
        return self.cache.get_or_compute(
            key, lambda: self.lister.list(name, rel_path, show_hidden=show_hidden)
        )

    def list_all_files(self, storage: str, show_hidden: bool = False) -> list[FileEntry]:
        name = self._storage(storage)
        key = CacheKey(name, "", True, show_hidden)
        return self.cache.get_or_compute(
            key, lambda: self.walker.walk_all(name, show_hidden=show_hidden)
        )

    def list(
        self, storage: str, path: str = "", show_hidden: bool = False, recursive: bool = False
    ) -> list[FileEntry]:
        if recursive:
            return self.list_all_files(storage, show_hidden)
        return self.list_files(storage, path, show_hidden)

    def stat(self, storage: str, path: str) -> FileEntry:
        return self.driver.stat(self._storage(storage), path)

    def is_directory(self, storage: str, path: str) -> bool:
        return self.driver.is_dir(self._storage(storage), path)

    def real_path(self, storage: str, path: str) -> str:
        return self.driver.real_path(self._storage(storage), path)

    def open_file(self, storage: str, path: str) -> BinaryIO:
        return self.driver.open_file(self._storage(storage), path)

    def video_thumbnail(self, storage: str, path: str) -> bytes:
        name = self._storage(storage)
        if not self.driver.exists(name, path):
            raise NotFound(f"not found: {path}")
        return self.thumbnailer.thumbnail(self.driver.real_path(name, path))

    # Index

    def search(
        self,
        storage: str,
        extensions: Iterable[str] = (),
        limit: int = 0,
        offset: int = 0,
        days: int = 0,
    ) -> tuple[list[FileEntry], int]:
        return self.index.search(self._storage(storage), extensions, limit, offset, days)

    def recent(self, storage: str, limit: int = 20, offset: int = 0) -> list[FileEntry]:
        return self.index.recent(self._storage(storage), limit, offset)

    def stats(self, storage: str, groups: Mapping[str, Iterable[str]]) -> dict[str, int]:
        return self.index.stats(self._storage(storage), groups)

    def reindex(self, storage: str | None = None) -> list[Future]:
        """Schedule a reindex of one storage, or of all of them."""
        if storage is None:
            return self.scheduler.reindex_all()
        future = self.scheduler.trigger(self._storage(storage))
        return [future] if future is not None else []

    def index_status(self) -> dict[str, str]:
        return {storage: state.value for storage, state in self.scheduler.states().items()}

    def last_indexed(self) -> dict[str, datetime | None]:
        """When each storage was last rebuilt successfully (None if never)."""
        return {storage: self.index.indexed_at(storage) for storage in self.scheduler.storages}

    def _reindex_storage(self, storage: str) -> int:
        entries = self.walker.walk_all(storage, show_hidden=False)
        return self.index.rebuild(storage, entries)

    # Mutations

    def _invalidate(self, storage: str) -> None:
        self.cache.invalidate_storage(storage)
        self.scheduler.trigger(storage)

    def create_folder(self, storage: str, path: str) -> None:
        name = self._storage(storage)
        self.driver.create_folder(name, path)
        self._invalidate(name)

    def upload(self, storage: str, path: str, stream: BinaryIO) -> str:
        """Write ``stream`` to ``path``; returns the stored relative path."""
        name = self._storage(storage)
        full_path = self.driver.save_file(name, path, stream)
        self._invalidate(name)
        return self.driver.relative_path(name, full_path)

    def rename(self, storage: str, old_path: str, new_path: str) -> None:
        name = self._storage(storage)
        self.driver.rename(name, old_path, new_path)
        self._invalidate(name)

    def copy(self, storage: str, src_path: str, dst_path: str) -> None:
        name = self._storage(storage)
        self.driver.copy(name, src_path, dst_path)
        self._invalidate(name)

    def duplicate(self, storage: str, path: str) -> str:
        """Copy ``path`` next to itself and return the new relative path.

        ``dir/report.txt`` becomes ``dir/report_copy.txt``, then
        ``dir/report_copy_1.txt``, ``dir/report_copy_2.txt`` and so on.
        """
        name = self._storage(storage)
        src = self._normalize(name, path)
        if not src:
            raise ValidationError(f"cannot duplicate the root of '{name}'")

        parent, base = posixpath.split(src)
        stem, ext = posixpath.splitext(base)
        candidate = posixpath.join(parent, f"{stem}_copy{ext}")
        counter = 1
        while self.driver.exists(name, candidate):
            candidate = posixpath.join(parent, f"{stem}_copy_{counter}{ext}")
            counter += 1

        self.driver.copy(name, src, candidate)
        self._invalidate(name)
        return candidate

    def delete(self, storage: str, path: str) -> None:
        name = self._storage(storage)
        self.driver.delete(name, path)
        self._invalidate(name)
