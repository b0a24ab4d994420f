"""Interactive one-level directory listing.

Stats run on a bounded thread pool so slow media (spinning disks, network
mounts) do not serialise the per-entry latency.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
import logging
import os

from storages_api.data_models.files import FileEntry, entry_from_stat
from storages_api.stages.driver import LocalDriver, count_children

logger = logging.getLogger(__name__)

# Tuned for HDD latency masking
DEFAULT_MAX_WORKERS = 16


class ConcurrentLister:
    def __init__(self, driver: LocalDriver, max_workers: int = DEFAULT_MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.driver = driver
        self.max_workers = max_workers

    def list(self, storage: str, path: str = "", show_hidden: bool = False) -> list[FileEntry]:
        """List one directory level.

        Hidden entries are dropped unless ``show_hidden``. Entries whose stat
        fails are skipped. The result is in completion order of the stats, not
        directory or name order.
        """
        full_path, entries = self.driver.scan_dir(storage, path)
        rel_dir = self.driver.relative_path(storage, full_path)

        if not show_hidden:
            entries = [e for e in entries if not self.driver.policy.is_hidden(e.name)]
        if not entries:
            return []

        files: list[FileEntry] = []
        workers = min(self.max_workers, len(entries))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lister") as pool:
            futures = [pool.submit(describe_entry, entry, rel_dir) for entry in entries]
            for future in as_completed(futures):
                entry = future.result()
                if entry is not None:
                    files.append(entry)

        logger.debug(f"Listed {len(files)}/{len(entries)} entries in {storage}:/{rel_dir}")
        return files


def describe_entry(entry: os.DirEntry, rel_dir: str) -> FileEntry | None:
    """Stat one directory entry; None if it vanished or cannot be read."""
    try:
        st = entry.stat()
    except OSError as e:
        logger.debug(f"Skipping {entry.path}: {e}")
        return None

    rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
    item_count = count_children(entry.path) if entry.is_dir() else 0
    return entry_from_stat(entry.name, rel_path, st, item_count)
