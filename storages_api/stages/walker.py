import logging
import os

from storages_api.data_models.files import FileEntry, entry_from_stat
from storages_api.stages.driver import LocalDriver, count_children, translate_os_errors

logger = logging.getLogger(__name__)


class RecursiveWalker:
    """Full-depth traversal of a storage, feeding the search index.

    Never used for interactive browsing: project junk is dropped here so the
    index stays signal-dense while listings stay complete.
    """

    def __init__(self, driver: LocalDriver):
        self.driver = driver

    def walk_all(self, storage: str, show_hidden: bool = False) -> list[FileEntry]:
        """Return every indexable file and directory below the storage root.

        The root itself is excluded. Hidden directories are pruned, not
        descended, unless ``show_hidden``.

        Raises NotFound or StorageIOError when the root itself cannot be read;
        failures below the root only skip the affected entries.
        """
        policy = self.driver.policy
        root_path = self.driver.mount(storage).root_path
        logger.info(f"Starting recursive scan for {storage}...")

        # Only entries below the root may be skipped
        with translate_os_errors(f"{storage}:/"):
            os.scandir(root_path).close()

        def on_error(error: OSError) -> None:
            logger.warning(f"Skipping unreadable path during scan of {storage}: {error}")

        entries: list[FileEntry] = []
        for root, dirs, files in os.walk(root_path, onerror=on_error):
            # Filter out hidden directories and files; pruning dirs stops descent
            if not show_hidden:
                dirs[:] = [d for d in dirs if not policy.is_hidden(d)]
                files = [f for f in files if not policy.is_hidden(f)]
            dirs.sort()

            rel_root = self.driver.relative_path(storage, root)

            for d in dirs:
                folder_path = os.path.join(root, d)
                entry = self._describe(folder_path, d, rel_root, is_dir=True)
                if entry is not None:
                    entries.append(entry)

            for f in sorted(files):
                if policy.is_project_junk(f):
                    continue
                entry = self._describe(os.path.join(root, f), f, rel_root, is_dir=False)
                if entry is not None:
                    entries.append(entry)

        logger.info(f"Scanned {storage}: {len(entries)} entries")
        return entries

    @staticmethod
    def _describe(full_path: str, name: str, rel_root: str, is_dir: bool) -> FileEntry | None:
        try:
            st = os.stat(full_path)
        except OSError as e:
            logger.debug(f"Skipping {full_path}: {e}")
            return None

        rel_path = f"{rel_root}/{name}" if rel_root else name
        item_count = count_children(full_path) if is_dir else 0
        return entry_from_stat(name, rel_path, st, item_count)
