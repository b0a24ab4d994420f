"""Path-safe access to the configured mounts.

Every operation resolves ``(storage, sub_path)`` to an absolute path first and
refuses anything that would land outside the mount root.
"""

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import stat as stat_module
from typing import BinaryIO, Iterator, Mapping
from contextlib import contextmanager

from storages_api.data_models.files import FileEntry, StorageInfo, entry_from_stat
from storages_api.errors import (
    NotFound,
    PathEscape,
    StorageIOError,
    StorageNotFound,
    ValidationError,
)
from storages_api.utils.config import FilterPolicy, get_filter_policy

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


@dataclass(frozen=True)
class Mount:
    name: str
    root_path: str


@contextmanager
def translate_os_errors(path: str) -> Iterator[None]:
    """Re-raise OS errors for ``path`` as storage errors."""
    try:
        yield
    except FileNotFoundError as e:
        raise NotFound(f"not found: {path}") from e
    except NotADirectoryError as e:
        raise ValidationError(f"not a directory: {path}") from e
    except IsADirectoryError as e:
        raise ValidationError(f"is a directory: {path}") from e
    except OSError as e:
        raise StorageIOError(f"{e.strerror or e} ({path})") from e


def count_children(path: str) -> int:
    """Number of immediate children of a directory, 0 when unreadable."""
    try:
        with os.scandir(path) as it:
            return sum(1 for _ in it)
    except OSError:
        return 0


class LocalDriver:
    """Raw filesystem operations over an immutable mount table."""

    def __init__(self, mounts: Mapping[str, str], policy: FilterPolicy | None = None):
        self._mounts: dict[str, Mount] = {}
        for name, root in mounts.items():
            mount = Mount(name=name, root_path=os.path.normpath(os.path.abspath(root)))
            self._mounts[name.lower()] = mount
        self.policy = policy if policy is not None else get_filter_policy()

    @property
    def mounts(self) -> list[Mount]:
        return list(self._mounts.values())

    def mount(self, storage: str) -> Mount:
        """Look up a mount by name, ignoring case."""
        mount = self._mounts.get(storage.lower())
        if mount is None:
            raise StorageNotFound(storage)
        return mount

    def resolve(self, storage: str, sub_path: str) -> str:
        """Resolve a path inside a storage to an absolute path.

        The sub path is always joined under the root (a leading separator does
        not make it absolute) and cleaned lexically. If the cleaned result is
        not a descendant of the root, PathEscape is raised.
        """
        root = self.mount(storage).root_path
        relative_input = sub_path.lstrip("/" + os.sep)
        cleaned = os.path.normpath(os.path.join(root, relative_input))

        rel = os.path.relpath(cleaned, root)
        if rel == os.pardir or rel.startswith(os.pardir + os.sep):
            raise PathEscape(storage, sub_path, rel)
        return cleaned

    def relative_path(self, storage: str, full_path: str) -> str:
        """Forward-slash path of ``full_path`` relative to the storage root."""
        rel = os.path.relpath(full_path, self.mount(storage).root_path)
        if rel == os.curdir:
            return ""
        return rel.replace(os.sep, "/")

    def real_path(self, storage: str, sub_path: str) -> str:
        return self.resolve(storage, sub_path)

    # Storage inventory

    def list_storages(self) -> list[StorageInfo]:
        storages = []
        for mount in self.mounts:
            total, used, free = self._disk_usage(mount.root_path)
            storages.append(
                StorageInfo(
                    name=mount.name,
                    path=mount.root_path,
                    total_size=total,
                    used_size=used,
                    free_size=free,
                    is_mounted=self._is_mount_point(mount.root_path),
                )
            )
        return storages

    @staticmethod
    def _disk_usage(path: str) -> tuple[int, int, int]:
        try:
            usage = shutil.disk_usage(path)
        except OSError as e:
            logger.error(f"Error getting disk usage for {path}: {e}")
            return 0, 0, 0
        return usage.total, usage.used, usage.free

    @staticmethod
    def _is_mount_point(path: str) -> bool:
        """True when the path sits on a different device than its parent."""
        try:
            st = os.lstat(path)
        except OSError:
            return False
        try:
            parent_st = os.lstat(os.path.dirname(path))
        except OSError:
            # Root or something special
            return True
        return st.st_dev != parent_st.st_dev

    # Reads

    def scan_dir(self, storage: str, sub_path: str) -> tuple[str, list[os.DirEntry]]:
        """Return the resolved directory and its raw entries."""
        full_path = self.resolve(storage, sub_path)
        with translate_os_errors(sub_path):
            with os.scandir(full_path) as it:
                return full_path, list(it)

    def stat(self, storage: str, sub_path: str) -> FileEntry:
        full_path = self.resolve(storage, sub_path)
        with translate_os_errors(sub_path):
            st = os.stat(full_path)
        item_count = count_children(full_path) if os.path.isdir(full_path) else 0
        return entry_from_stat(
            os.path.basename(full_path),
            self.relative_path(storage, full_path),
            st,
            item_count,
        )

    def is_dir(self, storage: str, sub_path: str) -> bool:
        full_path = self.resolve(storage, sub_path)
        with translate_os_errors(sub_path):
            st = os.stat(full_path)
        return stat_module.S_ISDIR(st.st_mode)

    def exists(self, storage: str, sub_path: str) -> bool:
        return os.path.lexists(self.resolve(storage, sub_path))

    def open_file(self, storage: str, sub_path: str) -> BinaryIO:
        full_path = self.resolve(storage, sub_path)
        if os.path.isdir(full_path):
            raise ValidationError(f"is a directory: {sub_path}")
        with translate_os_errors(sub_path):
            return open(full_path, "rb")

    # Writes

    def create_folder(self, storage: str, sub_path: str) -> str:
        full_path = self.resolve(storage, sub_path)
        with translate_os_errors(sub_path):
            os.makedirs(full_path, mode=0o755, exist_ok=True)
        return full_path

    def save_file(self, storage: str, sub_path: str, src: BinaryIO) -> str:
        """Write ``src`` to the path, creating parents and overwriting."""
        full_path = self.resolve(storage, sub_path)
        if os.path.isdir(full_path):
            raise ValidationError(f"is a directory: {sub_path}")
        with translate_os_errors(sub_path):
            os.makedirs(os.path.dirname(full_path), mode=0o755, exist_ok=True)
            with open(full_path, "wb") as dst:
                shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
        return full_path

    def rename(self, storage: str, old_path: str, new_path: str) -> None:
        old_full_path = self.resolve(storage, old_path)
        new_full_path = self.resolve(storage, new_path)
        self._refuse_root(storage, old_full_path, old_path)
        with translate_os_errors(old_path):
            os.rename(old_full_path, new_full_path)

    def delete(self, storage: str, sub_path: str) -> None:
        """Remove a file or a whole tree. Missing paths are not an error."""
        full_path = self.resolve(storage, sub_path)
        self._refuse_root(storage, full_path, sub_path)
        with translate_os_errors(sub_path):
            if os.path.isdir(full_path) and not os.path.islink(full_path):
                shutil.rmtree(full_path)
            elif os.path.lexists(full_path):
                os.remove(full_path)

    def copy(self, storage: str, src_path: str, dst_path: str) -> None:
        src_full_path = self.resolve(storage, src_path)
        dst_full_path = self.resolve(storage, dst_path)

        with translate_os_errors(src_path):
            st = os.stat(src_full_path)

        if stat_module.S_ISDIR(st.st_mode):
            if Path(dst_full_path).is_relative_to(src_full_path):
                raise ValidationError(
                    f"cannot copy '{src_path}' into its own subtree '{dst_path}'"
                )
            with translate_os_errors(src_path):
                shutil.copytree(
                    src_full_path,
                    dst_full_path,
                    copy_function=self._copy_file,
                    dirs_exist_ok=True,
                )
        else:
            with translate_os_errors(src_path):
                if os.path.exists(dst_full_path) and os.path.samefile(src_full_path, dst_full_path):
                    raise ValidationError(f"cannot copy '{src_path}' onto itself")
                self._copy_file(src_full_path, dst_full_path)

    @staticmethod
    def _copy_file(src: str, dst: str) -> str:
        """Streamed byte copy, synced to disk before returning."""
        with open(src, "rb") as fin, open(dst, "wb") as fout:
            shutil.copyfileobj(fin, fout, COPY_BUFFER_SIZE)
            fout.flush()
            os.fsync(fout.fileno())
        return dst

    def _refuse_root(self, storage: str, full_path: str, sub_path: str) -> None:
        if full_path == self.mount(storage).root_path:
            raise ValidationError(f"refusing to modify the root of '{storage}' ({sub_path!r})")
