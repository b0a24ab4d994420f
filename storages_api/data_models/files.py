from datetime import datetime, timezone
import os
import stat as stat_module

from pydantic import BaseModel

from storages_api.utils.filters import file_extension


class FileEntry(BaseModel):
    """Metadata of one filesystem object.

    ``path`` is relative to the mount root, uses forward slashes and has no
    leading slash. ``item_count`` is the number of immediate children and is
    only meaningful for directories.
    """

    name: str
    path: str
    size: int = 0
    mode: str = ""
    modified_at: datetime
    is_dir: bool = False
    extension: str = ""
    item_count: int = 0


class StorageInfo(BaseModel):
    name: str
    path: str
    total_size: int = 0
    used_size: int = 0
    free_size: int = 0
    is_mounted: bool = False


def timestamp_to_datetime(mtime: float) -> datetime:
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


def entry_from_stat(
    name: str, rel_path: str, st: os.stat_result, item_count: int = 0
) -> FileEntry:
    """Build a FileEntry from an ``os.stat`` result."""
    is_dir = stat_module.S_ISDIR(st.st_mode)
    return FileEntry(
        name=name,
        path=rel_path,
        size=st.st_size,
        mode=stat_module.filemode(st.st_mode),
        modified_at=timestamp_to_datetime(st.st_mtime),
        is_dir=is_dir,
        extension=file_extension(name),
        item_count=item_count if is_dir else 0,
    )
