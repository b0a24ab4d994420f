from datetime import datetime

from pydantic import BaseModel, Field

from storages_api.data_models.files import FileEntry, StorageInfo


class FolderRequest(BaseModel):
    storage: str = Field(min_length=1)
    path: str = ""


class RenameRequest(BaseModel):
    """Rename/move, also used by copy (old_path is the source)."""

    storage: str = Field(min_length=1)
    old_path: str = Field(min_length=1)
    new_path: str = Field(min_length=1)


class DuplicateRequest(BaseModel):
    storage: str = Field(min_length=1)
    path: str = Field(min_length=1)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class PathMessageResponse(MessageResponse):
    storage: str
    path: str


class UploadResponse(MessageResponse):
    file_path: str


class StoragesResponse(BaseModel):
    storages: list[StorageInfo]


class FilesResponse(BaseModel):
    storage: str
    path: str
    files: list[FileEntry]


class SearchResponse(BaseModel):
    files: list[FileEntry]
    total: int
    limit: int
    offset: int
    days: int


class RecentResponse(BaseModel):
    files: list[FileEntry]
    limit: int
    offset: int


class StatsResponse(BaseModel):
    stats: dict[str, int]


class ReindexResponse(BaseModel):
    message: str


class IndexStatusResponse(BaseModel):
    storages: dict[str, str]
    indexed_at: dict[str, datetime | None]


class PingResponse(BaseModel):
    status: str = "ok"
    message: str = "pong"
    mounts: dict[str, str]
