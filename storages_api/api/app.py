"""HTTP surface of the storage engine.

``create_app`` builds a FastAPI application around one FilesystemService. The
host process owns the service; nothing here is a module-level singleton.
"""

from contextlib import asynccontextmanager
import logging
import posixpath

from fastapi import APIRouter, Body, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response

from storages_api.api.models import (
    DuplicateRequest,
    FilesResponse,
    FolderRequest,
    IndexStatusResponse,
    MessageResponse,
    PathMessageResponse,
    PingResponse,
    RecentResponse,
    ReindexResponse,
    RenameRequest,
    SearchResponse,
    StatsResponse,
    StoragesResponse,
    UploadResponse,
)
from storages_api.errors import (
    IndexUnavailable,
    NotFound,
    PathEscape,
    StorageError,
    StorageIOError,
    StorageNotFound,
    ValidationError,
)
from storages_api.service.filesystem_service import FilesystemService
from storages_api.service.thumbnails import VIDEO_EXTENSIONS
from storages_api.utils.filters import file_extension
from storages_api.utils.logging_config import setup_logging
from storages_api.utils.settings import ServiceSettings

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[StorageError], int] = {
    ValidationError: 400,
    PathEscape: 403,
    StorageNotFound: 404,
    NotFound: 404,
    StorageIOError: 500,
    IndexUnavailable: 503,
}

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "mkv": "video/mp4",
    "webm": "video/mp4",
    "mov": "video/mp4",
    "avi": "video/mp4",
    "mp3": "audio/mpeg",
    "pdf": "application/pdf",
    "txt": "text/plain",
}


def status_code_for(exc: StorageError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(file_extension(posixpath.basename(path)), "application/octet-stream")


def get_service(request: Request) -> FilesystemService:
    return request.app.state.service


router = APIRouter(prefix="/api")


@router.get("/")
def list_storages(service: FilesystemService = Depends(get_service)) -> StoragesResponse:
    return StoragesResponse(storages=service.list_storages())


@router.get("/files")
def list_files(
    storage: str = Query(min_length=1),
    path: str = "/",
    recursive: bool = False,
    show_hidden: bool = False,
    service: FilesystemService = Depends(get_service),
) -> FilesResponse:
    files = service.list(storage, path, show_hidden=show_hidden, recursive=recursive)
    return FilesResponse(storage=storage, path=path, files=files)


def _file_response(
    service: FilesystemService, storage: str, path: str, disposition: str
) -> FileResponse:
    entry = service.stat(storage, path)
    if entry.is_dir:
        raise ValidationError(f"is a directory: {path}")
    return FileResponse(
        service.real_path(storage, path),
        media_type=content_type_for(path),
        filename=entry.name,
        content_disposition_type=disposition,
    )


@router.get("/download")
def download_file(
    storage: str = Query(min_length=1),
    path: str = Query(min_length=1),
    service: FilesystemService = Depends(get_service),
):
    return _file_response(service, storage, path, "attachment")


@router.get("/preview")
def preview_file(
    storage: str = Query(min_length=1),
    path: str = Query(min_length=1),
    thumb: bool = False,
    service: FilesystemService = Depends(get_service),
):
    """Inline preview; ``thumb=true`` on a video returns a single JPEG frame."""
    if thumb and file_extension(posixpath.basename(path)) in VIDEO_EXTENSIONS:
        try:
            frame = service.video_thumbnail(storage, path)
        except StorageIOError as e:
            logger.warning(f"Falling back to streaming {storage}:{path}: {e}")
        else:
            return Response(content=frame, media_type="image/jpeg")
    return _file_response(service, storage, path, "inline")


@router.post("/folder")
def create_folder(
    request: FolderRequest, service: FilesystemService = Depends(get_service)
) -> PathMessageResponse:
    service.create_folder(request.storage, request.path)
    return PathMessageResponse(
        message="folder created", storage=request.storage, path=request.path
    )


@router.post("/upload")
def upload_file(
    storage: str = Query(min_length=1),
    path: str = "/",
    file: UploadFile = File(...),
    service: FilesystemService = Depends(get_service),
) -> UploadResponse:
    filename = posixpath.basename((file.filename or "").replace("\\", "/"))
    if not filename:
        raise ValidationError("no file uploaded")
    file_path = service.upload(storage, posixpath.join(path, filename), file.file)
    return UploadResponse(message="file uploaded successfully", file_path=file_path)


@router.put("/rename")
def rename_or_move(
    request: RenameRequest, service: FilesystemService = Depends(get_service)
) -> MessageResponse:
    service.rename(request.storage, request.old_path, request.new_path)
    return MessageResponse(message="renamed/moved successfully")


@router.post("/copy")
def copy(
    request: RenameRequest, service: FilesystemService = Depends(get_service)
) -> MessageResponse:
    service.copy(request.storage, request.old_path, request.new_path)
    return MessageResponse(message="copied successfully")


@router.post("/duplicate")
def duplicate(
    request: DuplicateRequest, service: FilesystemService = Depends(get_service)
) -> PathMessageResponse:
    new_path = service.duplicate(request.storage, request.path)
    return PathMessageResponse(
        message="duplicated successfully", storage=request.storage, path=new_path
    )


@router.delete("/delete")
def delete(
    storage: str = Query(min_length=1),
    path: str = Query(min_length=1),
    service: FilesystemService = Depends(get_service),
) -> PathMessageResponse:
    service.delete(storage, path)
    return PathMessageResponse(message="deleted successfully", storage=storage, path=path)


@router.get("/search")
def search_files(
    storage: str = Query(min_length=1),
    ext: str = "",
    limit: int = 0,
    offset: int = 0,
    days: int = 0,
    service: FilesystemService = Depends(get_service),
) -> SearchResponse:
    extensions = [e for e in ext.split(",") if e.strip()]
    files, total = service.search(storage, extensions, limit, offset, days)
    return SearchResponse(files=files, total=total, limit=limit, offset=offset, days=days)


@router.get("/recent")
def recent_files(
    storage: str = Query(min_length=1),
    limit: int = 20,
    offset: int = 0,
    service: FilesystemService = Depends(get_service),
) -> RecentResponse:
    files = service.recent(storage, limit, offset)
    return RecentResponse(files=files, limit=limit, offset=offset)


@router.get("/reindex")
def reindex(
    storage: str | None = None, service: FilesystemService = Depends(get_service)
) -> ReindexResponse:
    service.reindex(storage)
    return ReindexResponse(message="Reindexing started in background")


@router.get("/index/status")
def index_status(service: FilesystemService = Depends(get_service)) -> IndexStatusResponse:
    return IndexStatusResponse(
        storages=service.index_status(), indexed_at=service.last_indexed()
    )


@router.post("/stats")
def stats(
    groups: dict[str, list[str]] = Body(...),
    storage: str = Query(min_length=1),
    service: FilesystemService = Depends(get_service),
) -> StatsResponse:
    return StatsResponse(stats=service.stats(storage, groups))


def create_app(service: FilesystemService | None = None, start_scheduler: bool = True) -> FastAPI:
    """Build the application around ``service``.

    Without a service, settings are read from the environment, logging is set
    up and the service is built from them.

    With ``start_scheduler`` the periodic reindex runs for the lifetime of the
    app and the service is stopped on shutdown.
    """
    if service is None:
        settings = ServiceSettings()
        setup_logging(settings.log_file_prefix, settings.log_dir, settings.log_level)
        service = FilesystemService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            service.start()
        try:
            yield
        finally:
            if start_scheduler:
                service.stop()

    app = FastAPI(title="Storages API", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            messages.append(f"{location}: {error.get('msg')}")
        return JSONResponse(status_code=400, content={"error": "; ".join(messages)})

    @app.get("/ping")
    def ping() -> PingResponse:
        return PingResponse(
            mounts={mount.name: mount.root_path for mount in service.driver.mounts}
        )

    app.include_router(router)
    return app
