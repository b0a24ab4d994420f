from storages_api.service.filesystem_service import FilesystemService

__all__ = ["FilesystemService"]
