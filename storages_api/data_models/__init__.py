from storages_api.data_models.files import FileEntry, StorageInfo

__all__ = ["FileEntry", "StorageInfo"]
