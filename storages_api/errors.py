"""Typed failures raised by the storage core.

The driver and the index raise these locally; the HTTP layer maps each class
to a status code (see api/app.py).
"""


class StorageError(Exception):
    """Base class for every failure the storage core reports to callers."""


class StorageNotFound(StorageError):
    """No mount is registered under the requested storage name."""

    def __init__(self, storage: str):
        super().__init__(f"storage '{storage}' not found")
        self.storage = storage


class PathEscape(StorageError):
    """A requested path resolves outside its mount root."""

    def __init__(self, storage: str, sub_path: str, relative: str):
        super().__init__(
            f"invalid path: access outside root of '{storage}' (rel: {relative})"
        )
        self.storage = storage
        self.sub_path = sub_path


class NotFound(StorageError):
    """The path is valid but nothing exists there."""


class StorageIOError(StorageError):
    """Permission, disk or stream failure while touching the filesystem."""


class IndexUnavailable(StorageError):
    """The search index could not be opened, queried or written."""


class ValidationError(StorageError):
    """Missing or malformed input."""
