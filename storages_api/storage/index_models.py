"""Index database models for storage search.

This module defines SQLAlchemy models for the index database, which stores one
row per indexed file or directory of every storage.

IMPORTANT: The index is never authoritative. It is rebuilt per storage from a
fresh walk and may lag behind the disk between reindexes.
"""

from typing import Optional
from sqlalchemy import (
    Boolean,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema version (increment on breaking changes)
INDEX_SCHEMA_VERSION = "1.0.0"


class IndexBase(DeclarativeBase):
    pass


class IndexedFile(IndexBase):
    """One file or directory of a storage as seen by the last reindex.

    CRITICAL: (storage, path) is unique. A storage's rows are only ever replaced
    wholesale inside a single transaction (see IndexStore.rebuild).
    """

    __tablename__ = "files"

    file_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    storage: Mapped[str] = mapped_column(String, nullable=False)
    path: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_dir: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Epoch seconds
    mtime: Mapped[float] = mapped_column(Float, nullable=False)
    # Lowercase, without the dot
    ext: Mapped[Optional[str]] = mapped_column(String)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_files_storage", "storage"),
        Index("idx_files_ext", "ext"),
        Index("idx_files_mtime", "mtime"),
        Index("idx_files_is_dir", "is_dir"),
        Index("idx_files_storage_ext_mtime", "storage", "ext", "mtime"),
        Index("idx_files_storage_is_dir", "storage", "is_dir"),
        Index("idx_files_path", "storage", "path", unique=True),
    )


class Meta(IndexBase):
    """Metadata key-value store for the index database.

    Used for storing schema_version and other database-level metadata.
    """

    __tablename__ = "meta"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(String)
