"""Index store for storage search, recent files and statistics.

This module provides the interface to the SQLite index database. Each storage
owns a disjoint set of rows that is replaced wholesale by ``rebuild``; readers
only ever see the previous or the new set, never a mix.
"""

from contextlib import contextmanager
from datetime import datetime
import logging
import math
from pathlib import Path
import time
from typing import Callable, Iterable, Iterator, Mapping, Sequence

from sqlalchemy import create_engine, delete, event, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import ColumnElement

from storages_api.data_models.files import FileEntry, timestamp_to_datetime
from storages_api.errors import IndexUnavailable
from storages_api.storage.index_models import (
    INDEX_SCHEMA_VERSION,
    IndexBase,
    IndexedFile,
    Meta as IndexMeta,
)
from storages_api.utils.config import get_filter_policy

logger = logging.getLogger(__name__)

DEFAULT_INDEX_PATH = Path("storage_index.db")
INSERT_BATCH_SIZE = 1000
OTHERS_GROUP = "others"
SECONDS_PER_DAY = 24 * 60 * 60


# CRITICAL: Set PRAGMAs per connection, not per engine
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Set SQLite PRAGMAs for every new connection.

    WAL lets readers keep reading the previous rows of a storage while a
    rebuild transaction is writing the new ones.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def normalize_extensions(extensions: Iterable[str]) -> list[str]:
    """Lowercase, strip dots and blanks, drop empties and duplicates."""
    normalized: list[str] = []
    for ext in extensions:
        value = ext.strip().lstrip(".").lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def _entry_to_row(storage: str, entry: FileEntry) -> dict:
    """Project a FileEntry onto an index row; ValueError if malformed."""
    if not entry.path or not entry.name:
        raise ValueError("empty path or name")
    if entry.path.startswith("/") or ".." in entry.path.split("/"):
        raise ValueError(f"path is not relative to the storage root: {entry.path!r}")
    if entry.size < 0:
        raise ValueError(f"negative size {entry.size}")
    mtime = entry.modified_at.timestamp()
    if not math.isfinite(mtime):
        raise ValueError("non-finite modification time")

    return {
        "storage": storage,
        "path": entry.path,
        "name": entry.name,
        "is_dir": entry.is_dir,
        "size": entry.size,
        "mtime": mtime,
        "ext": entry.extension.lstrip(".").lower() or None,
        "item_count": entry.item_count if entry.is_dir else 0,
    }


def _row_to_entry(row: IndexedFile) -> FileEntry:
    return FileEntry(
        name=row.name,
        path=row.path,
        size=row.size,
        modified_at=timestamp_to_datetime(row.mtime),
        is_dir=row.is_dir,
        extension=row.ext or "",
        item_count=row.item_count,
    )


class IndexStore:
    """Manager for the search index database.

    Usage:
        index = IndexStore(Path("storage_index.db"))
        index.rebuild("ssd", entries)
        page, total = index.search("ssd", ["jpg"], limit=40, offset=0, days=0)

    IMPORTANT:
    - Rows of a storage are replaced only through rebuild()
    - Schema versions are checked on initialization
    - ":memory:" databases share a single connection and are only suitable
      for single-threaded use
    """

    def __init__(
        self,
        database_path: Path | str | None = None,
        hidden_prefixes: Sequence[str] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the index store.

        Args:
            database_path: SQLite file (defaults to storage_index.db), or ":memory:"
            hidden_prefixes: Name prefixes excluded from search/recent/stats
                (defaults to the filter policy's prefixes)
            clock: Wall clock in epoch seconds, used by the ``days`` filter
        """
        if database_path is None:
            database_path = DEFAULT_INDEX_PATH
        self.index_path = database_path
        if hidden_prefixes is None:
            hidden_prefixes = get_filter_policy().hidden_prefixes
        self.hidden_prefixes = tuple(hidden_prefixes)
        self.clock = clock

        self.index_engine: Engine | None = None
        self._Session: sessionmaker | None = None

        try:
            self._init_index_schema()
        except SQLAlchemyError as e:
            self.dispose()
            raise IndexUnavailable(f"cannot open index at {self.index_path}: {e}") from e
        except IndexUnavailable:
            self.dispose()
            raise

    def _init_index_schema(self):
        """Create the engine, the tables and verify the schema version."""
        if str(self.index_path) == ":memory:":
            self.index_engine = create_engine(
                "sqlite:///:memory:",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            path = Path(self.index_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            # A busy timeout lets concurrent rebuilds of different storages queue up
            self.index_engine = create_engine(
                f"sqlite:///{path}",
                connect_args={"check_same_thread": False, "timeout": 30},
            )

        IndexBase.metadata.create_all(self.index_engine)
        self._Session = sessionmaker(bind=self.index_engine)
        self._verify_index_schema_version()

    def _verify_index_schema_version(self):
        """Verify the index schema version matches code version.

        Raises:
            IndexUnavailable: If schema version mismatch detected
        """
        with self.get_index_session() as session:
            meta = session.query(IndexMeta).filter_by(key="schema_version").first()

            if meta is None:
                session.add(IndexMeta(key="schema_version", value=INDEX_SCHEMA_VERSION))
                session.commit()
            elif meta.value != INDEX_SCHEMA_VERSION:
                raise IndexUnavailable(
                    f"index schema version mismatch: "
                    f"database is v{meta.value}, code expects v{INDEX_SCHEMA_VERSION}. "
                    f"Delete {self.index_path} and reindex to regenerate it."
                )

    @contextmanager
    def get_index_session(self) -> Iterator[Session]:
        """Get a SQLAlchemy session for the index database.

        Raises:
            IndexUnavailable: If the store was disposed or never initialized
        """
        if self._Session is None:
            raise IndexUnavailable("index store is not initialized")
        session = self._Session()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def _index_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Index {action} failed: {e}")
            raise IndexUnavailable(f"index {action} failed: {e}") from e

    def dispose(self) -> None:
        if self.index_engine is not None:
            self.index_engine.dispose()
        self.index_engine = None
        self._Session = None

    # Rebuild

    def rebuild(self, storage: str, entries: Iterable[FileEntry]) -> int:
        """Replace every row of ``storage`` with ``entries`` in one transaction.

        Malformed entries and duplicate paths are logged and skipped. Any
        database failure rolls the whole transaction back, leaving the previous
        rows in place, and raises IndexUnavailable.

        Returns:
            Number of rows written
        """
        rows: list[dict] = []
        seen: set[str] = set()
        skipped = 0
        for entry in entries:
            try:
                row = _entry_to_row(storage, entry)
            except (ValueError, OverflowError, OSError) as e:
                logger.warning(f"Skipping index entry {entry.path!r} of {storage}: {e}")
                skipped += 1
                continue
            if row["path"] in seen:
                logger.warning(f"Skipping duplicate index entry {entry.path!r} of {storage}")
                skipped += 1
                continue
            seen.add(row["path"])
            rows.append(row)

        with self.get_index_session() as session, self._index_errors(f"rebuild of {storage}"):
            with session.begin():
                session.execute(delete(IndexedFile).where(IndexedFile.storage == storage))
                for start in range(0, len(rows), INSERT_BATCH_SIZE):
                    session.execute(insert(IndexedFile), rows[start : start + INSERT_BATCH_SIZE])
                session.merge(
                    IndexMeta(
                        key=f"indexed_at:{storage}",
                        value=timestamp_to_datetime(self.clock()).isoformat(),
                    )
                )

        logger.info(f"Indexed {storage}: {len(rows)} rows ({skipped} skipped)")
        return len(rows)

    # Queries

    def _visible_files(self, storage: str) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = [
            IndexedFile.storage == storage,
            IndexedFile.is_dir.is_(False),
        ]
        for prefix in self.hidden_prefixes:
            conditions.append(~IndexedFile.name.startswith(prefix, autoescape=True))
        return conditions

    def _search_conditions(
        self, storage: str, extensions: Iterable[str] = (), days: int = 0
    ) -> list[ColumnElement[bool]]:
        """The single predicate shared by count and page queries."""
        conditions = self._visible_files(storage)
        normalized = normalize_extensions(extensions)
        if normalized:
            conditions.append(IndexedFile.ext.in_(normalized))
        if days > 0:
            conditions.append(IndexedFile.mtime > self.clock() - days * SECONDS_PER_DAY)
        return conditions

    def _count(self, session: Session, conditions: list[ColumnElement[bool]]) -> int:
        query = select(func.count()).select_from(IndexedFile).where(*conditions)
        return session.execute(query).scalar_one()

    def search(
        self,
        storage: str,
        extensions: Iterable[str] = (),
        limit: int = 0,
        offset: int = 0,
        days: int = 0,
    ) -> tuple[list[FileEntry], int]:
        """Search indexed files of a storage.

        Returns:
            (page, total): ``total`` counts every match regardless of
            limit/offset; the page is ordered newest first. When both limit and
            offset are non-positive only the total is computed.
        """
        conditions = self._search_conditions(storage, extensions, days)

        with self.get_index_session() as session, self._index_errors("search"):
            total = self._count(session, conditions)
            if limit <= 0 and offset <= 0:
                return [], total

            query = (
                select(IndexedFile)
                .where(*conditions)
                .order_by(IndexedFile.mtime.desc(), IndexedFile.path)
            )
            if limit > 0:
                query = query.limit(limit)
            if offset > 0:
                query = query.offset(offset)
            page = [_row_to_entry(row) for row in session.execute(query).scalars()]

        return page, total

    def recent(self, storage: str, limit: int = 20, offset: int = 0) -> list[FileEntry]:
        """Most recently modified visible files of a storage."""
        if limit <= 0:
            return []
        query = (
            select(IndexedFile)
            .where(*self._visible_files(storage))
            .order_by(IndexedFile.mtime.desc(), IndexedFile.path)
            .limit(limit)
            .offset(max(offset, 0))
        )
        with self.get_index_session() as session, self._index_errors("recent"):
            return [_row_to_entry(row) for row in session.execute(query).scalars()]

    def stats(self, storage: str, groups: Mapping[str, Iterable[str]]) -> dict[str, int]:
        """Count visible files per extension group.

        A requested ``"others"`` group is the total minus every named group,
        floored at zero so overlapping groups cannot make it negative. A named
        group without extensions counts nothing.
        """
        stats: dict[str, int] = {}
        with self.get_index_session() as session, self._index_errors("stats"):
            known = 0
            for group, extensions in groups.items():
                if group == OTHERS_GROUP:
                    continue
                if not normalize_extensions(extensions):
                    stats[group] = 0
                    continue
                count = self._count(session, self._search_conditions(storage, extensions))
                stats[group] = count
                known += count

            if OTHERS_GROUP in groups:
                total = self._count(session, self._visible_files(storage))
                stats[OTHERS_GROUP] = max(total - known, 0)

        return stats

    def count(self, storage: str) -> int:
        """Number of rows (files and directories) indexed for a storage."""
        with self.get_index_session() as session, self._index_errors("count"):
            return self._count(session, [IndexedFile.storage == storage])

    def paths(self, storage: str) -> set[str]:
        query = select(IndexedFile.path).where(IndexedFile.storage == storage)
        with self.get_index_session() as session, self._index_errors("paths"):
            return set(session.execute(query).scalars())

    def indexed_at(self, storage: str) -> datetime | None:
        """When the last successful rebuild of a storage committed."""
        with self.get_index_session() as session, self._index_errors("status"):
            meta = session.get(IndexMeta, f"indexed_at:{storage}")
            if meta is None or meta.value is None:
                return None
            return datetime.fromisoformat(meta.value)
