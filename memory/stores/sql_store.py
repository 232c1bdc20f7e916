"""SQLite SQLAlchemy store wrapper and SQL-backed object store."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker

from memory.schemas import Base, BlobRecord
from memory.stores.object_store import BlobInfo, ObjectStore


class SQLStore:
    """Provides SQLAlchemy session management for SQLite persistence."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite+pysqlite:///{self.db_path}", future=True)
        self._session_factory = sessionmaker(bind=self.engine, future=True)

    def create_all(self) -> None:
        """Create all schema tables if missing."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits on success and rolls back on error."""
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()


class SQLObjectStore(ObjectStore):
    """Object store persisting blobs as rows of the ``blobs`` table."""

    def __init__(self, sql_store: SQLStore, container: str) -> None:
        self.sql_store = sql_store
        self.container = container

    def initialize(self) -> None:
        self.sql_store.create_all()

    def _find(self, sess: Session, path: str) -> BlobRecord | None:
        stmt = select(BlobRecord).where(
            BlobRecord.container == self.container, BlobRecord.path == path
        )
        return sess.scalars(stmt).first()

    def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        with self.sql_store.session() as sess:
            row = self._find(sess, path)
            if row is None:
                row = BlobRecord(container=self.container, path=path)
                sess.add(row)
            row.data = data
            row.metadata_json = dict(metadata or {})

    def get(self, path: str) -> bytes | None:
        with self.sql_store.session() as sess:
            row = self._find(sess, path)
            return None if row is None else bytes(row.data)

    def exists(self, path: str) -> bool:
        with self.sql_store.session() as sess:
            return self._find(sess, path) is not None

    def delete(self, path: str) -> bool:
        with self.sql_store.session() as sess:
            result = sess.execute(
                delete(BlobRecord).where(
                    BlobRecord.container == self.container, BlobRecord.path == path
                )
            )
            return bool(result.rowcount)

    def list_by_prefix(self, prefix: str) -> Iterator[BlobInfo]:
        with self.sql_store.session() as sess:
            stmt = (
                select(BlobRecord.path, BlobRecord.metadata_json)
                .where(
                    BlobRecord.container == self.container,
                    BlobRecord.path.startswith(prefix, autoescape=True),
                )
                .order_by(BlobRecord.path)
            )
            rows = [
                BlobInfo(path=path, metadata={str(k): str(v) for k, v in (meta or {}).items()})
                for path, meta in sess.execute(stmt)
            ]
        yield from rows
