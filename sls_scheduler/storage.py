"""SQLite-backed persistence for the production store."""

from __future__ import annotations

import logging
import pickle
import sqlite3
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Generic, Iterator, List, Optional, TypeVar

from .domain import (
    Job,
    Machine,
    Part,
    PartStageRequirement,
    ProductionStage,
    ProductionStageExecution,
)
from .repository import (
    DuplicateRecordError,
    ProductionStore,
    RecordNotFoundError,
    RepositoryError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(RepositoryError):
    """The database could not be reached or rejected a statement."""


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite."""

    def __init__(
        self,
        connection: sqlite3.Connection,
        table: str,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._connection = connection
        self._table = table
        self._lock = lock or threading.RLock()
        with self._cursor() as cursor:
            cursor.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                cursor = self._connection.cursor()
                yield cursor
                self._connection.commit()
            except sqlite3.Error as exc:
                try:
                    self._connection.rollback()
                except sqlite3.Error:
                    logger.debug("Rollback failed on table %s", self._table)
                logger.error("SQLite failure on table %s: %s", self._table, exc)
                raise StorageError(f"Database error on table {self._table!r}: {exc}") from exc

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT COUNT(1) FROM {self._table}")
            value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._lock:
            if item_id in self:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            with self._cursor() as cursor:
                cursor.execute(
                    f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
                    (item_id, payload),
                )

    def upsert(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._cursor() as cursor:
            cursor.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
                (item_id, payload),
            )

    def get(self, item_id: str) -> T:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(f"DELETE FROM {self._table} WHERE id = ?", (item_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT payload FROM {self._table} ORDER BY id")
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]


class SchedulerDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates."""

    def __init__(self, path: str) -> None:
        try:
            connection = sqlite3.connect(path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {path!r}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        self._connection = connection
        lock = threading.RLock()
        self.jobs = SQLiteRepository[Job](connection, "jobs", lock)
        self.machines = SQLiteRepository[Machine](connection, "machines", lock)
        self.parts = SQLiteRepository[Part](connection, "parts", lock)
        self.stages = SQLiteRepository[ProductionStage](connection, "stages", lock)
        self.requirements = SQLiteRepository[PartStageRequirement](
            connection, "part_stage_requirements", lock
        )
        self.executions = SQLiteRepository[ProductionStageExecution](
            connection, "stage_executions", lock
        )
        self._store = ProductionStore(
            job_repo=self.jobs,
            machine_repo=self.machines,
            part_repo=self.parts,
            stage_repo=self.stages,
            requirement_repo=self.requirements,
            execution_repo=self.executions,
        )
        logger.debug("Opened scheduler database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def create_store(self) -> ProductionStore:
        """Store over this database's tables.

        Every call returns the same store, so all callers share its
        transaction lock.
        """

        return self._store

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "SchedulerDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "SchedulerDatabase", "StorageError"]
