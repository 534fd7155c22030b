"""Store handle and unit-of-work abstraction over a DuckDB database.

Every component receives an explicit :class:`EventStore`; there is no module
level connection. A :class:`UnitOfWork` wraps one DuckDB transaction on its
own cursor: it commits when the ``with`` block exits normally and rolls back
on any exception. Locks claimed through :meth:`UnitOfWork.claim` are held
until the transaction has finished.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import duckdb
from loguru import logger

from tvbars.core.data.schema import ensure_core_tables
from tvbars.core.data.storage.duckdb_factory import DuckDBFactory
from tvbars.core.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from duckdb import DuckDBPyConnection


def _statement_label(sql: str) -> str:
    return " ".join(sql.split())[:80]


class UnitOfWork:
    """One open transaction. Obtain instances from :meth:`EventStore.unit_of_work`."""

    def __init__(self, cursor: DuckDBPyConnection) -> None:
        self._cursor = cursor
        self._held: list[threading.Lock] = []

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> DuckDBPyConnection:
        """Run a parameterized statement inside the transaction."""
        try:
            return self._cursor.execute(sql, params) if params is not None else self._cursor.execute(sql)
        except duckdb.Error as exc:
            raise StoreError(
                f"statement failed: {exc}",
                details={"statement": _statement_label(sql), "error_type": type(exc).__name__},
            ) from exc

    def fetchone(self, sql: str, params: Sequence[Any] | None = None) -> tuple[Any, ...] | None:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        return self.execute(sql, params).fetchall()

    def claim(self, lock: threading.Lock, timeout: float) -> bool:
        """Acquire ``lock`` for the remainder of the transaction."""
        if not lock.acquire(timeout=timeout):
            return False
        self._held.append(lock)
        return True

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()


class EventStore:
    """Explicit handle on the database backing the raw log, checkpoint and bars."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self._conn = conn
        self._active: DuckDBPyConnection | None = None
        self._active_guard = threading.Lock()
        self.checkpoint_lock = threading.Lock()
        self.append_lock = threading.Lock()

    @classmethod
    def open(cls, factory: DuckDBFactory, *, ensure_schema: bool = True) -> EventStore:
        """Open the configured database and optionally provision the schema."""
        store = cls(factory.create_connection())
        if ensure_schema:
            store.ensure_schema()
        return store

    def ensure_schema(self) -> None:
        """Create missing tables and seed the checkpoint row."""
        with self.unit_of_work() as uow:
            ensure_core_tables(uow)
        logger.debug("materializer schema ensured")

    @contextmanager
    def unit_of_work(self, *, interruptible: bool = False) -> Iterator[UnitOfWork]:
        """Open a transaction that commits on success and rolls back on any error.

        An ``interruptible`` unit of work is the target of :meth:`interrupt`.
        """
        cursor = self._conn.cursor()
        if interruptible:
            with self._active_guard:
                self._active = cursor
        uow = UnitOfWork(cursor)
        try:
            uow.execute("BEGIN TRANSACTION")
            try:
                yield uow
            except BaseException:
                self._rollback(cursor)
                raise
            try:
                cursor.execute("COMMIT")
            except duckdb.Error as exc:
                self._rollback(cursor)
                raise StoreError(f"commit failed: {exc}", details={"error_type": type(exc).__name__}) from exc
        finally:
            uow._release()
            if interruptible:
                with self._active_guard:
                    self._active = None
            cursor.close()

    @contextmanager
    def reader(self) -> Iterator[DuckDBPyConnection]:
        """Yield a cursor for read-only queries outside any unit of work."""
        cursor = self._conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def interrupt(self) -> bool:
        """Interrupt the statement running in the active unit of work, if any."""
        with self._active_guard:
            active = self._active
        if active is None:
            return False
        active.interrupt()
        return True

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _rollback(cursor: DuckDBPyConnection) -> None:
        try:
            cursor.execute("ROLLBACK")
        except duckdb.Error as exc:
            # The transaction may already be aborted by the failing statement.
            logger.warning("rollback failed: {}", exc, error_type=type(exc).__name__)


__all__ = ["EventStore", "UnitOfWork"]
