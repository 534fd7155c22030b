"""Helpers for creating configured DuckDB connections."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import duckdb

from tvbars.core.config import StoreConfig
from tvbars.core.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from duckdb import DuckDBPyConnection


class DuckDBFactory:
    """Factory that yields DuckDB connections configured from :class:`StoreConfig`."""

    def __init__(self, config: StoreConfig) -> None:
        config.validate()
        self._config = config

    @property
    def database(self) -> str:
        return str(self._config.database)

    def create_connection(self) -> DuckDBPyConnection:
        """Create and return a configured DuckDB connection.

        Raises:
            StoreError: If the database cannot be opened, e.g. because another
                process holds its write lock.
        """

        try:
            conn = duckdb.connect(database=self.database, read_only=self._config.read_only)
        except duckdb.Error as exc:
            raise StoreError(
                f"unable to open database {self.database}: {exc}",
                details={"database": self.database},
            ) from exc
        try:
            self._apply_pragmas(conn)
        except duckdb.Error as exc:
            conn.close()
            raise StoreError(f"unable to apply settings: {exc}", details={"database": self.database}) from exc
        except StoreError:
            conn.close()
            raise
        return conn

    @contextmanager
    def connection(self) -> Iterator[DuckDBPyConnection]:
        """Context manager that yields a configured DuckDB connection."""

        conn = self.create_connection()
        try:
            yield conn
        finally:
            conn.close()

    def _apply_pragmas(self, conn: DuckDBPyConnection) -> None:
        for setting, value in self._config.pragmas.items():
            if not setting.replace("_", "").isalnum():
                raise StoreError(f"invalid setting name {setting!r}", details={"setting": setting})
            conn.execute(f"SET {setting} = {_literal(value)}")


def _literal(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


__all__ = ["DuckDBFactory"]
