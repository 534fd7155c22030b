"""Storage primitives: connection factory and unit-of-work store handle."""

from tvbars.core.data.storage.duckdb_factory import DuckDBFactory
from tvbars.core.data.storage.store import EventStore, UnitOfWork

__all__ = ["DuckDBFactory", "EventStore", "UnitOfWork"]
