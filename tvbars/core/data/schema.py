"""Table definitions for the raw event log, the checkpoint and the bars table."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from tvbars.core.data.storage.store import UnitOfWork

RAW_EVENTS_ID_SEQUENCE = "raw_events_id_seq"
CHECKPOINT_ROW_ID = 1

# Measurement columns carried by every bar, in storage order.
BAR_MEASUREMENT_FIELDS: tuple[str, ...] = (
    "open",
    "high",
    "low",
    "close",
    "volume",
    "spot_close",
    "oi_close",
    "funding_rate",
    "premium_pct",
    "premium_idx",
    "basis",
    "basis_pct",
    "long_accounts",
    "short_accounts",
    "liq_buy",
    "liq_sell",
)


@dataclass(frozen=True)
class ColumnDef:
    """Represents a DuckDB table column definition."""

    name: str
    data_type: str
    constraints: Sequence[str] = ()

    def render(self) -> str:
        return " ".join([self.name, self.data_type, *self.constraints])


@dataclass(frozen=True)
class IndexDef:
    """Secondary index on a table."""

    name: str
    columns: Sequence[str]

    def create_ddl(self, table: str) -> str:
        return f"CREATE INDEX IF NOT EXISTS {self.name} ON {table} ({', '.join(self.columns)})"


@dataclass(frozen=True)
class TableSchema:
    """Utility wrapper describing a DuckDB table schema."""

    name: str
    columns: Sequence[ColumnDef]
    primary_key: Sequence[str] = ()
    indexes: Sequence[IndexDef] = ()

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def create_ddl(self) -> str:
        column_defs: list[str] = [column.render() for column in self.columns]
        if self.primary_key:
            column_defs.append(f"PRIMARY KEY ({', '.join(self.primary_key)})")
        columns_sql = ",\n                ".join(column_defs)
        return f"""
            CREATE TABLE IF NOT EXISTS {self.name} (
                {columns_sql}
            )
            """.strip()

    def ensure(self, conn: DuckDBPyConnection) -> None:
        """Create the table and its indexes on the provided connection if missing."""

        conn.execute(self.create_ddl())
        for index in self.indexes:
            conn.execute(index.create_ddl(self.name))


RAW_EVENTS_TABLE = TableSchema(
    name="raw_events",
    columns=(
        ColumnDef("id", "BIGINT", (f"DEFAULT nextval('{RAW_EVENTS_ID_SEQUENCE}')",)),
        ColumnDef("received_at", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("path", "VARCHAR", ("NOT NULL",)),
        ColumnDef("payload", "JSON", ("NOT NULL",)),
    ),
    primary_key=("id",),
)

MATERIALIZER_STATE_TABLE = TableSchema(
    name="materializer_state",
    columns=(
        ColumnDef("id", "INTEGER"),
        ColumnDef("last_raw_event_id", "BIGINT", ("NOT NULL", "DEFAULT 0")),
        ColumnDef("updated_at", "TIMESTAMP", ("NOT NULL",)),
    ),
    primary_key=("id",),
)

BARS_TABLE = TableSchema(
    name="bars",
    columns=(
        ColumnDef("dedup", "VARCHAR"),
        ColumnDef("raw_event_id", "BIGINT", ("NOT NULL",)),
        ColumnDef("received_at", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("symbol", "VARCHAR", ("NOT NULL",)),
        ColumnDef("tf_sec", "INTEGER", ("NOT NULL",)),
        ColumnDef("tf", "VARCHAR"),
        ColumnDef("t_open_ms", "BIGINT"),
        ColumnDef("t_close_ms", "BIGINT"),
        *(ColumnDef(name, "DOUBLE") for name in BAR_MEASUREMENT_FIELDS),
        ColumnDef("payload", "JSON", ("NOT NULL",)),
    ),
    primary_key=("dedup",),
    indexes=(
        IndexDef("bars_symbol_tf_close_idx", ("symbol", "tf_sec", "t_close_ms")),
        IndexDef("bars_received_at_idx", ("received_at",)),
    ),
)


def core_tables() -> Sequence[TableSchema]:
    """Return the schemas required by the materializer, in creation order."""

    return (RAW_EVENTS_TABLE, MATERIALIZER_STATE_TABLE, BARS_TABLE)


def create_core_ddl() -> Iterable[str]:
    """Yield every statement issued by :func:`ensure_core_tables`."""

    yield f"CREATE SEQUENCE IF NOT EXISTS {RAW_EVENTS_ID_SEQUENCE} START 1"
    for table in core_tables():
        yield table.create_ddl()
        for index in table.indexes:
            yield index.create_ddl(table.name)


def ensure_core_tables(conn: DuckDBPyConnection | UnitOfWork) -> None:
    """Create the log, checkpoint and bars tables and seed the checkpoint row.

    ``conn`` may be a raw connection or an open unit of work; both expose
    ``execute(sql, params)``.
    """

    conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {RAW_EVENTS_ID_SEQUENCE} START 1")
    for table in core_tables():
        table.ensure(conn)
    conn.execute(
        "INSERT INTO materializer_state (id, last_raw_event_id, updated_at) VALUES (?, 0, ?) "
        "ON CONFLICT (id) DO NOTHING",
        [CHECKPOINT_ROW_ID, utc_now()],
    )


def utc_now() -> datetime:
    """Naive UTC timestamp, the representation stored in TIMESTAMP columns."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware timestamp to naive UTC; naive values are assumed UTC."""

    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
