"""Row rendering for CLI output: a rich table for terminals, JSON Lines for pipes.

Stored timestamps are naive UTC, so the table shows them with a ``Z`` suffix
at millisecond precision. Prices and counts are right aligned. Raw payloads
are shown as compact JSON cut to :data:`PAYLOAD_PREVIEW_CHARS`; JSON Lines
output always carries the full document.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Sequence, TextIO, Union

from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table

PAYLOAD_PREVIEW_CHARS = 72

Row = Mapping[str, object]


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _utc_text(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return f"{value:%Y-%m-%d %H:%M:%S}.{value.microsecond // 1000:03d}Z"


def _preview(document: object) -> str:
    text = json.dumps(document, ensure_ascii=False, separators=(",", ":"), default=_json_default)
    if len(text) <= PAYLOAD_PREVIEW_CHARS:
        return text
    return text[: PAYLOAD_PREVIEW_CHARS - 3] + "..."


def format_cell(value: object) -> str:
    """Render a single value for a table cell."""

    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.10g}"
    if isinstance(value, datetime):
        return _utc_text(value)
    if isinstance(value, (dict, list)):
        return _preview(value)
    return str(value)


def _is_measure(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _measure_columns(rows: Sequence[Row], columns: Sequence[str]) -> set[str]:
    """Columns whose populated values are all numbers."""

    measures = set()
    for column in columns:
        values = [row.get(column) for row in rows if row.get(column) is not None]
        if values and all(_is_measure(value) for value in values):
            measures.add(column)
    return measures


@dataclass(slots=True)
class TableFormatter:
    no_color: bool = False

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        console = Console(file=stream, color_system=None if self.no_color else "auto", no_color=self.no_color)
        if not rows:
            console.print("No rows.")
            return

        columns = list(columns or rows[0].keys())
        measures = _measure_columns(rows, columns)
        table = Table(box=SIMPLE)
        for column in columns:
            if column in measures:
                table.add_column(column, justify="right", no_wrap=True)
            else:
                table.add_column(column, overflow="fold")
        for row in rows:
            table.add_row(*(format_cell(row.get(column)) for column in columns))
        console.print(table)


@dataclass(slots=True)
class JSONLFormatter:
    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        for row in rows:
            if columns:
                row = {column: row.get(column) for column in columns}
            stream.write(json.dumps(row, ensure_ascii=False, default=_json_default))
            stream.write("\n")
        stream.flush()


Formatter = Union[TableFormatter, JSONLFormatter]


def create_formatter(name: str, *, no_color: bool = False) -> Formatter:
    """Instantiate a formatter by name."""

    normalized = name.strip().lower()
    if normalized == "table":
        return TableFormatter(no_color=no_color)
    if normalized == "jsonl":
        return JSONLFormatter()
    msg = f"Unsupported format '{name}'. Available formats: table, jsonl."
    raise ValueError(msg)


__all__ = ["Formatter", "JSONLFormatter", "PAYLOAD_PREVIEW_CHARS", "TableFormatter", "create_formatter", "format_cell"]
