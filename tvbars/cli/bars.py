"""Materialized bar commands."""

from __future__ import annotations

from dataclasses import asdict

import typer

from tvbars.core.materializer import BarSink

from .utils import cli_store, prepare_output

bars_app = typer.Typer(help="Materialized bar operations.")

TABLE_COLUMNS = [
    "dedup",
    "symbol",
    "tf_sec",
    "tf",
    "t_close_ms",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "raw_event_id",
]


def register(app: typer.Typer) -> None:
    """Register the bars command group on the provided application."""

    app.add_typer(bars_app, name="bars", help="Inspect materialized bars")


@bars_app.command("export")
def export_command(
    ctx: typer.Context,
    symbol: str | None = typer.Option(None, "--symbol", help="Only bars for this symbol."),
    tf_sec: int | None = typer.Option(None, "--tf-sec", help="Only bars with this timeframe in seconds."),
    limit: int = typer.Option(5000, "--limit", help="Maximum bars, clamped to [1, 20000]."),
) -> None:
    """Export bars, newest close first. JSONL output carries every column."""

    formatter, stream, stack, options = prepare_output(ctx)
    with stack, cli_store(ctx) as store:
        bars = BarSink(store).export(symbol=symbol, tf_sec=tf_sec, limit=limit)
        rows = [asdict(bar) for bar in bars]
        columns = TABLE_COLUMNS if options.format == "table" else None
        formatter.render(rows, stream=stream, columns=columns)


__all__ = ["bars_app", "export_command", "register"]
