"""Schema provisioning command."""

from __future__ import annotations

import typer

from tvbars.core.data.schema import core_tables

from .utils import cli_store, prepare_output

schema_app = typer.Typer(help="Schema operations.")


def register(app: typer.Typer) -> None:
    """Register the schema command group on the provided application."""

    app.add_typer(schema_app, name="schema", help="Provision the materializer schema")


@schema_app.command("init")
def init_command(ctx: typer.Context) -> None:
    """Create missing tables and seed the checkpoint row. Safe to repeat."""

    formatter, stream, stack, _ = prepare_output(ctx)
    with stack, cli_store(ctx, ensure_schema=True) as store:
        rows: list[dict[str, object]] = []
        with store.reader() as cursor:
            for table in core_tables():
                count = cursor.execute(f"SELECT COUNT(*) FROM {table.name}").fetchone()
                rows.append({"table": table.name, "rows": int(count[0]) if count else 0})
        formatter.render(rows, stream=stream, columns=["table", "rows"])


__all__ = ["init_command", "register", "schema_app"]
