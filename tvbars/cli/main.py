"""Main entry point for the tvbars command line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from tvbars.core.logging import configure_logging

from .bars import register as register_bars_commands
from .events import register as register_events_commands
from .formatters import create_formatter
from .materialize import register as register_materialize_commands
from .schema import register as register_schema_commands

_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def create_app() -> typer.Typer:
    """Create a Typer application instance for tvbars."""

    app = typer.Typer(add_completion=False, help="tvbars raw event log and bar materializer")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format (table or jsonl).",
            show_default=True,
        ),
        output: Path | None = typer.Option(
            None,
            "--output",
            "-o",
            help="Write output to a file instead of stdout.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            help="Log level; defaults to the configured level (INFO).",
        ),
        no_color: bool = typer.Option(
            False,
            "--no-color",
            help="Disable colorized output for table format.",
        ),
        config: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help="TOML configuration file; TVBARS_* environment variables override it.",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            # Validate formatter eagerly for immediate feedback on invalid options
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        level = log_level.strip().upper() if log_level else None
        if level is not None and level not in _LOG_LEVELS:
            raise typer.BadParameter(f"Unsupported log level '{log_level}'.", param_hint="--log-level")

        ctx.obj.update(
            {
                "format": normalized_format,
                "output_path": output,
                "log_level": level,
                "no_color": no_color,
                "config_path": config,
            }
        )
        configure_logging(level or "INFO")

    register_schema_commands(app)
    register_materialize_commands(app)
    register_events_commands(app)
    register_bars_commands(app)
    return app


app = create_app()
