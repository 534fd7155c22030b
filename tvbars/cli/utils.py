"""Utility helpers shared across CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, NoReturn, Sequence, TextIO

import typer

from tvbars.core.config import ConfigManager, TvBarsConfig
from tvbars.core.data.storage import EventStore
from tvbars.core.exceptions import (
    ConfigurationError,
    RecordValidationError,
    StoreError,
    TvBarsError,
)
from tvbars.core.logging import configure_logging
from tvbars.core.worker import open_store

from .constants import CONFIG_EXIT_CODE, STORE_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .formatters import Formatter, create_formatter


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    output_path: Path | None = None
    no_color: bool = False
    log_level: str | None = None
    config_path: Path | None = None


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    """Extract :class:`CLIOptions` from the Typer context object."""

    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        output_path=data.get("output_path"),
        no_color=bool(data.get("no_color", False)),
        log_level=data.get("log_level"),
        config_path=data.get("config_path"),
    )


def prepare_output(ctx: typer.Context) -> tuple[Formatter, TextIO, ExitStack, CLIOptions]:
    """Resolve formatter and writable stream for the current command."""

    options = get_cli_options(ctx)
    try:
        formatter = create_formatter(options.format, no_color=options.no_color)
    except ValueError as exc:  # pragma: no cover - validated at callback, safeguard for manual use
        emit_error(str(exc), "INVALID_FORMAT")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    stack = ExitStack()
    stream: TextIO
    if options.output_path is not None:
        try:
            stream = stack.enter_context(open(options.output_path, "w", encoding="utf-8"))
        except OSError as exc:
            stack.close()
            emit_error(f"Unable to open '{options.output_path}': {exc}", "OUTPUT_WRITE_ERROR")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        stream = sys.stdout

    return formatter, stream, stack, options


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = _sanitize_details(details)
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def exit_code_for(error: TvBarsError) -> int:
    if isinstance(error, ConfigurationError):
        return CONFIG_EXIT_CODE
    if isinstance(error, RecordValidationError):
        return VALIDATION_EXIT_CODE
    if isinstance(error, StoreError):
        return STORE_EXIT_CODE
    return SYSTEM_EXIT_CODE


def fail(error: TvBarsError) -> NoReturn:
    """Report ``error`` on stderr and exit with its exit code."""

    payload = error.to_payload()
    emit_error(payload["message"], payload["code"], details=payload["details"])
    raise typer.Exit(code=exit_code_for(error)) from error


def load_config(ctx: typer.Context) -> TvBarsConfig:
    """Load and validate configuration, reconfiguring logging from it.

    Exits with :data:`CONFIG_EXIT_CODE` when the configuration is invalid.
    """

    options = get_cli_options(ctx)
    try:
        config = ConfigManager(options.config_path).get_config()
    except ConfigurationError as error:
        fail(error)

    level = options.log_level or config.logging.level
    if config.logging.file:
        configure_logging(level, file_output=True, file_path=config.logging.file)
    else:
        configure_logging(level)
    return config


@contextmanager
def cli_store(
    ctx: typer.Context,
    *,
    config: TvBarsConfig | None = None,
    ensure_schema: bool = True,
) -> Iterator[EventStore]:
    """Open the configured store for the duration of a command."""

    config = config or load_config(ctx)
    try:
        store = open_store(config.store, ensure_schema=ensure_schema)
    except TvBarsError as error:
        fail(error)
    try:
        yield store
    finally:
        store.close()


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = [
    "CLIOptions",
    "cli_store",
    "emit_error",
    "exit_code_for",
    "fail",
    "get_cli_options",
    "load_config",
    "prepare_output",
]
