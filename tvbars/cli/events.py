"""Raw event log commands."""

from __future__ import annotations

from pathlib import Path

import typer

from tvbars.core.data.raw_log import RawEventLog, parse_webhook_body
from tvbars.core.exceptions import TvBarsError
from tvbars.core.models import RawEvent

from .constants import VALIDATION_EXIT_CODE
from .utils import cli_store, emit_error, fail, load_config, prepare_output

events_app = typer.Typer(help="Raw event log operations.")

EVENT_COLUMNS = ["id", "received_at", "path", "payload"]


def register(app: typer.Typer) -> None:
    """Register the events command group on the provided application."""

    app.add_typer(events_app, name="events", help="Append to and inspect the raw event log")


@events_app.command("append")
def append_command(
    ctx: typer.Context,
    file: Path | None = typer.Option(
        None,
        "--file",
        help="Read the webhook body from a file instead of stdin.",
    ),
    path: str | None = typer.Option(
        None,
        "--path",
        help="Route tag to record; defaults to the configured route tag.",
    ),
) -> None:
    """Append one webhook body to the log, keeping unparseable bodies as marker documents."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        body = _read_body(file)
    except OSError as exc:
        stack.close()
        emit_error(str(exc), "BODY_READ_ERROR")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    config = load_config(ctx)
    route = path or config.materializer.route_tag
    payload = parse_webhook_body(body)
    with stack, cli_store(ctx, config=config) as store:
        try:
            event = RawEventLog(store).append(payload, route)
        except TvBarsError as error:
            fail(error)
        row = _event_row(event)
        row["parse_ok"] = payload.get("_parse_ok", True)
        formatter.render([row], stream=stream, columns=["id", "received_at", "path", "parse_ok"])


@events_app.command("count")
def count_command(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help="Only count events on this route."),
) -> None:
    """Count raw events."""

    formatter, stream, stack, _ = prepare_output(ctx)
    with stack, cli_store(ctx) as store:
        count = RawEventLog(store).count(path)
        formatter.render([{"path": path or "*", "count": count}], stream=stream)


@events_app.command("export")
def export_command(
    ctx: typer.Context,
    minutes: int = typer.Option(60, "--minutes", help="Look-back window, clamped to [1, 1440]."),
    limit: int = typer.Option(5000, "--limit", help="Maximum events, clamped to [1, 20000]."),
) -> None:
    """Export recently received events, oldest first."""

    formatter, stream, stack, _ = prepare_output(ctx)
    with stack, cli_store(ctx) as store:
        events = RawEventLog(store).export_recent(minutes=minutes, limit=limit)
        formatter.render([_event_row(event) for event in events], stream=stream, columns=EVENT_COLUMNS)


def _read_body(file: Path | None) -> str:
    if file is None:
        return typer.get_text_stream("stdin").read()
    if not file.exists() or not file.is_file():
        msg = f"Body file '{file}' does not exist or is not a file."
        raise OSError(msg)
    return file.read_text(encoding="utf-8")


def _event_row(event: RawEvent) -> dict[str, object]:
    return {
        "id": event.id,
        "received_at": event.received_at,
        "path": event.path,
        "payload": event.payload,
    }


__all__ = ["append_command", "count_command", "events_app", "export_command", "register"]
