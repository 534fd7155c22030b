"""Materializer commands: run the worker loop, run one cycle, inspect progress."""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from pathlib import Path

import typer
from loguru import logger
from prometheus_client import start_http_server

from tvbars.core.data.raw_log import RawEventLog
from tvbars.core.exceptions import TvBarsError
from tvbars.core.materializer import BarSink, CheckpointStore, MaterializerLoop, MaterializerState
from tvbars.core.monitoring import MaterializerMetrics
from tvbars.core.worker import build_loop, run_worker

from .constants import SYSTEM_EXIT_CODE
from .utils import cli_store, emit_error, fail, load_config, prepare_output

materialize_app = typer.Typer(help="Materializer operations.")

CYCLE_COLUMNS = [
    "fetched",
    "inserted",
    "duplicates",
    "skipped_unknown",
    "skipped_invalid",
    "checkpoint_before",
    "checkpoint_after",
    "duration_ms",
]


def register(app: typer.Typer) -> None:
    """Register the materialize command group on the provided application."""

    app.add_typer(materialize_app, name="materialize", help="Materialize raw events into bars")


@materialize_app.command("run")
def run_command(
    ctx: typer.Context,
    max_cycles: int | None = typer.Option(
        None,
        "--max-cycles",
        min=1,
        help="Stop after this many cycles instead of running until interrupted.",
    ),
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        min=1,
        max=65535,
        help="Serve Prometheus metrics over HTTP on this port while the loop runs.",
    ),
    metrics_file: Path | None = typer.Option(
        None,
        "--metrics-file",
        dir_okay=False,
        help="Write the final Prometheus metrics to this file when the loop stops.",
    ),
) -> None:
    """Run the materializer loop until SIGINT/SIGTERM or ``--max-cycles``."""

    formatter, stream, stack, _ = prepare_output(ctx)
    config = load_config(ctx)
    metrics = MaterializerMetrics()
    with stack:
        if metrics_port is not None:
            try:
                start_http_server(metrics_port, registry=metrics.registry)
            except OSError as exc:
                emit_error(f"Unable to serve metrics on port {metrics_port}: {exc}", "METRICS_PORT_UNAVAILABLE")
                raise typer.Exit(code=SYSTEM_EXIT_CODE) from exc
            logger.info("serving metrics", port=metrics_port)
        try:
            loop = asyncio.run(run_worker(config, max_cycles=max_cycles, metrics=metrics))
        except TvBarsError as error:
            fail(error)
        finally:
            if metrics_file is not None:
                metrics_file.write_bytes(metrics.render())
        formatter.render([_run_summary(loop)], stream=stream)


def _run_summary(loop: MaterializerLoop | None) -> dict[str, object]:
    if loop is None:
        # Shutdown arrived before the store opened.
        return {"cycles": 0, "failures": 0, "state": MaterializerState.STOPPED.value, "checkpoint": None}
    return {
        "cycles": loop.cycles,
        "failures": loop.failures,
        "state": loop.state.value,
        "checkpoint": loop.last_result.checkpoint_after if loop.last_result else None,
    }


@materialize_app.command("once")
def once_command(ctx: typer.Context) -> None:
    """Run a single cycle; a failed cycle exits non-zero with the checkpoint unchanged."""

    formatter, stream, stack, _ = prepare_output(ctx)
    config = load_config(ctx)
    with stack, cli_store(ctx, config=config) as store:
        loop = build_loop(store, config)
        try:
            result = asyncio.run(loop.run_once())
        except TvBarsError as error:
            fail(error)
        formatter.render([asdict(result)], stream=stream, columns=CYCLE_COLUMNS)


@materialize_app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the checkpoint and how far the materializer is behind the log."""

    formatter, stream, stack, _ = prepare_output(ctx)
    config = load_config(ctx)
    route = config.materializer.route_tag
    with stack, cli_store(ctx, config=config) as store:
        try:
            checkpoint = CheckpointStore(store).read()
        except TvBarsError as error:
            fail(error)
        log = RawEventLog(store)
        row = {
            "route": route,
            "last_raw_event_id": checkpoint.last_raw_event_id,
            "updated_at": checkpoint.updated_at,
            "raw_events": log.count(route),
            "pending": log.count(route, after_id=checkpoint.last_raw_event_id),
            "bars": BarSink(store).count(),
        }
        formatter.render([row], stream=stream)


__all__ = ["materialize_app", "once_command", "register", "run_command", "status_command"]
