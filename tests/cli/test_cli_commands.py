from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tvbars.cli.constants import CONFIG_EXIT_CODE, SYSTEM_EXIT_CODE
from tvbars.cli.main import create_app

SCENARIO_BODY = json.dumps(
    {
        "records": [
            {"kind": "BAR", "dedup": "BAR|X|15|100", "symbol": "X", "tf_sec": 15, "close": 101.5, "t_close_ms": 100},
            {"kind": "OTHER"},
        ]
    }
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def env(tmp_path: Path) -> dict[str, str]:
    return {
        "TVBARS_DATABASE": str(tmp_path / "tvbars.duckdb"),
        "TVBARS_IDLE_SLEEP_SECONDS": "0.01",
        "TVBARS_ERROR_BACKOFF_SECONDS": "0.01",
    }


def _jsonl(text: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _invoke(runner: CliRunner, env: dict[str, str], *args: str, input: str | None = None):  # type: ignore[no-untyped-def]
    return runner.invoke(
        create_app(),
        ["--format", "jsonl", "--log-level", "ERROR", *args],
        env=env,
        input=input,
    )


def test_schema_init_is_repeatable(runner: CliRunner, env: dict[str, str]) -> None:
    app = create_app()

    first = runner.invoke(app, ["--no-color", "--log-level", "ERROR", "schema", "init"], env=env)
    second = _invoke(runner, env, "schema", "init")

    assert first.exit_code == 0, first.output
    assert "raw_events" in first.output
    assert second.exit_code == 0, second.output
    rows = _jsonl(second.stdout)
    assert {row["table"] for row in rows} == {"raw_events", "materializer_state", "bars"}
    assert {"table": "materializer_state", "rows": 1} in rows


def test_append_materialize_and_export(runner: CliRunner, env: dict[str, str], tmp_path: Path) -> None:
    body_file = tmp_path / "body.json"
    body_file.write_text(SCENARIO_BODY, encoding="utf-8")

    appended = _invoke(runner, env, "events", "append", "--file", str(body_file))
    assert appended.exit_code == 0, appended.output
    event = _jsonl(appended.stdout)[0]
    assert event["path"] == "/tv"
    assert event["parse_ok"] is True

    once = _invoke(runner, env, "materialize", "once")
    assert once.exit_code == 0, once.output
    cycle = _jsonl(once.stdout)[0]
    assert cycle["fetched"] == 1
    assert cycle["inserted"] == 1
    assert cycle["checkpoint_after"] == event["id"]

    exported = _invoke(runner, env, "bars", "export", "--symbol", "X")
    assert exported.exit_code == 0, exported.output
    bars = _jsonl(exported.stdout)
    assert len(bars) == 1
    assert bars[0]["dedup"] == "BAR|X|15|100"
    assert bars[0]["close"] == 101.5
    assert bars[0]["payload"]["kind"] == "BAR"

    status = _invoke(runner, env, "materialize", "status")
    assert status.exit_code == 0, status.output
    row = _jsonl(status.stdout)[0]
    assert row["last_raw_event_id"] == event["id"]
    assert row["pending"] == 0
    assert row["bars"] == 1


def test_append_from_stdin_keeps_unparseable_body(runner: CliRunner, env: dict[str, str]) -> None:
    appended = _invoke(runner, env, "events", "append", "--path", "/other", input="not json")
    assert appended.exit_code == 0, appended.output
    assert _jsonl(appended.stdout)[0]["parse_ok"] is False

    exported = _invoke(runner, env, "events", "export", "--minutes", "5")
    events = _jsonl(exported.stdout)
    assert events[0]["path"] == "/other"
    assert events[0]["payload"] == {"_parse_ok": False, "_error": "json_parse_failed", "_raw": "not json"}

    counted = _invoke(runner, env, "events", "count", "--path", "/tv")
    assert _jsonl(counted.stdout) == [{"path": "/tv", "count": 0}]


def test_materialize_run_stops_after_max_cycles(runner: CliRunner, env: dict[str, str]) -> None:
    _invoke(runner, env, "events", "append", input=SCENARIO_BODY)

    result = _invoke(runner, env, "materialize", "run", "--max-cycles", "2")

    assert result.exit_code == 0, result.output
    summary = _jsonl(result.stdout)[0]
    assert summary["cycles"] == 2
    assert summary["failures"] == 0
    assert summary["state"] == "stopped"


def test_materialize_run_writes_metrics_file(runner: CliRunner, env: dict[str, str], tmp_path: Path) -> None:
    _invoke(runner, env, "events", "append", input=SCENARIO_BODY)
    metrics_file = tmp_path / "tvbars.prom"

    result = _invoke(runner, env, "materialize", "run", "--max-cycles", "2", "--metrics-file", str(metrics_file))

    assert result.exit_code == 0, result.output
    exposition = metrics_file.read_text(encoding="utf-8")
    assert 'tvbars_cycles_total{outcome="ok"} 1.0' in exposition
    assert 'tvbars_cycles_total{outcome="idle"} 1.0' in exposition
    assert "tvbars_bars_inserted_total 1.0" in exposition


def test_materialize_run_serves_metrics_on_port(
    runner: CliRunner,
    env: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    served: list[tuple[int, object]] = []
    monkeypatch.setattr(
        "tvbars.cli.materialize.start_http_server",
        lambda port, registry: served.append((port, registry)),
    )

    result = _invoke(runner, env, "materialize", "run", "--max-cycles", "1", "--metrics-port", "9464")

    assert result.exit_code == 0, result.output
    assert len(served) == 1
    port, registry = served[0]
    assert port == 9464
    assert registry.get_sample_value("tvbars_cycles_total", {"outcome": "idle"}) == 1.0


def test_materialize_run_reports_unavailable_metrics_port(
    runner: CliRunner,
    env: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def port_in_use(port, registry):  # type: ignore[no-untyped-def]
        raise OSError("Address already in use")

    monkeypatch.setattr("tvbars.cli.materialize.start_http_server", port_in_use)

    result = _invoke(runner, env, "materialize", "run", "--max-cycles", "1", "--metrics-port", "9464")

    assert result.exit_code == SYSTEM_EXIT_CODE
    assert "METRICS_PORT_UNAVAILABLE" in result.output


def test_output_option_writes_file(runner: CliRunner, env: dict[str, str], tmp_path: Path) -> None:
    target = tmp_path / "count.jsonl"

    result = runner.invoke(
        create_app(),
        ["--format", "jsonl", "--log-level", "ERROR", "--output", str(target), "events", "count"],
        env=env,
    )

    assert result.exit_code == 0, result.output
    assert _jsonl(target.read_text(encoding="utf-8")) == [{"path": "*", "count": 0}]


def test_missing_database_is_a_configuration_error(runner: CliRunner) -> None:
    result = runner.invoke(create_app(), ["--log-level", "ERROR", "materialize", "run"], env={"TVBARS_DATABASE": ""})

    assert result.exit_code == CONFIG_EXIT_CODE
    assert "CONFIGURATION_ERROR" in result.output


def test_out_of_bounds_setting_aborts(runner: CliRunner, env: dict[str, str]) -> None:
    result = _invoke(runner, {**env, "TVBARS_BATCH_SIZE": "0"}, "materialize", "once")

    assert result.exit_code == CONFIG_EXIT_CODE
    assert "batch_size" in result.output


def test_invalid_format_is_rejected(runner: CliRunner, env: dict[str, str]) -> None:
    result = runner.invoke(create_app(), ["--format", "xml", "events", "count"], env=env)

    assert result.exit_code == 2
