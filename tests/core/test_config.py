"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest

from tvbars.core.config import (
    ConfigManager,
    MaterializerConfig,
    StoreConfig,
    TvBarsConfig,
    load_config_from_env,
)
from tvbars.core.exceptions import ConfigurationError, ErrorCode


class TestMaterializerConfig:
    """Bounds checking of loop settings."""

    def test_defaults_are_valid(self):
        config = MaterializerConfig()
        config.validate()

        assert config.batch_size == 300
        assert config.idle_sleep_seconds == 5.0
        assert config.error_backoff_seconds == 5.0
        assert config.route_tag == "/tv"

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("batch_size", 0),
            ("batch_size", 10_001),
            ("batch_size", 2.5),
            ("idle_sleep_seconds", 0),
            ("error_backoff_seconds", 601),
            ("lock_timeout_seconds", -1),
            ("cycle_timeout_seconds", 0.01),
            ("route_tag", " "),
        ],
    )
    def test_out_of_bounds_values_are_rejected(self, field, value):
        config = MaterializerConfig(**{field: value})

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.error_code is ErrorCode.CONFIGURATION
        assert exc_info.value.setting == field

    def test_lock_timeout_may_not_exceed_cycle_timeout(self):
        config = MaterializerConfig(lock_timeout_seconds=30.0, cycle_timeout_seconds=20.0)

        with pytest.raises(ConfigurationError, match="must not exceed") as exc_info:
            config.validate()

        assert exc_info.value.setting == "lock_timeout_seconds"
        assert exc_info.value.details["cycle_timeout_seconds"] == 20.0

    def test_lock_timeout_equal_to_cycle_timeout_is_accepted(self):
        MaterializerConfig(lock_timeout_seconds=20.0, cycle_timeout_seconds=20.0).validate()


def test_store_requires_database():
    with pytest.raises(ConfigurationError):
        TvBarsConfig().validate()

    TvBarsConfig(store=StoreConfig(database=":memory:")).validate()


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigurationError):
        TvBarsConfig.from_dict({"materializer": {"batch": 10}})


def test_round_trip_through_dict():
    config = TvBarsConfig.from_dict({"store": {"database": "bars.duckdb"}, "materializer": {"batch_size": 50}})

    assert TvBarsConfig.from_dict(config.to_dict()) == config


def test_env_overrides_are_parsed():
    env = {
        "TVBARS_DATABASE": "/data/bars.duckdb",
        "TVBARS_BATCH_SIZE": "25",
        "TVBARS_IDLE_SLEEP_SECONDS": "0.5",
        "TVBARS_READ_ONLY": "true",
        "TVBARS_ROUTE_TAG": "/webhook",
        "TVBARS_LOG_LEVEL": "DEBUG",
        "UNRELATED": "x",
    }

    overrides = load_config_from_env(env)

    assert overrides == {
        "store": {"database": "/data/bars.duckdb", "read_only": True},
        "materializer": {"batch_size": 25, "idle_sleep_seconds": 0.5, "route_tag": "/webhook"},
        "logging": {"level": "DEBUG"},
    }


def test_env_parse_errors_are_configuration_errors():
    with pytest.raises(ConfigurationError) as exc_info:
        load_config_from_env({"TVBARS_BATCH_SIZE": "many"})

    assert exc_info.value.setting == "TVBARS_BATCH_SIZE"


def test_manager_merges_file_and_environment(tmp_path: Path):
    config_file = tmp_path / "tvbars.toml"
    config_file.write_text(
        '[store]\ndatabase = "file.duckdb"\n\n[materializer]\nbatch_size = 10\nroute_tag = "/file"\n',
        encoding="utf-8",
    )

    manager = ConfigManager(config_file, environ={"TVBARS_BATCH_SIZE": "20"})
    config = manager.get_config()

    assert config.store.database == "file.duckdb"
    assert config.materializer.batch_size == 20
    assert config.materializer.route_tag == "/file"


def test_manager_rejects_missing_explicit_file(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "absent.toml", environ={})


def test_manager_rejects_malformed_file(tmp_path: Path):
    config_file = tmp_path / "broken.toml"
    config_file.write_text("[store\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigManager(config_file, environ={})


def test_update_config_applies_nested_overrides():
    manager = ConfigManager(environ={"TVBARS_DATABASE": ":memory:"})

    manager.update_config(materializer={"batch_size": 7})

    assert manager.get_config().materializer.batch_size == 7
    assert manager.get_config().store.database == ":memory:"


def test_get_config_validates():
    manager = ConfigManager(environ={"TVBARS_DATABASE": ":memory:", "TVBARS_BATCH_SIZE": "0"})

    with pytest.raises(ConfigurationError):
        manager.get_config()
