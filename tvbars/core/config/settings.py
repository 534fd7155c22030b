"""Configuration management for the tvbars worker and CLI."""

import os
import tomllib
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from tvbars.core.exceptions import ConfigurationError

ENV_PREFIX = "TVBARS_"
MEMORY_DATABASE = ":memory:"

BATCH_SIZE_BOUNDS = (1, 10_000)
IDLE_SLEEP_BOUNDS = (0.01, 300.0)
ERROR_BACKOFF_BOUNDS = (0.01, 600.0)
LOCK_TIMEOUT_BOUNDS = (0.0, 600.0)
CYCLE_TIMEOUT_BOUNDS = (0.1, 3600.0)


def _check_bounds(name: str, value: float, bounds: tuple[float, float]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ConfigurationError(f"{name} must be within [{low}, {high}], got {value}", setting=name)


@dataclass
class StoreConfig:
    """Backing store location and connection settings."""

    database: str = ""
    read_only: bool = False
    pragmas: dict[str, Any] = field(default_factory=lambda: {"threads": 1})

    def validate(self) -> None:
        if not self.database or not str(self.database).strip():
            raise ConfigurationError(
                "store database is not configured; set TVBARS_DATABASE or [store].database",
                setting="store.database",
            )


@dataclass
class MaterializerConfig:
    """Cadence and batching of the materializer loop."""

    batch_size: int = 300
    idle_sleep_seconds: float = 5.0
    error_backoff_seconds: float = 5.0
    route_tag: str = "/tv"
    lock_timeout_seconds: float = 10.0
    cycle_timeout_seconds: float = 60.0

    def validate(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ConfigurationError("batch_size must be an integer", setting="batch_size")
        _check_bounds("batch_size", self.batch_size, BATCH_SIZE_BOUNDS)
        _check_bounds("idle_sleep_seconds", self.idle_sleep_seconds, IDLE_SLEEP_BOUNDS)
        _check_bounds("error_backoff_seconds", self.error_backoff_seconds, ERROR_BACKOFF_BOUNDS)
        _check_bounds("lock_timeout_seconds", self.lock_timeout_seconds, LOCK_TIMEOUT_BOUNDS)
        _check_bounds("cycle_timeout_seconds", self.cycle_timeout_seconds, CYCLE_TIMEOUT_BOUNDS)
        if self.lock_timeout_seconds > self.cycle_timeout_seconds:
            # The checkpoint lock wait has to fit inside one cycle.
            raise ConfigurationError(
                "lock_timeout_seconds must not exceed cycle_timeout_seconds",
                setting="lock_timeout_seconds",
                details={"cycle_timeout_seconds": self.cycle_timeout_seconds},
            )
        if not self.route_tag or not self.route_tag.strip():
            raise ConfigurationError("route_tag must be a non-empty string", setting="route_tag")


@dataclass
class LoggingConfig:
    """Logging sink settings."""

    level: str = "INFO"
    file: str | None = None


@dataclass
class TvBarsConfig:
    """Top level tvbars configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    materializer: MaterializerConfig = field(default_factory=MaterializerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: Mapping[str, Any]) -> "TvBarsConfig":
        """Build a configuration from a nested mapping."""
        try:
            store = StoreConfig(**config_dict.get("store", {}))
            materializer = MaterializerConfig(**config_dict.get("materializer", {}))
            logging_config = LoggingConfig(**config_dict.get("logging", {}))
        except TypeError as exc:
            raise ConfigurationError(f"unknown configuration key: {exc}") from exc
        return cls(store=store, materializer=materializer, logging=logging_config)

    def to_dict(self) -> dict[str, Any]:
        return {
            "store": asdict(self.store),
            "materializer": asdict(self.materializer),
            "logging": asdict(self.logging),
        }

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if any section is invalid."""
        self.store.validate()
        self.materializer.validate()


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, Mapping):
            target[key] = _deep_update(dict(target.get(key, {})), value)
        else:
            target[key] = value
    return target


class ConfigManager:
    """Loads configuration from an optional TOML file plus environment overrides."""

    def __init__(self, config_path: Path | None = None, environ: Mapping[str, str] | None = None):
        """Initialise the manager.

        Args:
            config_path: TOML file to read. Missing files are ignored unless
                the path was given explicitly.
            environ: Environment mapping, defaults to ``os.environ``.
        """
        self.config_path = config_path
        self._environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> TvBarsConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigurationError(f"config file {self.config_path} does not exist", setting="config")
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigurationError(f"failed to load config from {self.config_path}: {exc}") from exc
        _deep_update(config_dict, load_config_from_env(self._environ))
        return TvBarsConfig.from_dict(config_dict)

    def get_config(self) -> TvBarsConfig:
        """Return the loaded configuration, validated."""
        self.config.validate()
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Apply nested overrides, e.g. ``update_config(materializer={"batch_size": 10})``."""
        config_dict = _deep_update(self.config.to_dict(), updates)
        self.config = TvBarsConfig.from_dict(config_dict)


def _parse(name: str, raw: str, kind: type) -> Any:
    try:
        if kind is bool:
            return raw.strip().lower() in {"1", "true", "yes", "on"}
        return kind(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} has invalid value {raw!r}", setting=name) from exc


_ENV_FIELDS: tuple[tuple[str, str, str, type], ...] = (
    ("DATABASE", "store", "database", str),
    ("READ_ONLY", "store", "read_only", bool),
    ("BATCH_SIZE", "materializer", "batch_size", int),
    ("IDLE_SLEEP_SECONDS", "materializer", "idle_sleep_seconds", float),
    ("ERROR_BACKOFF_SECONDS", "materializer", "error_backoff_seconds", float),
    ("ROUTE_TAG", "materializer", "route_tag", str),
    ("LOCK_TIMEOUT_SECONDS", "materializer", "lock_timeout_seconds", float),
    ("CYCLE_TIMEOUT_SECONDS", "materializer", "cycle_timeout_seconds", float),
    ("LOG_LEVEL", "logging", "level", str),
    ("LOG_FILE", "logging", "file", str),
)


def load_config_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``TVBARS_*`` overrides into a nested configuration mapping."""
    environ = os.environ if environ is None else environ
    config: dict[str, Any] = {}
    for suffix, section, key, kind in _ENV_FIELDS:
        name = ENV_PREFIX + suffix
        raw = environ.get(name)
        if raw is None:
            continue
        config.setdefault(section, {})[key] = _parse(name, raw, kind)
    return config
