"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from pricewatch.core.exceptions import ConfigError
from pricewatch.core.models import Settings, StorageBackend


class PriceSourceConfig(BaseModel):
    """Steam Community Market price source configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://steamcommunity.com"
    currency: int = 3
    appid: int = 730
    request_timeout: float = 15.0
    max_requests_per_minute: int = 20
    user_agent: str = "Mozilla/5.0 (compatible; pricewatch/0.1)"

    @field_validator("max_requests_per_minute")
    @classmethod
    def rate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_requests_per_minute must be >= 1")
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v


class SchedulerConfig(BaseModel):
    """Pacing and backoff for the refresh scheduler."""

    model_config = ConfigDict(frozen=True)

    request_spacing_seconds: float = 2.5
    throttle_cooldown_seconds: float = 20.0
    max_cooldown_seconds: float = 120.0
    max_throttle_retries: int = 3
    poll_seconds: float = 60.0

    @field_validator(
        "request_spacing_seconds", "throttle_cooldown_seconds", "max_cooldown_seconds"
    )
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("max_throttle_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_throttle_retries must be >= 0")
        return v

    @field_validator("poll_seconds")
    @classmethod
    def poll_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def cooldown_within_cap(self) -> SchedulerConfig:
        if self.throttle_cooldown_seconds > self.max_cooldown_seconds:
            raise ValueError("throttle_cooldown_seconds must be <= max_cooldown_seconds")
        return self


class SnapshotConfig(BaseModel):
    """Daily snapshot coordinator configuration."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "Europe/Berlin"
    tick_seconds: float = 60.0
    idle_poll_seconds: float = 5.0

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v!r}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class StorageConfig(BaseModel):
    """Persistent store configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/pricewatch.db"
    namespace: str = "pricewatch"


class SyncConfig(BaseModel):
    """Remote mirror configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    endpoint: str | None = None
    api_token: str | None = None
    request_timeout: float = 15.0

    @model_validator(mode="after")
    def endpoint_required_when_enabled(self) -> SyncConfig:
        if self.enabled and not self.endpoint:
            raise ValueError("sync.endpoint is required when sync is enabled")
        return self


class APIConfig(BaseModel):
    """FastAPI status server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8000
    api_key: str | None = None
    run_scheduler: bool = False


class PricewatchConfig(BaseModel):
    """Root configuration for the entire pricewatch system."""

    model_config = ConfigDict(frozen=True)

    price_source: PriceSourceConfig = PriceSourceConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    snapshot: SnapshotConfig = SnapshotConfig()
    storage: StorageConfig = StorageConfig()
    sync: SyncConfig = SyncConfig()
    api: APIConfig = APIConfig()
    defaults: Settings = Settings()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "PRICEWATCH_",
) -> PricewatchConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (PRICEWATCH_SCHEDULER__POLL_SECONDS, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        PRICEWATCH_SYNC__ENABLED=true  ->  sync.enabled = True
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return PricewatchConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("PRICEWATCH_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from PRICEWATCH_CONFIG not found: {env_path}",
                context={"field": "PRICEWATCH_CONFIG", "value": env_path},
            )
        return p

    default = Path("pricewatch.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            else:
                target[part] = dict(target[part])
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
