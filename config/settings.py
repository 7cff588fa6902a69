"""
Configuration loader for the message dispatcher.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class DispatchConfig:
    webhook_url: str = "https://httpbin.org/post"
    batch_size: int = 2
    poll_interval_s: float = 120.0      # one tick
    max_workers: int = 5                # concurrent sends per engine
    max_retries: int = 3
    retry_backoff_s: float = 0.1        # linear: attempt × unit
    request_timeout_s: float = 10.0
    shutdown_timeout_s: float = 30.0


@dataclass
class CacheConfig:
    backend: str = "memory"             # "memory" for dev, "redis" for production
    redis_url: str = "redis://localhost:6379/0"
    pool_size: int = 10
    message_ttl_s: float = 24 * 60 * 60
    message_key_prefix: str = "message:"
    rate_limit_prefix: str = "rate_limit:"
    rate_limit_max: int = 10
    rate_limit_window_s: float = 60.0
    max_retries: int = 3
    retry_backoff_s: float = 0.1


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///./messaging.db"        # postgresql:// | sqlite://
    store_backend: str = "memory"                # "sql" | "memory"


@dataclass
class Settings:
    app_name: str = "MessageDispatcher"
    debug: bool = False
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _merge(section: Any, raw: dict[str, Any]) -> Any:
    """Return a copy of a config dataclass with known keys overridden from raw."""
    values = {
        name: raw.get(name, getattr(section, name))
        for name in section.__dataclass_fields__
    }
    return type(section)(**values)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "DISPATCH_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "dispatch" in raw:
            settings.dispatch = _merge(settings.dispatch, raw["dispatch"] or {})
        if "cache" in raw:
            settings.cache = _merge(settings.cache, raw["cache"] or {})
        if "database" in raw:
            settings.database = _merge(settings.database, raw["database"] or {})

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None
