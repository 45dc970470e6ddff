"""Persistent JSON config helpers.

Stores server address, data directory, watcher and reconnect timings.
All access is defensive: malformed or missing config falls back safely, and
``DOCSPACE_*`` environment variables override file values.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "docspace"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
DEFAULT_DATA_DIR = Path(user_data_dir(APP_NAME, appauthor=False))

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    data_dir: Path = DEFAULT_DATA_DIR
    host: str = "127.0.0.1"
    port: int = 8080
    watch_poll_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    reconnect_base_seconds: float = 0.5
    reconnect_max_seconds: float = 30.0
    event_queue_size: int = 1024
    show_hidden: bool = False
    log_level: str = "INFO"

    @property
    def spaces_file(self) -> Path:
        return self.data_dir / "spaces.json"

    @property
    def documents_dir(self) -> Path:
        return self.data_dir / "documents"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    path = config_path or CONFIG_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def _positive_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _port(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return parsed if 0 <= parsed <= 65535 else None


def _non_empty_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _log_level(value: object) -> str | None:
    text = _non_empty_str(value)
    if text is None:
        return None
    upper = text.upper()
    return upper if upper in _LOG_LEVELS else None


def _apply(settings: Settings, raw: dict[str, object]) -> Settings:
    """Overlay valid values from ``raw``; invalid ones are dropped silently."""
    updates: dict[str, object] = {}

    data_dir = _non_empty_str(raw.get("data_dir"))
    if data_dir is not None:
        updates["data_dir"] = Path(data_dir).expanduser()
    host = _non_empty_str(raw.get("host"))
    if host is not None:
        updates["host"] = host
    port = _port(raw.get("port"))
    if port is not None:
        updates["port"] = port
    for key in (
        "watch_poll_seconds",
        "request_timeout_seconds",
        "reconnect_base_seconds",
        "reconnect_max_seconds",
    ):
        value = _positive_float(raw.get(key))
        if value is not None:
            updates[key] = value
    queue_size = raw.get("event_queue_size")
    if isinstance(queue_size, int) and not isinstance(queue_size, bool) and queue_size > 0:
        updates["event_queue_size"] = queue_size
    show_hidden = raw.get("show_hidden")
    if isinstance(show_hidden, bool):
        updates["show_hidden"] = show_hidden
    level = _log_level(raw.get("log_level"))
    if level is not None:
        updates["log_level"] = level

    return replace(settings, **updates) if updates else settings


def load_settings(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Resolve settings from defaults, the JSON config file, then environment."""
    settings = _apply(Settings(), load_config(config_path))
    env = os.environ if environ is None else environ
    overrides: dict[str, object] = {}
    for env_key, key in (
        ("DOCSPACE_DATA_DIR", "data_dir"),
        ("DOCSPACE_HOST", "host"),
        ("DOCSPACE_PORT", "port"),
        ("DOCSPACE_LOG_LEVEL", "log_level"),
    ):
        if env_key in env:
            overrides[key] = env[env_key]
    return _apply(settings, overrides)


__all__ = [
    "APP_NAME",
    "CONFIG_PATH",
    "DEFAULT_DATA_DIR",
    "Settings",
    "load_config",
    "load_settings",
]
