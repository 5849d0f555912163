"""Configuration manager for CodeMap using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config
from .config import AnalysisSettings
from .errors import ConfigError

logger = logging.getLogger(__name__)

SECTION = "analysis"

_TUPLE_KEYS = {"include_extensions", "ignore_dirs"}
_INT_KEYS = {"coupling_threshold", "drift_window", "history_limit"}


def _config_file() -> Path:
    # Resolved at call time so tests can redirect CODEMAP_HOME
    return config.CONFIG_FILE


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = _config_file()
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc


def _save_full_config(payload: Dict[str, Any]) -> None:
    path = _config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(payload, f)


def _coerce(key: str, value: Any) -> Any:
    if key not in AnalysisSettings.keys():
        raise ConfigError(
            f"Unknown setting '{key}'. Valid keys: {', '.join(AnalysisSettings.keys())}"
        )
    if key in _TUPLE_KEYS:
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"Setting '{key}' must be a list of strings")
        return tuple(str(v) for v in value)
    if key in _INT_KEYS:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Setting '{key}' must be an integer, got {value!r}") from exc
        if number < 0:
            raise ConfigError(f"Setting '{key}' must not be negative")
        return number
    return str(value)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> AnalysisSettings:
    """Build analysis settings from defaults, the TOML file and explicit overrides.

    Args:
        overrides: Values that win over the file (e.g. CLI options).

    Returns:
        Fully populated AnalysisSettings.
    """
    section = load_full_config().get(SECTION, {})
    merged: Dict[str, Any] = {}
    for key, value in {**section, **(overrides or {})}.items():
        if value is None:
            continue
        merged[key] = _coerce(key, value)
    logger.debug("Loaded analysis settings: %s", merged)
    return AnalysisSettings(**merged)


def save_setting(key: str, value: Any) -> AnalysisSettings:
    """Persist a single analysis setting, preserving other sections.

    Returns:
        The settings as they will be loaded next time.
    """
    coerced = _coerce(key, value)
    payload = load_full_config()
    section = payload.setdefault(SECTION, {})
    section[key] = list(coerced) if isinstance(coerced, tuple) else coerced
    _save_full_config(payload)
    return load_settings()
