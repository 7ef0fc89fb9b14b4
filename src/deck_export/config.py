"""Configuration helpers shared across modules."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path
from typing import Any

from deck_export import utils

CONFIG_PATH = utils.CONFIG_FILE

DEFAULT_CONFIG: dict[str, Any] = {
    "log_level": "INFO",
    "temp_dir": "",
    "browser": {
        "executable_path": "",
        "temp_dir": "",
        "timeout_s": 30.0,
        "interrupt_grace_s": 2.0,
    },
    "retry": {
        "max_retries": 3,
        "initial_delay_s": 1.0,
        "max_delay_s": 30.0,
        "backoff_factor": 2.0,
        "retryable_errors": ["network", "timeout", "browser", "memory"],
    },
}


def coerce_float(value: object, default: float, *, minimum: float = 0.0) -> float:
    """Return ``value`` as a float not below ``minimum`` or ``default``."""
    if isinstance(value, bool):
        return default
    number: float
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if number < minimum:
        return default
    return number


def coerce_int(value: object, default: int, *, minimum: int = 0) -> int:
    """Return ``value`` as an int not below ``minimum`` or ``default``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            return default
    else:
        return default
    if number < minimum:
        return default
    return number


def coerce_str(value: object) -> str:
    """Return ``value`` stripped, treating ``None`` as empty."""
    if value is None:
        return ""
    return str(value).strip()


def section(cfg: Mapping[str, object] | None, name: str) -> Mapping[str, object]:
    """Return the mapping stored under ``name`` or an empty mapping."""
    if not isinstance(cfg, Mapping):
        return {}
    candidate = cfg.get(name)
    if isinstance(candidate, Mapping):
        return candidate
    return {}


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated with ``override`` one nesting level deep."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            current.update(value)
        else:
            base[key] = value
    return base


def load_config_at(path: Path) -> dict:
    """Load configuration from a specific path."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if path.exists():
        with suppress(Exception):
            data = json.loads(path.read_text())
            if isinstance(data, Mapping):
                _merge(cfg, data)
    return cfg


def save_config_at(path: Path, cfg: Mapping[str, Any]) -> None:
    """Persist configuration to a specific path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(cfg), indent=2))


def load_config() -> dict:
    """Load configuration using :data:`CONFIG_PATH`."""
    return load_config_at(CONFIG_PATH)


def save_config(cfg: Mapping[str, Any]) -> None:
    """Persist configuration using :data:`CONFIG_PATH`."""
    save_config_at(CONFIG_PATH, cfg)


__all__ = [
    "CONFIG_PATH",
    "DEFAULT_CONFIG",
    "coerce_float",
    "coerce_int",
    "coerce_str",
    "load_config",
    "load_config_at",
    "save_config",
    "save_config_at",
    "section",
]
