"""Load ThypressConfig from config.json if present.

Merges file config with CLI/environment overrides. Overrides win.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from thypress._errors import ConfigError
from thypress.config import CONFIG_KEYS, ThypressConfig

_MODES = ("dynamic", "static", "static_preview")

# Fields whose config.json value is a list but whose dataclass type is a tuple
_TUPLE_FIELDS = frozenset({"skip_dirs", "allowed_redirect_domains"})


def load_config(root: Path, **overrides: object) -> ThypressConfig:
    """Load ThypressConfig from root, merging config.json when present.

    Unknown config.json keys are kept in ``extras`` so themes can read
    them. ``PORT`` and ``THYPRESS_MODE`` from the environment are applied
    unless an explicit override is given.

    Raises:
        ConfigError: If ``PORT`` or ``THYPRESS_MODE`` is invalid.

    """
    root = Path(root).resolve()
    fields, extras = _split_config(read_config_file(root / "config.json"))
    merged: dict[str, Any] = {**fields, **_env_overrides(), **overrides}
    mode = merged.get("mode", "dynamic")
    if mode not in _MODES:
        msg = f"Invalid mode {mode!r}: expected one of {', '.join(_MODES)}"
        raise ConfigError(msg)
    return ThypressConfig(root=root, extras=extras, **merged)


def read_config_file(path: Path) -> dict[str, object]:
    """Read config.json. Returns an empty dict when absent or malformed."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        from thypress.console import error

        error(f"Error loading config.json: {exc}")
        error("Using default configuration")
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def parse_port(value: str) -> int:
    """Validate a PORT value (1-65535).

    Raises:
        ConfigError: If the value is not an integer in range.

    """
    try:
        port = int(value)
    except (TypeError, ValueError):
        msg = f"Invalid PORT value: {value!r}"
        raise ConfigError(msg) from None
    if not 1 <= port <= 65535:
        msg = f"Invalid PORT value: {value!r} (must be 1-65535)"
        raise ConfigError(msg)
    return port


def _env_overrides() -> dict[str, object]:
    result: dict[str, object] = {}
    port = os.environ.get("PORT")
    if port:
        result["port"] = parse_port(port)
        result["explicit_port"] = True
    mode = os.environ.get("THYPRESS_MODE")
    if mode:
        result["mode"] = mode
    return result


def _split_config(data: dict[str, object]) -> tuple[dict[str, object], dict[str, object]]:
    """Split config.json into dataclass fields and pass-through extras."""
    fields: dict[str, object] = {}
    extras: dict[str, object] = {}
    for key, value in data.items():
        attr = CONFIG_KEYS.get(key)
        if attr is None:
            extras[key] = value
            continue
        if attr in _TUPLE_FIELDS:
            if isinstance(value, str):
                value = (value,)
            elif isinstance(value, list):
                value = tuple(str(v) for v in value)
            else:
                continue
        elif attr == "reading_speed" or attr == "cache_max_size":
            try:
                value = int(value)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
        fields[attr] = value
    return fields, extras
