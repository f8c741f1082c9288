"""Configuration: data directory resolution and ``config.yml`` loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import click
import yaml

logger = logging.getLogger(__name__)

APP_NAME = "daybook"
DATA_DIR_ENV = "DAYBOOK_DATA_DIR"
CONFIG_FILENAME = "config.yml"


def resolve_data_dir(explicit: Path | None = None) -> Path:
    """Return the root directory under which per-folder indexes live.

    Priority: *explicit* argument, ``DAYBOOK_DATA_DIR`` environment
    variable, then the platform application directory.
    """
    if explicit is not None:
        return explicit
    from_env = os.environ.get(DATA_DIR_ENV)
    if from_env:
        return Path(from_env).expanduser()
    return Path(click.get_app_dir(APP_NAME))


@dataclass(frozen=True)
class DaybookConfig:
    """Engine settings. Every field has a working default."""

    data_dir: Path
    # Minimum seconds between two opportunistic syncs of one folder.
    debounce_seconds: float = 5.0
    default_limit: int = 100
    # Snippet window: characters kept before the anchor, guaranteed after it,
    # and the minimum window length measured from the anchor start.
    context_before: int = 50
    context_after: int = 50
    context_window: int = 100
    prefix_last_term: bool = True
    watch_debounce_ms: int = 500


_NUMERIC_FIELDS: dict[str, type] = {
    "debounce_seconds": float,
    "default_limit": int,
    "context_before": int,
    "context_after": int,
    "context_window": int,
    "watch_debounce_ms": int,
}


def _coerce(key: str, value: Any) -> Any:
    """Validate one ``search`` section value. Returns ``None`` if invalid."""
    if key == "prefix_last_term":
        return value if isinstance(value, bool) else None
    expected = _NUMERIC_FIELDS[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0:
        return None
    return expected(value)


def load_config(data_dir: Path | None = None) -> DaybookConfig:
    """Load settings from ``<data_dir>/config.yml`` ``search`` section.

    Falls back to defaults for missing keys, invalid values or a missing
    or unreadable file.
    """
    resolved = resolve_data_dir(data_dir)
    config = DaybookConfig(data_dir=resolved)
    config_path = resolved / CONFIG_FILENAME
    if not config_path.is_file():
        return config

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default settings", config_path)
        return config

    if not isinstance(data, dict):
        return config

    section = data.get("search")
    if not isinstance(section, dict):
        return config

    known = {f.name for f in fields(DaybookConfig)} - {"data_dir"}
    overrides: dict[str, Any] = {}
    for key, value in section.items():
        if key not in known:
            logger.warning("Unknown setting search.%s in %s", key, config_path)
            continue
        coerced = _coerce(key, value)
        if coerced is None:
            logger.warning("Invalid value for search.%s: %r, using default", key, value)
            continue
        overrides[key] = coerced

    return replace(config, **overrides)
