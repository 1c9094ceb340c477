"""Per-project configuration (.idxprobe/config.json) and run settings.

Resolution order for every key (first match wins):

1. Command-line option.
2. Environment variable (``IDXPROBE_WORKERS``, ``IDXPROBE_FAIL_THRESHOLD``).
3. ``<project root>/.idxprobe/config.json``.
4. Built-in default.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from idxprobe.discovery import MIGRATION_ORDERS
from idxprobe.exit_codes import ConfigError

log = logging.getLogger(__name__)

CONFIG_DIR = ".idxprobe"
CONFIG_NAME = "config.json"

# Checked in order when ``migration_dirs`` is not configured.
MIGRATION_DIR_CANDIDATES = (
    "src/main/resources/db/migration",
    "db/migration",
    "migrations",
)

DEFAULTS: dict = {
    "source_dirs": ["."],
    "migration_dirs": None,
    "source_suffixes": [".java"],
    "migration_suffixes": [".sql"],
    "migration_order": "lexical",
    "workers": 4,
    "fail_threshold": None,
}

_ENV_OVERRIDES = {
    "IDXPROBE_WORKERS": "workers",
    "IDXPROBE_FAIL_THRESHOLD": "fail_threshold",
}


def find_project_root(start: str = ".") -> Path:
    """Find the project root by looking for .git directory."""
    current = Path(start).resolve()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent
    return Path(start).resolve()


def load_project_config(project_root: Path) -> dict:
    """Load .idxprobe/config.json if it exists.

    Returns an empty dict if the file is missing or malformed.
    """
    config_path = project_root / CONFIG_DIR / CONFIG_NAME
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warning("ignoring unreadable %s: %s", config_path, exc)
        return {}
    if not isinstance(data, dict):
        log.warning("ignoring %s: top-level value is not an object", config_path)
        return {}
    return data


def write_project_config(config: dict, project_root: Path | None = None) -> Path:
    """Write (or update) .idxprobe/config.json.

    Merges *config* into the existing config so existing keys are preserved.
    Returns the path of the written file.
    """
    if project_root is None:
        project_root = find_project_root()
    validate(config, partial=True)
    config_dir = project_root / CONFIG_DIR
    config_dir.mkdir(exist_ok=True)
    config_path = config_dir / CONFIG_NAME
    existing = load_project_config(project_root)
    existing.update(config)
    config_path.write_text(json.dumps(existing, indent=2, sort_keys=True), encoding="utf-8")
    return config_path


def _env_overrides() -> dict:
    out = {}
    for var, key in _ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw is None or raw.strip() == "":
            continue
        try:
            out[key] = int(raw)
        except ValueError:
            raise ConfigError(f"{var} must be an integer, got {raw!r}") from None
    return out


def validate(config: dict, partial: bool = False) -> dict:
    """Check value types; raises ConfigError on the first bad key."""
    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"unknown config key(s): {', '.join(unknown)}")

    for key in ("source_dirs", "migration_dirs", "source_suffixes", "migration_suffixes"):
        if key not in config or config[key] is None:
            continue
        value = config[key]
        if isinstance(value, str):
            value = [value]
            config[key] = value
        if isinstance(value, tuple):
            value = list(value)
            config[key] = value
        if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
            raise ConfigError(f"{key} must be a list of non-empty strings")

    order = config.get("migration_order")
    if order is not None and order not in MIGRATION_ORDERS:
        raise ConfigError(
            f"migration_order must be one of {', '.join(MIGRATION_ORDERS)}, got {order!r}"
        )

    workers = config.get("workers")
    if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int) or workers < 1):
        raise ConfigError(f"workers must be a positive integer, got {workers!r}")

    threshold = config.get("fail_threshold")
    if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0):
        raise ConfigError(f"fail_threshold must be a non-negative integer, got {threshold!r}")

    if not partial:
        for key in ("source_suffixes", "migration_suffixes"):
            if not config.get(key):
                raise ConfigError(f"{key} must not be empty")
    return config


def detect_migration_dirs(project_root: Path) -> list[str]:
    """Conventional migration directories that exist under *project_root*."""
    for candidate in MIGRATION_DIR_CANDIDATES:
        if (project_root / candidate).is_dir():
            return [candidate]
    return []


def load_settings(project_root: Path | None = None, overrides: dict | None = None) -> dict:
    """Effective settings: defaults < config file < environment < *overrides*.

    ``None`` values in *overrides* mean "not given on the command line".
    Relative directories are kept relative to *project_root*.
    """
    if project_root is None:
        project_root = find_project_root()
    settings = dict(DEFAULTS)
    settings.update(load_project_config(project_root))
    settings.update(_env_overrides())
    settings.update({k: v for k, v in (overrides or {}).items() if v is not None})
    validate(settings)
    if not settings.get("migration_dirs"):
        settings["migration_dirs"] = detect_migration_dirs(project_root)
    settings["project_root"] = str(project_root)
    return settings


def resolve_dir(project_root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else project_root / path
