"""Load and validate .srp/config.yaml."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from srp_mcp.compaction.policy import POLICIES


# Default config values
DEFAULTS: dict[str, Any] = {
    "server": {
        "name": "SRP-MCP Server",
        "version": "1.0.0",
        "transport": "stdio",
        "host": "127.0.0.1",
        "port": 8080,
    },
    "database": {
        "path": ".srp/srp.db",
    },
    "compaction": {
        "enabled": True,
        "policy": "high_only",
    },
    "logging": {
        "level": "INFO",
    },
}

TRANSPORTS = ("stdio", "http", "sse")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Overrides database.path when set
DB_PATH_ENV = "SRP_DB_PATH"


class ConfigError(Exception):
    """Raised when config is invalid or missing."""


def _deep_merge(base: dict, override: dict) -> dict:
    """Return base with override merged in; nested mappings merge key by key.

    Neither argument is mutated and the result shares no mutable state
    with them.
    """
    result = copy.deepcopy(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = copy.deepcopy(val)
    return result


def _validate(config: dict) -> None:
    """Raise ConfigError on the first invalid setting."""
    for section in ("server", "database", "compaction", "logging"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")

    transport = config["server"].get("transport")
    if transport not in TRANSPORTS:
        raise ConfigError(
            f"Unsupported transport '{transport}'. Must be one of: {', '.join(TRANSPORTS)}"
        )

    port = config["server"].get("port")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ConfigError(f"'server.port' must be an integer in 1-65535, got {port!r}")

    db_path = config["database"].get("path")
    if not isinstance(db_path, str) or not db_path:
        raise ConfigError("'database.path' must be a non-empty string")

    policy = config["compaction"].get("policy")
    if policy not in POLICIES:
        raise ConfigError(
            f"Unknown compaction policy '{policy}'. Must be one of: {sorted(POLICIES)}"
        )

    level = str(config["logging"].get("level", "")).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(
            f"Invalid logging level '{config['logging'].get('level')}'. "
            f"Must be one of: {', '.join(LOG_LEVELS)}"
        )


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .srp/config.yaml under project_root.

    Uses the working directory when project_root is None. The result is
    DEFAULTS overlaid with the file, validated.
    """
    root = Path(project_root) if project_root else Path.cwd()
    config_path = root / ".srp" / "config.yaml"

    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(DEFAULTS, raw)
    _validate(config)
    return config


def resolve_db_path(config: dict, project_root: Path) -> Path:
    """Return the database file path.

    ``$SRP_DB_PATH`` wins over ``database.path``; relative paths resolve
    against project_root.
    """
    raw = os.environ.get(DB_PATH_ENV) or config["database"]["path"]
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = project_root / path
    return path


def log_level(config: dict) -> int:
    """Numeric logging level for ``logging.basicConfig``."""
    return getattr(logging, str(config["logging"]["level"]).upper())
