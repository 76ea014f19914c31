"""Bridge configuration stored in ``~/.agent-bridge/config.yaml``.

Manages:
- projects_root (where the agent engine writes session logs)
- session_limit (default number of sessions listed)
- log_level
"""

import logging
from pathlib import Path

import yaml

from agent_bridge.paths import config_path, default_projects_root

DEFAULT_SESSION_LIMIT = 8
DEFAULT_LOG_LEVEL = "INFO"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _read(hc_home: Path) -> dict:
    """Read config.yaml, returning empty dict if missing."""
    cp = config_path(hc_home)
    if cp.exists():
        return yaml.safe_load(cp.read_text()) or {}
    return {}


def _write(hc_home: Path, data: dict) -> None:
    """Write config.yaml (creates parent dirs if needed)."""
    cp = config_path(hc_home)
    cp.parent.mkdir(parents=True, exist_ok=True)
    cp.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))


# --- Projects root ---

def get_projects_root(hc_home: Path) -> Path | None:
    """Return the configured projects root, or None if not set."""
    val = _read(hc_home).get("projects_root")
    return Path(val).expanduser() if val else None


def set_projects_root(hc_home: Path, path: Path) -> None:
    """Set the directory scanned for persisted session logs."""
    data = _read(hc_home)
    data["projects_root"] = str(path)
    _write(hc_home, data)


def projects_root(hc_home: Path) -> Path:
    """Resolve the projects root: configured value, else the engine default."""
    return get_projects_root(hc_home) or default_projects_root()


# --- Session listing ---

def get_session_limit(hc_home: Path) -> int:
    """Return how many sessions ``sessions`` lists by default."""
    val = _read(hc_home).get("session_limit")
    if isinstance(val, int) and not isinstance(val, bool) and val > 0:
        return val
    return DEFAULT_SESSION_LIMIT


def set_session_limit(hc_home: Path, limit: int) -> None:
    """Set the default session listing limit.

    Raises:
        ValueError: If *limit* is not a positive integer.
    """
    if limit <= 0:
        raise ValueError(f"session_limit must be positive, got {limit}")
    data = _read(hc_home)
    data["session_limit"] = limit
    _write(hc_home, data)


# --- Logging ---

def get_log_level(hc_home: Path) -> int:
    """Return the configured log level as a ``logging`` constant."""
    name = str(_read(hc_home).get("log_level") or DEFAULT_LOG_LEVEL).upper()
    if name not in _LOG_LEVELS:
        name = DEFAULT_LOG_LEVEL
    return getattr(logging, name)


def set_log_level(hc_home: Path, level: str) -> None:
    """Set the log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Raises:
        ValueError: If *level* is not a known level name.
    """
    name = level.upper()
    if name not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level '{level}'")
    data = _read(hc_home)
    data["log_level"] = name
    _write(hc_home, data)
