"""Centralized path computations for agent-bridge.

Bridge state lives under a single home directory (``~/.agent-bridge`` by
default).  The ``AGENT_BRIDGE_HOME`` environment variable overrides the
default for testing.

Layout::

    ~/.agent-bridge/
      config.yaml
      bridge.log

Session logs are owned by the agent engine, not the bridge.  They live
under ``~/.claude/projects/<project>/<session_id>.jsonl`` (or
``$CLAUDE_CONFIG_DIR/projects``).
"""

import os
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".agent-bridge"

SESSION_LOG_SUFFIX = ".jsonl"


def home(override: Path | None = None) -> Path:
    """Return the bridge home directory.

    Resolution order:
    1. *override* argument (used in tests)
    2. ``AGENT_BRIDGE_HOME`` environment variable
    3. ``~/.agent-bridge``
    """
    if override is not None:
        return override
    env = os.environ.get("AGENT_BRIDGE_HOME")
    if env:
        return Path(env)
    return _DEFAULT_HOME


def config_path(hc_home: Path) -> Path:
    """Bridge config: ``<home>/config.yaml``."""
    return hc_home / "config.yaml"


def log_path(hc_home: Path) -> Path:
    """Rotated bridge log: ``<home>/bridge.log``."""
    return hc_home / "bridge.log"


def default_projects_root() -> Path:
    """Directory holding one sub-directory of session logs per project.

    ``$CLAUDE_CONFIG_DIR/projects`` when set, else ``~/.claude/projects``.
    """
    env = os.environ.get("CLAUDE_CONFIG_DIR")
    if env:
        return Path(env) / "projects"
    return Path.home() / ".claude" / "projects"


def session_log_path(project_dir: Path, session_id: str) -> Path:
    """Path of a session's log inside one project directory."""
    return project_dir / f"{session_id}{SESSION_LOG_SUFFIX}"
