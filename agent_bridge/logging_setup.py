"""Logging for the bridge process.

Everything goes to ``<home>/bridge.log`` (rotated), and to stderr as well
when the CLI runs with ``--verbose``.  Each line names the session it was
logged for::

    2024-05-01 12:00:00 [session:1f2e3d4c] INFO agent_bridge.history: Replayed 12 updates ...

Lines logged outside a session carry ``[bridge]``.

Usage::

    from agent_bridge.logging_setup import configure_logging, session_caller

    configure_logging(hc_home, verbose=True)
    with session_caller(session_id):
        ...
"""

import contextlib
import contextvars
import logging
import logging.handlers
from pathlib import Path
from typing import Iterator

from agent_bridge.config import get_log_level
from agent_bridge.paths import log_path

BRIDGE_CALLER = "bridge"

LOG_FORMAT = "%(asctime)s [%(caller)s] %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Handlers installed here carry this name so a reconfigure can find them.
_HANDLER_NAME = "agent-bridge"

log_caller: contextvars.ContextVar[str] = contextvars.ContextVar(
    "log_caller", default=BRIDGE_CALLER,
)


def caller_for_session(session_id: str) -> str:
    return f"session:{session_id[:8]}"


@contextlib.contextmanager
def session_caller(session_id: str) -> Iterator[str]:
    """Attribute log lines inside the block to *session_id*."""
    caller = caller_for_session(session_id)
    token = log_caller.set(caller)
    try:
        yield caller
    finally:
        log_caller.reset(token)


class _CallerFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.caller = log_caller.get()  # type: ignore[attr-defined]
        return True


def _bridge_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(_CallerFilter())
    return handler


def configure_logging(
    hc_home: Path,
    *,
    verbose: bool = False,
    level: int | None = None,
) -> Path:
    """Route root logging to the bridge log; returns the log file path.

    *level* defaults to the ``log_level`` in the bridge config.  Calling
    again replaces the handlers installed by the previous call.
    """
    if level is None:
        level = get_log_level(hc_home)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    hc_home.mkdir(parents=True, exist_ok=True)
    path = log_path(hc_home)
    root.addHandler(_bridge_handler(
        logging.handlers.RotatingFileHandler(
            str(path), maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        ),
        level,
    ))
    if verbose:
        root.addHandler(_bridge_handler(logging.StreamHandler(), level))
    return path
