"""Discover and summarise persisted sessions.

The agent engine writes one log per session::

    <projects_root>/
      <project-slug>/
        <session_id>.jsonl

Discovery ranks logs by modification time, keeps the newest file per
session id and reads just enough of each log to find its working directory
and a display title.  A session with no recorded working directory cannot
be resumed and is left out.

Filesystem races (a log deleted between listing and stat) and unreadable
files are treated as "this candidate does not exist".
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from agent_bridge.config import projects_root as _configured_projects_root
from agent_bridge.history import iter_records, message_content_blocks
from agent_bridge.paths import SESSION_LOG_SUFFIX, home, session_log_path
from agent_bridge.types import PersistedSessionEntry

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 180
DEFAULT_LIMIT = 8

_CONTEXT_TAG_RE = re.compile(r"<context[\s\S]*", re.IGNORECASE)
_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Title derivation
# ---------------------------------------------------------------------------

def normalize_prompt_text(raw: str) -> str:
    """Strip a ``<context`` tag and everything after it, unwrap markdown
    links and collapse whitespace."""
    text = _CONTEXT_TAG_RE.sub(" ", raw)
    text = _MARKDOWN_LINK_RE.sub(r"\1", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_chars(text: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    # str indexing is per code point, so no character is ever split.
    return text[:max_chars]


def title_from_record(record: dict[str, Any]) -> str | None:
    """Title from a ``user`` record's text blocks, or None."""
    if record.get("type") != "user":
        return None
    message = record.get("message")
    if not isinstance(message, dict) or message.get("role") != "user":
        return None

    parts: list[str] = []
    for block in message_content_blocks(message):
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        if not isinstance(block.get("text"), str):
            continue
        cleaned = normalize_prompt_text(block["text"])
        if not cleaned:
            continue
        parts.append(cleaned)
        combined = " ".join(parts)
        if len(combined) >= TITLE_MAX_CHARS:
            return truncate_chars(combined)

    if not parts:
        return None
    return truncate_chars(" ".join(parts))


# ---------------------------------------------------------------------------
# Preview scan
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionPreview:
    cwd: str | None = None
    title: str | None = None


def preview_session_log(path: Path) -> SessionPreview:
    """Stream a log until both the first ``cwd`` and a title are found."""
    cwd: str | None = None
    title: str | None = None
    try:
        with open(path, encoding="utf-8", errors="replace") as fh:
            for record in iter_records(fh):
                value = record.get("cwd")
                if cwd is None and isinstance(value, str) and value.strip():
                    cwd = value.strip()
                if title is None:
                    title = title_from_record(record)
                if cwd is not None and title is not None:
                    break
    except OSError as exc:
        logger.debug("Cannot preview session log %s: %s", path, exc)
        return SessionPreview()
    return SessionPreview(cwd=cwd, title=title)


# ---------------------------------------------------------------------------
# Directory scanning
# ---------------------------------------------------------------------------

def _projects_root(root: Path | None) -> Path:
    return root if root is not None else _configured_projects_root(home())


def _project_dirs(root: Path) -> list[Path]:
    try:
        return sorted(p for p in root.iterdir() if p.is_dir())
    except OSError as exc:
        logger.debug("Cannot list projects root %s: %s", root, exc)
        return []


def _mtime_ms(path: Path) -> float | None:
    try:
        return path.stat().st_mtime_ns / 1_000_000
    except OSError:
        return None


def _iso_from_ms(ms: float) -> str:
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class _Candidate:
    session_id: str
    path: Path
    sort_ms: float


def _scan_candidates(root: Path) -> list[_Candidate]:
    candidates: list[_Candidate] = []
    for project_dir in _project_dirs(root):
        try:
            names = os.listdir(project_dir)
        except OSError:
            continue
        for name in names:
            if not name.endswith(SESSION_LOG_SUFFIX):
                continue
            session_id = name[: -len(SESSION_LOG_SUFFIX)]
            if not session_id:
                continue
            path = project_dir / name
            if not path.is_file():
                continue
            mtime = _mtime_ms(path)
            if mtime is None or mtime <= 0:
                continue
            candidates.append(_Candidate(session_id, path, mtime))
    return candidates


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def list_recent_persisted_sessions(
    limit: int = DEFAULT_LIMIT,
    root: Path | None = None,
) -> list[PersistedSessionEntry]:
    """Most recently modified resumable sessions, newest first.

    Args:
        limit: Maximum number of entries returned.
        root: Projects root to scan.  Defaults to the configured root.
    """
    root = _projects_root(root)
    if limit <= 0 or not root.is_dir():
        return []

    candidates = _scan_candidates(root)
    candidates.sort(key=lambda c: c.sort_ms, reverse=True)

    entries: list[PersistedSessionEntry] = []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate.session_id in seen:
            continue
        seen.add(candidate.session_id)

        preview = preview_session_log(candidate.path)
        if not preview.cwd:
            logger.debug("Skipping session %s: no working directory", candidate.session_id)
            continue

        entries.append(PersistedSessionEntry(
            session_id=candidate.session_id,
            cwd=preview.cwd,
            file_path=str(candidate.path),
            title=preview.title,
            updated_at=_iso_from_ms(candidate.sort_ms),
            sort_ms=candidate.sort_ms,
        ))
        if len(entries) >= limit:
            break
    return entries


def is_valid_session_id(session_id: str) -> bool:
    """Reject ids that are blank or could escape a project directory."""
    return bool(session_id.strip()) and not any(
        token in session_id for token in ("/", "\\", "..")
    )


def resolve_persisted_session_entry(
    session_id: str,
    root: Path | None = None,
) -> PersistedSessionEntry | None:
    """Find the newest resumable log for *session_id*, or None."""
    if not is_valid_session_id(session_id):
        return None
    root = _projects_root(root)
    if not root.is_dir():
        return None

    best: PersistedSessionEntry | None = None
    for project_dir in _project_dirs(root):
        path = session_log_path(project_dir, session_id)
        if not path.is_file():
            continue
        preview = preview_session_log(path)
        if not preview.cwd:
            continue
        mtime = _mtime_ms(path) or 0.0
        if best is None or mtime >= best.sort_ms:
            best = PersistedSessionEntry(
                session_id=session_id,
                cwd=preview.cwd,
                file_path=str(path),
                title=preview.title,
                updated_at=_iso_from_ms(mtime) if mtime > 0 else None,
                sort_ms=mtime,
            )
    return best
