"""Shared test fixtures for agent-bridge tests."""

import json
import os
from pathlib import Path

import pytest


SAMPLE_CWD = "/work/acme"


def _dump_lines(records) -> str:
    """Records may be dicts (dumped as JSON) or raw strings (written verbatim)."""
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    return "\n".join(lines) + "\n"


@pytest.fixture
def bridge_home(tmp_path, monkeypatch):
    """Isolated bridge home; AGENT_BRIDGE_HOME points at it."""
    hc_home = tmp_path / "bridge"
    hc_home.mkdir()
    monkeypatch.setenv("AGENT_BRIDGE_HOME", str(hc_home))
    return hc_home


@pytest.fixture
def projects_root(tmp_path):
    """Empty projects root (``~/.claude/projects`` stand-in)."""
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def write_log(tmp_path):
    """Return a helper that writes a JSONL log and returns its path."""

    def _write(path: Path, records) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_dump_lines(records), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_session(projects_root, write_log):
    """Return a helper that writes ``<project>/<session_id>.jsonl``.

    *mtime* (seconds since epoch) pins the modification time used for
    ranking.
    """

    def _write(project: str, session_id: str, records, mtime: float | None = None) -> Path:
        path = write_log(projects_root / project / f"{session_id}.jsonl", records)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


def user_record(text, cwd=SAMPLE_CWD, **extra):
    """A persisted user prompt record."""
    content = text if isinstance(text, list) else [{"type": "text", "text": text}]
    record = {"type": "user", "cwd": cwd, "message": {"role": "user", "content": content}}
    record.update(extra)
    return record


def assistant_record(content, message_id=None, usage=None, cwd=SAMPLE_CWD):
    """A persisted assistant record."""
    message = {"role": "assistant", "content": content}
    if message_id is not None:
        message["id"] = message_id
    if usage is not None:
        message["usage"] = usage
    return {"type": "assistant", "cwd": cwd, "message": message}
