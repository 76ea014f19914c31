"""Replay a persisted session log into an ordered stream of session updates.

Session logs are append-only JSONL written by the agent engine, possibly
while we read them.  Replay is best-effort: blank, truncated or otherwise
malformed lines are skipped one at a time and the rest of the log still
replays.

Each log record may carry a message in one of two places:

* ``record["message"]``: the engine's own transcript records.
* ``record["data"]["message"]["message"]``: progress records that wrap a
  sub-agent's message.

Both are checked and both yield messages.  Blocks are translated in file
order:

==============  ===============  =========================================
block type      role             effect
==============  ===============  =========================================
thinking        any              ignored
text            user/assistant   role-tagged chunk (skipped if blank)
tool use        assistant        open tool call (``in_progress``) + create
tool result     any              ``tool_call_update``; merged when open
image           user/assistant   role-tagged ``[image]`` chunk
==============  ===============  =========================================

After each message a usage update is attempted, at most once per message
id per replay.

Usage::

    from agent_bridge.history import extract_session_history_updates

    for update in extract_session_history_updates(entry.file_path):
        send_to_host(update.to_dict())
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

from agent_bridge.tooling import (
    TOOL_RESULT_TYPES,
    build_tool_result_fields,
    create_tool_call,
    is_tool_use_block_type,
    merge_tool_result_fields,
)
from agent_bridge.types import (
    Role,
    SessionUpdate,
    ToolCall,
    ToolCallCreated,
    ToolCallStatus,
    ToolCallUpdated,
    text_chunk,
)
from agent_bridge.usage import build_usage_update

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[image]"


# ---------------------------------------------------------------------------
# Line parsing (shared with session discovery)
# ---------------------------------------------------------------------------

def parse_record(line: str) -> dict[str, Any] | None:
    """Parse one log line into a record dict, or None if unusable."""
    line = line.strip()
    if not line:
        return None
    try:
        parsed = json.loads(line)
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def iter_records(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Yield every parseable record, silently skipping the rest."""
    for line in lines:
        record = parse_record(line)
        if record is not None:
            yield record


def message_content_blocks(message: dict[str, Any]) -> list[Any]:
    """A message's content blocks.  Anything but a list has none."""
    content = message.get("content")
    return content if isinstance(content, list) else []


def message_candidates(record: dict[str, Any]) -> list[dict[str, Any]]:
    """Messages carried by a record: top-level first, then the nested wrapper."""
    candidates: list[dict[str, Any]] = []

    top = record.get("message")
    if isinstance(top, dict):
        candidates.append(top)

    data = record.get("data")
    outer = data.get("message") if isinstance(data, dict) else None
    nested = outer.get("message") if isinstance(outer, dict) else None
    if isinstance(nested, dict):
        candidates.append(nested)

    return candidates


# ---------------------------------------------------------------------------
# Replay state
# ---------------------------------------------------------------------------

@dataclass
class ReplayState:
    """Per-replay mutable state.  A fresh instance per replay call."""

    tool_calls: dict[str, ToolCall] = field(default_factory=dict)
    emitted_usage_ids: set[str] = field(default_factory=set)


@dataclass
class ReplayResult:
    updates: list[SessionUpdate]
    state: ReplayState


# ---------------------------------------------------------------------------
# Block handlers
# ---------------------------------------------------------------------------

def _push_text(updates: list[SessionUpdate], role: Role, text: str) -> None:
    if not text.strip():
        return
    updates.append(text_chunk(role, text))


def _push_tool_use(
    updates: list[SessionUpdate],
    state: ReplayState,
    block: dict[str, Any],
) -> None:
    tool_use_id = block.get("id")
    if not isinstance(tool_use_id, str) or not tool_use_id:
        return
    name = block.get("name") if isinstance(block.get("name"), str) else "Tool"
    tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}

    tool_call = create_tool_call(tool_use_id, name, tool_input)
    tool_call.status = ToolCallStatus.IN_PROGRESS
    state.tool_calls[tool_use_id] = tool_call
    updates.append(ToolCallCreated(tool_call.snapshot()))


def _push_tool_result(
    updates: list[SessionUpdate],
    state: ReplayState,
    block: dict[str, Any],
) -> None:
    tool_use_id = block.get("tool_use_id")
    if not isinstance(tool_use_id, str) or not tool_use_id:
        return
    fields = build_tool_result_fields(bool(block.get("is_error")), block.get("content"))
    # Orphan results are still emitted; only the merge needs an open call.
    updates.append(ToolCallUpdated(tool_use_id, fields))

    base = state.tool_calls.get(tool_use_id)
    if base is None:
        logger.debug("Tool result for unknown tool call %s", tool_use_id)
        return
    merge_tool_result_fields(base, fields)


def _push_usage(
    updates: list[SessionUpdate],
    state: ReplayState,
    message: dict[str, Any],
) -> None:
    message_id = message.get("id") if isinstance(message.get("id"), str) else ""
    if message_id and message_id in state.emitted_usage_ids:
        return

    usage_update = build_usage_update(message)
    if usage_update is None:
        return

    updates.append(usage_update)
    if message_id:
        state.emitted_usage_ids.add(message_id)


def _replay_message(
    updates: list[SessionUpdate],
    state: ReplayState,
    message: dict[str, Any],
) -> None:
    role = message.get("role")
    if role not in ("user", "assistant"):
        return

    for block in message_content_blocks(message):
        if not isinstance(block, dict):
            continue
        block_type = block.get("type") if isinstance(block.get("type"), str) else ""

        if block_type == "thinking":
            continue
        if block_type == "text" and isinstance(block.get("text"), str):
            _push_text(updates, role, block["text"])
        elif is_tool_use_block_type(block_type) and role == "assistant":
            _push_tool_use(updates, state, block)
        elif block_type in TOOL_RESULT_TYPES:
            _push_tool_result(updates, state, block)
        elif block_type == "image":
            _push_text(updates, role, IMAGE_PLACEHOLDER)

    _push_usage(updates, state, message)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def replay_lines(lines: Iterable[str], state: ReplayState | None = None) -> ReplayResult:
    """Replay already-read log lines.

    A fresh ``ReplayState`` is created unless the caller passes one in.
    """
    state = state if state is not None else ReplayState()
    updates: list[SessionUpdate] = []
    for record in iter_records(lines):
        for message in message_candidates(record):
            _replay_message(updates, state, message)
    return ReplayResult(updates=updates, state=state)


def replay_session_history(path: str | Path) -> ReplayResult:
    """Replay a log file, returning the updates together with the final state.

    An unreadable file replays as empty.
    """
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read session log %s: %s", path, exc)
        return ReplayResult(updates=[], state=ReplayState())
    return replay_lines(text.split("\n"))


def extract_session_history_updates(path: str | Path) -> list[SessionUpdate]:
    """Ordered session updates for a persisted session log."""
    return replay_session_history(path).updates
