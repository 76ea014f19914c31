"""Parse inbound host command lines into typed commands.

One JSON object per line::

    {"request_id": "r1", "command": "prompt", "session_id": "s1",
     "chunks": [{"kind": "text", "value": "hi"}]}

Validation is strict and all-or-nothing: the first missing or mistyped
field raises ``CommandParseError`` naming the field path (e.g.
``"prompt.chunks must be an array"``) and no partial command is returned.

Also home to the static permission-mode table (``to_permission_mode``,
``build_mode_state``).
"""

from __future__ import annotations

import json
from typing import Any, Callable

from agent_bridge.types import (
    BridgeCommand,
    CancelledOutcome,
    CancelTurnCommand,
    CommandEnvelope,
    CreateSessionCommand,
    InitializeCommand,
    Json,
    LoadSessionCommand,
    ModeInfo,
    ModeState,
    NewSessionCommand,
    PermissionOutcome,
    PermissionResponseCommand,
    PromptChunk,
    PromptCommand,
    SelectedOutcome,
    SetModeCommand,
    SetModelCommand,
    ShutdownCommand,
)


class CommandParseError(ValueError):
    """An inbound command line failed validation."""


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------

def _as_record(value: Any, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise CommandParseError(f"{context} must be an object")
    return value


def _expect_string(record: dict[str, Any], key: str, context: str) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise CommandParseError(f"{context}.{key} must be a string")
    return value


def _expect_boolean(record: dict[str, Any], key: str, context: str) -> bool:
    value = record.get(key)
    if not isinstance(value, bool):
        raise CommandParseError(f"{context}.{key} must be a boolean")
    return value


def _optional_string(record: dict[str, Any], key: str, context: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise CommandParseError(f"{context}.{key} must be a string when provided")
    return value


def _optional_metadata(record: dict[str, Any], context: str) -> dict[str, Json]:
    value = record.get("metadata")
    if value is None:
        return {}
    return dict(_as_record(value, f"{context}.metadata"))


def _prompt_chunks(record: dict[str, Any], context: str) -> tuple[PromptChunk, ...]:
    raw_chunks = record.get("chunks")
    if not isinstance(raw_chunks, list):
        raise CommandParseError(f"{context}.chunks must be an array")
    chunks: list[PromptChunk] = []
    for index, raw in enumerate(raw_chunks):
        chunk_context = f"{context}.chunks[{index}]"
        chunk = _as_record(raw, chunk_context)
        kind = _expect_string(chunk, "kind", chunk_context)
        chunks.append(PromptChunk(kind=kind, value=chunk.get("value")))
    return tuple(chunks)


def _permission_outcome(record: dict[str, Any], context: str) -> PermissionOutcome:
    outcome_context = f"{context}.outcome"
    outcome = _as_record(record.get("outcome"), outcome_context)
    outcome_type = _expect_string(outcome, "outcome", outcome_context)
    if outcome_type == "selected":
        return SelectedOutcome(option_id=_expect_string(outcome, "option_id", outcome_context))
    if outcome_type == "cancelled":
        return CancelledOutcome()
    raise CommandParseError(f"{outcome_context}.outcome must be 'selected' or 'cancelled'")


# ---------------------------------------------------------------------------
# Per-command validators
# ---------------------------------------------------------------------------

def _parse_initialize(raw: dict[str, Any]) -> InitializeCommand:
    return InitializeCommand(
        cwd=_expect_string(raw, "cwd", "initialize"),
        metadata=_optional_metadata(raw, "initialize"),
    )


def _parse_create_session(raw: dict[str, Any]) -> CreateSessionCommand:
    return CreateSessionCommand(
        cwd=_expect_string(raw, "cwd", "create_session"),
        yolo=_expect_boolean(raw, "yolo", "create_session"),
        model=_optional_string(raw, "model", "create_session"),
        resume=_optional_string(raw, "resume", "create_session"),
        metadata=_optional_metadata(raw, "create_session"),
    )


def _parse_load_session(raw: dict[str, Any]) -> LoadSessionCommand:
    return LoadSessionCommand(
        session_id=_expect_string(raw, "session_id", "load_session"),
        metadata=_optional_metadata(raw, "load_session"),
    )


def _parse_new_session(raw: dict[str, Any]) -> NewSessionCommand:
    return NewSessionCommand(
        cwd=_expect_string(raw, "cwd", "new_session"),
        yolo=_expect_boolean(raw, "yolo", "new_session"),
        model=_optional_string(raw, "model", "new_session"),
    )


def _parse_prompt(raw: dict[str, Any]) -> PromptCommand:
    return PromptCommand(
        session_id=_expect_string(raw, "session_id", "prompt"),
        chunks=_prompt_chunks(raw, "prompt"),
    )


def _parse_cancel_turn(raw: dict[str, Any]) -> CancelTurnCommand:
    return CancelTurnCommand(session_id=_expect_string(raw, "session_id", "cancel_turn"))


def _parse_set_model(raw: dict[str, Any]) -> SetModelCommand:
    return SetModelCommand(
        session_id=_expect_string(raw, "session_id", "set_model"),
        model=_expect_string(raw, "model", "set_model"),
    )


def _parse_set_mode(raw: dict[str, Any]) -> SetModeCommand:
    return SetModeCommand(
        session_id=_expect_string(raw, "session_id", "set_mode"),
        mode=_expect_string(raw, "mode", "set_mode"),
    )


def _parse_permission_response(raw: dict[str, Any]) -> PermissionResponseCommand:
    # The outcome is validated before the ids.
    outcome = _permission_outcome(raw, "permission_response")
    return PermissionResponseCommand(
        session_id=_expect_string(raw, "session_id", "permission_response"),
        tool_call_id=_expect_string(raw, "tool_call_id", "permission_response"),
        outcome=outcome,
    )


def _parse_shutdown(raw: dict[str, Any]) -> ShutdownCommand:
    return ShutdownCommand()


_PARSERS: dict[str, Callable[[dict[str, Any]], BridgeCommand]] = {
    "initialize": _parse_initialize,
    "create_session": _parse_create_session,
    "load_session": _parse_load_session,
    "new_session": _parse_new_session,
    "prompt": _parse_prompt,
    "cancel_turn": _parse_cancel_turn,
    "set_model": _parse_set_model,
    "set_mode": _parse_set_mode,
    "permission_response": _parse_permission_response,
    "shutdown": _parse_shutdown,
}

SUPPORTED_COMMANDS = tuple(_PARSERS)


def parse_command_envelope(line: str) -> CommandEnvelope:
    """Validate one inbound line into a ``CommandEnvelope``.

    Raises:
        CommandParseError: On invalid JSON, a non-object envelope, an
            unknown command, or any field of the wrong type.
    """
    try:
        parsed = json.loads(line)
    except (ValueError, RecursionError) as exc:
        raise CommandParseError(f"command envelope is not valid JSON: {exc}") from exc

    raw = _as_record(parsed, "command envelope")
    request_id = raw.get("request_id") if isinstance(raw.get("request_id"), str) else None
    command_name = _expect_string(raw, "command", "command envelope")

    parser = _PARSERS.get(command_name)
    if parser is None:
        raise CommandParseError(f"unsupported command: {command_name}")
    return CommandEnvelope(command=parser(raw), request_id=request_id)


# ---------------------------------------------------------------------------
# Permission modes
# ---------------------------------------------------------------------------

MODE_NAMES: dict[str, str] = {
    "default": "Default",
    "acceptEdits": "Accept Edits",
    "bypassPermissions": "Bypass Permissions",
    "plan": "Plan",
    "dontAsk": "Don't Ask",
}

MODE_OPTIONS: tuple[ModeInfo, ...] = (
    ModeInfo("default", "Default", "Standard permission flow"),
    ModeInfo("acceptEdits", "Accept Edits", "Auto-approve edit operations"),
    ModeInfo("plan", "Plan", "No tool execution"),
    ModeInfo("dontAsk", "Don't Ask", "Reject non-approved tools"),
    ModeInfo("bypassPermissions", "Bypass Permissions", "Auto-approve all tools"),
)


def to_permission_mode(mode: Any) -> str | None:
    """Return *mode* if it names a known permission mode, else None."""
    if isinstance(mode, str) and mode in MODE_NAMES:
        return mode
    return None


def build_mode_state(mode: str) -> ModeState:
    """Current mode plus the fixed list of selectable modes.

    Raises:
        KeyError: If *mode* is not a known mode; pass it through
            ``to_permission_mode`` first.
    """
    return ModeState(
        current_mode_id=mode,
        current_mode_name=MODE_NAMES[mode],
        available_modes=MODE_OPTIONS,
    )
