"""Data model shared by the replay engine, command parser and permission layer.

Every tagged union on the wire (session updates, host commands, permission
outcomes) is a closed set of dataclasses here.  Each variant carries its
own field set; ``to_dict()`` renders the outbound JSON shape.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Literal, Union

Json = Any

Role = Literal["user", "assistant"]


# ---------------------------------------------------------------------------
# Persisted sessions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PersistedSessionEntry:
    """One resumable session discovered on disk.

    ``sort_ms`` is the log file's modification time in milliseconds and the
    only ranking key.
    """

    session_id: str
    cwd: str
    file_path: str
    sort_ms: float
    title: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "session_id": self.session_id,
            "cwd": self.cwd,
            "file_path": self.file_path,
        }
        if self.title is not None:
            d["title"] = self.title
        if self.updated_at is not None:
            d["updated_at"] = self.updated_at
        d["sort_ms"] = self.sort_ms
        return d


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------

class ToolCallStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ToolCall:
    """A tool invocation as the host sees it.

    Mutable: the replay engine merges tool results into the open call.
    """

    tool_call_id: str
    name: str
    title: str
    kind: str
    raw_input: dict[str, Any] = field(default_factory=dict)
    status: str = ToolCallStatus.PENDING
    raw_output: str | None = None
    content: list[dict[str, Any]] | None = None

    def snapshot(self) -> ToolCall:
        """Deep copy, so emitted updates never see later merges."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "title": self.title,
            "kind": self.kind,
            "status": self.status,
            "raw_input": self.raw_input,
        }
        if self.raw_output is not None:
            d["raw_output"] = self.raw_output
        if self.content is not None:
            d["content"] = self.content
        return d


@dataclass(frozen=True)
class ToolCallUpdateFields:
    """Partial field set merged into an existing tool call."""

    status: str | None = None
    raw_output: str | None = None
    content: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.status is not None:
            d["status"] = self.status
        if self.raw_output is not None:
            d["raw_output"] = self.raw_output
        if self.content is not None:
            d["content"] = self.content
        return d


# ---------------------------------------------------------------------------
# Session updates (outbound)
# ---------------------------------------------------------------------------

def _text_content(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


@dataclass(frozen=True)
class UserMessageChunk:
    text: str
    type: ClassVar[str] = "user_message_chunk"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": _text_content(self.text)}


@dataclass(frozen=True)
class AgentMessageChunk:
    text: str
    type: ClassVar[str] = "agent_message_chunk"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": _text_content(self.text)}


@dataclass(frozen=True)
class ToolCallCreated:
    tool_call: ToolCall
    type: ClassVar[str] = "tool_call"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "tool_call": self.tool_call.to_dict()}


@dataclass(frozen=True)
class ToolCallUpdated:
    tool_call_id: str
    fields: ToolCallUpdateFields
    type: ClassVar[str] = "tool_call_update"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "tool_call_update": {
                "tool_call_id": self.tool_call_id,
                "fields": self.fields.to_dict(),
            },
        }


@dataclass(frozen=True)
class UsageUpdate:
    """Token / cost snapshot.  Only metrics that were observed are set."""

    input_tokens: int | float | None = None
    output_tokens: int | float | None = None
    cache_read_tokens: int | float | None = None
    cache_write_tokens: int | float | None = None
    total_cost_usd: float | None = None
    turn_cost_usd: float | None = None
    context_window: int | float | None = None
    max_output_tokens: int | float | None = None
    type: ClassVar[str] = "usage_update"

    _FIELDS: ClassVar[tuple[str, ...]] = (
        "input_tokens",
        "output_tokens",
        "cache_read_tokens",
        "cache_write_tokens",
        "total_cost_usd",
        "turn_cost_usd",
        "context_window",
        "max_output_tokens",
    )

    def to_dict(self) -> dict[str, Any]:
        usage = {
            name: getattr(self, name)
            for name in self._FIELDS
            if getattr(self, name) is not None
        }
        return {"type": self.type, "usage": usage}


SessionUpdate = Union[
    UserMessageChunk,
    AgentMessageChunk,
    ToolCallCreated,
    ToolCallUpdated,
    UsageUpdate,
]


def text_chunk(role: Role, text: str) -> SessionUpdate:
    """Role-tagged text chunk."""
    if role == "assistant":
        return AgentMessageChunk(text)
    return UserMessageChunk(text)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SelectedOutcome:
    option_id: str
    outcome: ClassVar[str] = "selected"

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": self.outcome, "option_id": self.option_id}


@dataclass(frozen=True)
class CancelledOutcome:
    outcome: ClassVar[str] = "cancelled"

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": self.outcome}


PermissionOutcome = Union[SelectedOutcome, CancelledOutcome]


@dataclass(frozen=True)
class PermissionOption:
    option_id: str
    name: str
    kind: str

    def to_dict(self) -> dict[str, Any]:
        return {"option_id": self.option_id, "name": self.name, "kind": self.kind}


@dataclass(frozen=True)
class PermissionRequest:
    """Host-facing prompt for one tool-permission decision."""

    session_id: str
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]
    options: tuple[PermissionOption, ...]
    type: ClassVar[str] = "permission_request"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "session_id": self.session_id,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "input": self.input,
            "options": [o.to_dict() for o in self.options],
        }


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModeInfo:
    id: str
    name: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class ModeState:
    current_mode_id: str
    current_mode_name: str
    available_modes: tuple[ModeInfo, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_mode_id": self.current_mode_id,
            "current_mode_name": self.current_mode_name,
            "available_modes": [m.to_dict() for m in self.available_modes],
        }


# ---------------------------------------------------------------------------
# Host commands (inbound)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PromptChunk:
    kind: str
    value: Json = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass(frozen=True)
class InitializeCommand:
    cwd: str
    metadata: dict[str, Json] = field(default_factory=dict)
    command: ClassVar[str] = "initialize"


@dataclass(frozen=True)
class CreateSessionCommand:
    cwd: str
    yolo: bool
    model: str | None = None
    resume: str | None = None
    metadata: dict[str, Json] = field(default_factory=dict)
    command: ClassVar[str] = "create_session"


@dataclass(frozen=True)
class LoadSessionCommand:
    session_id: str
    metadata: dict[str, Json] = field(default_factory=dict)
    command: ClassVar[str] = "load_session"


@dataclass(frozen=True)
class NewSessionCommand:
    cwd: str
    yolo: bool
    model: str | None = None
    command: ClassVar[str] = "new_session"


@dataclass(frozen=True)
class PromptCommand:
    session_id: str
    chunks: tuple[PromptChunk, ...]
    command: ClassVar[str] = "prompt"


@dataclass(frozen=True)
class CancelTurnCommand:
    session_id: str
    command: ClassVar[str] = "cancel_turn"


@dataclass(frozen=True)
class SetModelCommand:
    session_id: str
    model: str
    command: ClassVar[str] = "set_model"


@dataclass(frozen=True)
class SetModeCommand:
    session_id: str
    mode: str
    command: ClassVar[str] = "set_mode"


@dataclass(frozen=True)
class PermissionResponseCommand:
    session_id: str
    tool_call_id: str
    outcome: PermissionOutcome
    command: ClassVar[str] = "permission_response"


@dataclass(frozen=True)
class ShutdownCommand:
    command: ClassVar[str] = "shutdown"


BridgeCommand = Union[
    InitializeCommand,
    CreateSessionCommand,
    LoadSessionCommand,
    NewSessionCommand,
    PromptCommand,
    CancelTurnCommand,
    SetModelCommand,
    SetModeCommand,
    PermissionResponseCommand,
    ShutdownCommand,
]


@dataclass(frozen=True)
class CommandEnvelope:
    command: BridgeCommand
    request_id: str | None = None


def command_to_dict(command: BridgeCommand) -> dict[str, Any]:
    """Render a parsed command back to its wire shape (optional fields omitted when unset)."""
    d: dict[str, Any] = {"command": command.command}
    for f in fields(command):
        name = f.name
        value = getattr(command, name)
        if value is None:
            continue
        if name == "chunks":
            value = [c.to_dict() for c in value]
        elif name == "outcome":
            value = value.to_dict()
        d[name] = value
    return d
