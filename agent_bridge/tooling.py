"""Tool-call construction and tool-result field derivation.

Shared by the replay engine and anything that turns engine tool blocks
into host-visible ``ToolCall`` objects.
"""

from __future__ import annotations

import json
from typing import Any

from agent_bridge.types import ToolCall, ToolCallStatus, ToolCallUpdateFields

TOOL_USE_TYPES = frozenset({"tool_use", "server_tool_use", "mcp_tool_use"})

TOOL_RESULT_TYPES = frozenset({
    "tool_result",
    "mcp_tool_result",
    "web_search_tool_result",
    "web_fetch_tool_result",
    "code_execution_tool_result",
    "bash_code_execution_tool_result",
    "text_editor_code_execution_tool_result",
})

_TOOL_KINDS: dict[str, str] = {
    "Read": "read",
    "NotebookRead": "read",
    "Edit": "edit",
    "MultiEdit": "edit",
    "Write": "edit",
    "NotebookEdit": "edit",
    "Bash": "execute",
    "BashOutput": "execute",
    "KillShell": "execute",
    "Grep": "search",
    "Glob": "search",
    "LS": "search",
    "WebFetch": "fetch",
    "WebSearch": "fetch",
    "Task": "think",
    "TodoWrite": "think",
    "ExitPlanMode": "think",
}

# Input keys that make a useful one-line title, in priority order.
_TITLE_KEYS = ("file_path", "notebook_path", "path", "command", "pattern", "url", "query")


def is_tool_use_block_type(block_type: str) -> bool:
    return block_type in TOOL_USE_TYPES


def tool_kind(name: str) -> str:
    return _TOOL_KINDS.get(name, "other")


def tool_title(name: str, tool_input: dict[str, Any]) -> str:
    for key in _TITLE_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value.strip():
            return f"{name} {value.strip().splitlines()[0]}"
    return name


def create_tool_call(tool_call_id: str, name: str, tool_input: dict[str, Any]) -> ToolCall:
    """New ``pending`` tool call for an engine tool-use block."""
    return ToolCall(
        tool_call_id=tool_call_id,
        name=name,
        title=tool_title(name, tool_input),
        kind=tool_kind(name),
        raw_input=dict(tool_input),
        status=ToolCallStatus.PENDING,
    )


def render_tool_result_content(content: Any) -> str:
    """Flatten a tool-result ``content`` payload to display text.

    Strings pass through; block lists keep their text blocks (joined with
    newlines) and show images as ``[image]``; anything else is serialised
    as JSON.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, dict) and item.get("type") == "image":
                parts.append("[image]")
            else:
                parts.append(json.dumps(item, ensure_ascii=False))
        return "\n".join(parts)
    return json.dumps(content, ensure_ascii=False)


def build_tool_result_fields(is_error: bool, content: Any) -> ToolCallUpdateFields:
    """Fields carried by a ``tool_call_update`` for a tool result."""
    raw_output = render_tool_result_content(content)
    status = ToolCallStatus.ERROR if is_error else ToolCallStatus.COMPLETED
    if not raw_output:
        return ToolCallUpdateFields(status=status)
    return ToolCallUpdateFields(
        status=status,
        raw_output=raw_output,
        content=[{"type": "content", "content": {"type": "text", "text": raw_output}}],
    )


def merge_tool_result_fields(tool_call: ToolCall, fields: ToolCallUpdateFields) -> None:
    """Merge result fields into an open tool call in place."""
    if fields.status is not None:
        tool_call.status = fields.status
    if fields.raw_output:
        tool_call.raw_output = fields.raw_output
    if fields.content:
        tool_call.content = fields.content
