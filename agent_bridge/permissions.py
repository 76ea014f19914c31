"""Tool-permission negotiation between the agent engine and the host.

When the engine asks whether a tool may run it also proposes rule
updates ("suggestions").  Each suggestion targets a destination, and the
destination decides its scope:

* **session**: ``session``, ``cliArg``
* **persistent**: ``userSettings``, ``projectSettings``, ``localSettings``

Anything else is treated as session scope.

The host is always offered three options: allow once, a broader allow
(``allow_session`` when only session-scoped suggestions exist, otherwise
``allow_always``), and deny.  The chosen option maps back onto an engine
``PermissionResultAllow`` / ``PermissionResultDeny``:

* ``allow_session`` attaches the session-scoped suggestions, or a
  synthesized session rule for the tool when there are none.
* ``allow_always`` attaches the persistent-scoped suggestions, and nothing
  otherwise.  A persistent rule the engine never proposed is never
  written.

``PermissionBroker`` plugs this into the engine's ``can_use_tool``
callback: it emits a ``PermissionRequest`` to the host and waits for the
matching ``permission_response``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from claude_agent_sdk.types import (
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionRuleValue,
    PermissionUpdate,
)

from agent_bridge.types import (
    CancelledOutcome,
    PermissionOption,
    PermissionOutcome,
    PermissionRequest,
    SelectedOutcome,
)

logger = logging.getLogger(__name__)

PermissionResult = PermissionResultAllow | PermissionResultDeny

SESSION_SCOPE = "session"
PERSISTENT_SCOPE = "persistent"

DESTINATION_SCOPES: dict[str, str] = {
    "session": SESSION_SCOPE,
    "cliArg": SESSION_SCOPE,
    "userSettings": PERSISTENT_SCOPE,
    "projectSettings": PERSISTENT_SCOPE,
    "localSettings": PERSISTENT_SCOPE,
}

ALLOW_ONCE = "allow_once"
ALLOW_SESSION = "allow_session"
ALLOW_ALWAYS = "allow_always"
REJECT_ONCE = "reject_once"

_RULE_UPDATE_TYPES = frozenset({"addRules", "replaceRules", "removeRules"})


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

def _coerce_rule(rule: Any) -> PermissionRuleValue:
    if isinstance(rule, PermissionRuleValue):
        return rule
    if isinstance(rule, dict):
        tool_name = rule.get("toolName", rule.get("tool_name", ""))
        content = rule.get("ruleContent", rule.get("rule_content"))
        return PermissionRuleValue(tool_name=str(tool_name), rule_content=content)
    return PermissionRuleValue(tool_name=str(rule))


def coerce_permission_update(update: PermissionUpdate | dict[str, Any]) -> PermissionUpdate:
    """Normalise an engine suggestion to a ``PermissionUpdate``.

    The engine hands suggestions over as raw camelCase dicts; typed
    ``PermissionUpdate`` objects pass through unchanged.
    """
    if isinstance(update, PermissionUpdate):
        return update
    rules = update.get("rules")
    directories = update.get("directories")
    return PermissionUpdate(
        type=update.get("type"),
        rules=[_coerce_rule(r) for r in rules] if isinstance(rules, list) else None,
        behavior=update.get("behavior"),
        mode=update.get("mode"),
        directories=list(directories) if isinstance(directories, list) else None,
        destination=update.get("destination"),
    )


def coerce_permission_updates(
    suggestions: Iterable[Any] | None,
) -> list[PermissionUpdate]:
    """Coerce every usable suggestion; entries that are not updates are dropped."""
    updates: list[PermissionUpdate] = []
    for raw in suggestions or ():
        if isinstance(raw, (PermissionUpdate, dict)):
            updates.append(coerce_permission_update(raw))
        else:
            logger.debug("Ignoring malformed permission suggestion: %r", raw)
    return updates


def suggestion_scope(update: PermissionUpdate) -> str:
    return DESTINATION_SCOPES.get(update.destination or "", SESSION_SCOPE)


@dataclass(frozen=True)
class ScopedSuggestions:
    session: list[PermissionUpdate]
    persistent: list[PermissionUpdate]


def split_suggestions_by_scope(
    suggestions: Iterable[PermissionUpdate | dict[str, Any]] | None,
) -> ScopedSuggestions:
    """Partition suggestions into session- and persistent-scoped lists."""
    scoped = ScopedSuggestions(session=[], persistent=[])
    for update in coerce_permission_updates(suggestions):
        if suggestion_scope(update) == PERSISTENT_SCOPE:
            scoped.persistent.append(update)
        else:
            scoped.session.append(update)
    return scoped


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def _format_rule(rule: PermissionRuleValue) -> str:
    if rule.rule_content is None:
        return rule.tool_name
    return f"{rule.tool_name}({rule.rule_content})"


def format_permission_updates(
    updates: Iterable[PermissionUpdate | dict[str, Any]] | None,
) -> str:
    """One-line rendering of rule updates for logs, or ``"<none>"``."""
    rendered: list[str] = []
    for update in coerce_permission_updates(updates):
        if update.type in _RULE_UPDATE_TYPES:
            rules = ", ".join(_format_rule(r) for r in update.rules or [])
            rendered.append(f"{update.type}:{update.behavior}:{update.destination}=[{rules}]")
        elif update.type == "setMode":
            rendered.append(f"{update.type}:{update.mode}:{update.destination}")
        else:
            dirs = ", ".join(update.directories or [])
            rendered.append(f"{update.type}:{update.destination}=[{dirs}]")
    if not rendered:
        return "<none>"
    return " | ".join(rendered)


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------

def permission_options_from_suggestions(
    suggestions: Iterable[PermissionUpdate | dict[str, Any]] | None,
) -> list[PermissionOption]:
    """The three-entry option menu for one permission prompt."""
    scoped = split_suggestions_by_scope(suggestions)
    session_only = bool(scoped.session) and not scoped.persistent

    broader = (
        PermissionOption(ALLOW_SESSION, "Allow for session", ALLOW_SESSION)
        if session_only
        else PermissionOption(ALLOW_ALWAYS, "Always allow", ALLOW_ALWAYS)
    )
    return [
        PermissionOption(ALLOW_ONCE, "Allow once", ALLOW_ONCE),
        broader,
        PermissionOption(REJECT_ONCE, "Deny", REJECT_ONCE),
    ]


def _session_fallback_rule(tool_name: str) -> PermissionUpdate:
    return PermissionUpdate(
        type="addRules",
        rules=[PermissionRuleValue(tool_name=tool_name)],
        behavior="allow",
        destination="session",
    )


def permission_result_from_outcome(
    outcome: PermissionOutcome,
    tool_call_id: str,
    input_data: dict[str, Any],
    suggestions: Iterable[PermissionUpdate | dict[str, Any]] | None = None,
    tool_name: str | None = None,
) -> PermissionResult:
    """Map the host's decision onto an engine permission result.

    Never raises: unknown option ids deny.
    """
    if not isinstance(outcome, SelectedOutcome):
        logger.info("Permission for %s cancelled", tool_call_id)
        return PermissionResultDeny(message="Permission cancelled")

    scoped = split_suggestions_by_scope(suggestions)
    option_id = outcome.option_id

    if option_id == ALLOW_ONCE:
        return PermissionResultAllow(updated_input=input_data)

    if option_id == ALLOW_SESSION:
        updates = scoped.session
        if not updates and tool_name:
            updates = [_session_fallback_rule(tool_name)]
        logger.info(
            "Permission for %s allowed for session: %s",
            tool_call_id, format_permission_updates(updates),
        )
        return PermissionResultAllow(
            updated_input=input_data,
            updated_permissions=updates or None,
        )

    if option_id == ALLOW_ALWAYS:
        logger.info(
            "Permission for %s always allowed: %s",
            tool_call_id, format_permission_updates(scoped.persistent),
        )
        return PermissionResultAllow(
            updated_input=input_data,
            updated_permissions=scoped.persistent or None,
        )

    return PermissionResultDeny(message="Permission denied")


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------

@dataclass
class _Pending:
    request: PermissionRequest
    future: asyncio.Future


class PermissionBroker:
    """Bridge the engine's ``can_use_tool`` callback to the host.

    Usage::

        broker = PermissionBroker(session_id, emit=send_to_host)
        options = ClaudeAgentOptions(can_use_tool=broker.can_use_tool, ...)

        # later, when the host answers:
        broker.resolve(cmd.tool_call_id, cmd.outcome)

    *emit* receives each ``PermissionRequest``; it may be sync or async.
    """

    def __init__(
        self,
        session_id: str,
        emit: Callable[[PermissionRequest], Awaitable[None] | None],
    ):
        self.session_id = session_id
        self._emit = emit
        self._pending: dict[str, _Pending] = {}

    @property
    def pending_requests(self) -> list[PermissionRequest]:
        return [p.request for p in self._pending.values()]

    async def can_use_tool(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        context: Any,
    ) -> PermissionResult:
        tool_call_id = getattr(context, "tool_use_id", None) or uuid.uuid4().hex
        suggestions = coerce_permission_updates(getattr(context, "suggestions", None))
        request = PermissionRequest(
            session_id=self.session_id,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            input=dict(tool_input),
            options=tuple(permission_options_from_suggestions(suggestions)),
        )
        future = asyncio.get_running_loop().create_future()
        self._pending[tool_call_id] = _Pending(request, future)
        logger.info(
            "Permission requested for %s (%s), suggestions: %s",
            tool_name, tool_call_id, format_permission_updates(suggestions),
        )

        try:
            emitted = self._emit(request)
            if asyncio.iscoroutine(emitted):
                await emitted
            outcome = await future
        finally:
            self._pending.pop(tool_call_id, None)

        return permission_result_from_outcome(
            outcome, tool_call_id, tool_input, suggestions, tool_name,
        )

    def resolve(self, tool_call_id: str, outcome: PermissionOutcome) -> bool:
        """Deliver the host's decision.  Returns False if nothing was waiting."""
        pending = self._pending.get(tool_call_id)
        if pending is None or pending.future.done():
            logger.warning("No pending permission request for %s", tool_call_id)
            return False
        pending.future.set_result(outcome)
        return True

    def cancel_all(self) -> int:
        """Resolve every pending request as cancelled.  Returns how many."""
        count = 0
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_result(CancelledOutcome())
                count += 1
        return count
