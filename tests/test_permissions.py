"""Tests for agent_bridge.permissions and agent_bridge.auth."""

import asyncio
from types import SimpleNamespace

import pytest
from claude_agent_sdk.types import (
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionRuleValue,
    PermissionUpdate,
)

from agent_bridge.auth import looks_like_auth_required
from agent_bridge.permissions import (
    PermissionBroker,
    coerce_permission_update,
    format_permission_updates,
    permission_options_from_suggestions,
    permission_result_from_outcome,
    split_suggestions_by_scope,
)
from agent_bridge.types import CancelledOutcome, SelectedOutcome


def _rule_update(destination, tool="Bash", content=None):
    rule = {"toolName": tool}
    if content is not None:
        rule["ruleContent"] = content
    return {"type": "addRules", "rules": [rule], "behavior": "allow", "destination": destination}


SESSION_SUGGESTION = _rule_update("session", content="npm test")
PERSISTENT_SUGGESTION = _rule_update("localSettings", content="npm test")


class TestScopes:

    def test_partition(self):
        scoped = split_suggestions_by_scope([
            _rule_update("session"),
            _rule_update("cliArg"),
            _rule_update("userSettings"),
            _rule_update("projectSettings"),
            _rule_update("localSettings"),
            _rule_update("somethingNew"),
        ])
        assert [u.destination for u in scoped.session] == ["session", "cliArg", "somethingNew"]
        assert [u.destination for u in scoped.persistent] == ["userSettings", "projectSettings", "localSettings"]

    def test_empty(self):
        scoped = split_suggestions_by_scope(None)
        assert scoped.session == [] and scoped.persistent == []

    def test_coerce_dict(self):
        update = coerce_permission_update(_rule_update("session", tool="Read", content="src/**"))
        assert isinstance(update, PermissionUpdate)
        assert update.rules == [PermissionRuleValue(tool_name="Read", rule_content="src/**")]

    def test_coerce_passthrough(self):
        update = PermissionUpdate(type="setMode", mode="plan", destination="session")
        assert coerce_permission_update(update) is update


class TestOptions:

    def test_session_only_offers_allow_session(self):
        options = permission_options_from_suggestions([SESSION_SUGGESTION])
        assert [o.option_id for o in options] == ["allow_once", "allow_session", "reject_once"]
        assert options[1].name == "Allow for session"
        assert options[2].name == "Deny"

    @pytest.mark.parametrize("destination", ["userSettings", "projectSettings", "localSettings"])
    def test_any_persistent_offers_allow_always(self, destination):
        options = permission_options_from_suggestions([SESSION_SUGGESTION, _rule_update(destination)])
        assert options[1].option_id == "allow_always"
        assert options[1].name == "Always allow"

    def test_no_suggestions_offers_allow_always(self):
        options = permission_options_from_suggestions([])
        assert len(options) == 3
        assert options[1].option_id == "allow_always"

    def test_to_dict(self):
        assert permission_options_from_suggestions(None)[0].to_dict() == {
            "option_id": "allow_once", "name": "Allow once", "kind": "allow_once",
        }


class TestResults:

    def test_allow_once_passes_input(self):
        result = permission_result_from_outcome(SelectedOutcome("allow_once"), "t1", {"path": "x"})
        assert isinstance(result, PermissionResultAllow)
        assert result.updated_input == {"path": "x"}
        assert result.updated_permissions is None

    def test_allow_once_ignores_suggestions(self):
        result = permission_result_from_outcome(
            SelectedOutcome("allow_once"), "t1", {}, [SESSION_SUGGESTION, PERSISTENT_SUGGESTION],
        )
        assert result.updated_permissions is None

    def test_allow_session_attaches_session_suggestions(self):
        result = permission_result_from_outcome(
            SelectedOutcome("allow_session"), "t1", {"command": "npm test"},
            [SESSION_SUGGESTION, PERSISTENT_SUGGESTION], "Bash",
        )
        assert isinstance(result, PermissionResultAllow)
        assert [u.destination for u in result.updated_permissions] == ["session"]

    def test_allow_session_synthesizes_rule(self):
        result = permission_result_from_outcome(
            SelectedOutcome("allow_session"), "t1", {}, [PERSISTENT_SUGGESTION], "Edit",
        )
        (update,) = result.updated_permissions
        assert update.type == "addRules"
        assert update.behavior == "allow"
        assert update.destination == "session"
        assert update.rules == [PermissionRuleValue(tool_name="Edit")]

    def test_allow_session_without_tool_name(self):
        result = permission_result_from_outcome(SelectedOutcome("allow_session"), "t1", {})
        assert isinstance(result, PermissionResultAllow)
        assert result.updated_permissions is None

    def test_allow_always_attaches_persistent(self):
        result = permission_result_from_outcome(
            SelectedOutcome("allow_always"), "t1", {}, [SESSION_SUGGESTION, PERSISTENT_SUGGESTION], "Bash",
        )
        assert [u.destination for u in result.updated_permissions] == ["localSettings"]

    def test_allow_always_has_no_fallback(self):
        """No persistent suggestion means no rule, even with a tool name."""
        result = permission_result_from_outcome(
            SelectedOutcome("allow_always"), "t1", {}, [SESSION_SUGGESTION], "Bash",
        )
        assert isinstance(result, PermissionResultAllow)
        assert result.updated_permissions is None

    def test_reject_and_unknown_deny(self):
        for option_id in ("reject_once", "something_else"):
            result = permission_result_from_outcome(SelectedOutcome(option_id), "t1", {})
            assert isinstance(result, PermissionResultDeny)
            assert result.message == "Permission denied"

    def test_malformed_suggestions_ignored(self):
        suggestions = [None, "session", 7, SESSION_SUGGESTION]
        result = permission_result_from_outcome(SelectedOutcome("allow_session"), "t1", {}, suggestions, "Bash")
        assert isinstance(result, PermissionResultAllow)
        assert [u.destination for u in result.updated_permissions] == ["session"]
        assert [o.option_id for o in permission_options_from_suggestions(suggestions)][1] == "allow_session"
        assert format_permission_updates([None, "x"]) == "<none>"

    def test_cancelled(self):
        result = permission_result_from_outcome(CancelledOutcome(), "t1", {}, [SESSION_SUGGESTION], "Bash")
        assert isinstance(result, PermissionResultDeny)
        assert result.message == "Permission cancelled"


class TestFormat:

    def test_none(self):
        assert format_permission_updates(None) == "<none>"
        assert format_permission_updates([]) == "<none>"

    def test_all_shapes(self):
        rendered = format_permission_updates([
            {
                "type": "addRules",
                "rules": [{"toolName": "Bash", "ruleContent": "npm test"}, {"toolName": "Read"}],
                "behavior": "allow",
                "destination": "session",
            },
            PermissionUpdate(type="setMode", mode="acceptEdits", destination="userSettings"),
            {"type": "addDirectories", "directories": ["/a", "/b"], "destination": "localSettings"},
        ])
        assert rendered == (
            "addRules:allow:session=[Bash(npm test), Read]"
            " | setMode:acceptEdits:userSettings"
            " | addDirectories:localSettings=[/a, /b]"
        )


class TestBroker:

    async def _wait_for_request(self, broker):
        for _ in range(20):
            if broker.pending_requests:
                return broker.pending_requests[0]
            await asyncio.sleep(0)
        raise AssertionError("no permission request emitted")

    def test_round_trip(self):
        """The host sees a menu and its answer becomes the engine result."""
        emitted = []

        async def _run():
            broker = PermissionBroker("sess-1", emit=emitted.append)
            context = SimpleNamespace(suggestions=[SESSION_SUGGESTION], tool_use_id="toolu_9")
            task = asyncio.ensure_future(broker.can_use_tool("Bash", {"command": "npm test"}, context))
            request = await self._wait_for_request(broker)
            assert broker.resolve(request.tool_call_id, SelectedOutcome("allow_session"))
            result = await asyncio.wait_for(task, timeout=1.0)
            return broker, result

        broker, result = asyncio.run(_run())
        (request,) = emitted
        assert request.tool_call_id == "toolu_9"
        assert request.session_id == "sess-1"
        assert [o.option_id for o in request.options] == ["allow_once", "allow_session", "reject_once"]
        assert request.to_dict()["type"] == "permission_request"
        assert isinstance(result, PermissionResultAllow)
        assert result.updated_input == {"command": "npm test"}
        assert [u.destination for u in result.updated_permissions] == ["session"]
        assert broker.pending_requests == []

    def test_async_emit_and_generated_id(self):
        emitted = []

        async def _emit(request):
            emitted.append(request)

        async def _run():
            broker = PermissionBroker("s", emit=_emit)
            task = asyncio.ensure_future(broker.can_use_tool("Read", {"file_path": "a"}, None))
            request = await self._wait_for_request(broker)
            broker.resolve(request.tool_call_id, SelectedOutcome("reject_once"))
            return await asyncio.wait_for(task, timeout=1.0)

        result = asyncio.run(_run())
        assert isinstance(result, PermissionResultDeny)
        assert len(emitted[0].tool_call_id) == 32

    def test_cancel_all(self):
        async def _run():
            broker = PermissionBroker("s", emit=lambda r: None)
            task = asyncio.ensure_future(broker.can_use_tool("Edit", {}, None))
            await self._wait_for_request(broker)
            assert broker.cancel_all() == 1
            return await asyncio.wait_for(task, timeout=1.0)

        result = asyncio.run(_run())
        assert isinstance(result, PermissionResultDeny)
        assert result.message == "Permission cancelled"

    def test_resolve_unknown(self):
        broker = PermissionBroker("s", emit=lambda r: None)
        assert broker.resolve("nope", CancelledOutcome()) is False


class TestAuth:

    @pytest.mark.parametrize("text", [
        "Invalid API key · Please run /login",
        "Authentication failed: token expired",
        "AUTH REQUIRED",
        "Please log in to continue",
    ])
    def test_detected(self, text):
        assert looks_like_auth_required(text)

    def test_not_detected(self):
        assert not looks_like_auth_required("Rate limit exceeded")
