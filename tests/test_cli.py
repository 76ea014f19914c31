"""Tests for the agent-bridge CLI commands."""

import json
import warnings

import pytest
from click.testing import CliRunner

from agent_bridge.cli import main
from agent_bridge.config import get_log_level, get_projects_root, get_session_limit, set_projects_root
from conftest import SAMPLE_CWD, assistant_record, user_record

T0 = 1_700_000_000


@pytest.fixture
def runner():
    """Click CLI runner."""
    return CliRunner()


@pytest.fixture
def hc(tmp_path, projects_root):
    """Bridge home configured to scan the test projects root."""
    hc_home = tmp_path / "hc"
    hc_home.mkdir()
    set_projects_root(hc_home, projects_root)
    return hc_home


def _json_lines(output):
    return [json.loads(line) for line in output.splitlines() if line.strip()]


class TestSessions:

    def test_empty(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "sessions"])
        assert result.exit_code == 0
        assert "No sessions found." in result.output

    def test_text(self, hc, runner, write_session):
        write_session("-work-acme", "sess-a", [user_record("Fix the build")], mtime=T0)
        result = runner.invoke(main, ["--home", str(hc), "sessions"])
        assert result.exit_code == 0
        assert "sess-a" in result.output
        assert SAMPLE_CWD in result.output
        assert "Fix the build" in result.output

    def test_json_and_limit(self, hc, runner, write_session):
        write_session("-work-acme", "old", [user_record("first")], mtime=T0)
        write_session("-work-acme", "new", [user_record("second")], mtime=T0 + 10)
        result = runner.invoke(main, ["--home", str(hc), "sessions", "--json", "--limit", "1"])
        assert result.exit_code == 0
        (entry,) = _json_lines(result.output)
        assert entry["session_id"] == "new"
        assert entry["title"] == "second"
        assert entry["cwd"] == SAMPLE_CWD


class TestShowAndHistory:

    def test_show(self, hc, runner, write_session):
        path = write_session("-work-acme", "sess-a", [user_record("hello")], mtime=T0)
        result = runner.invoke(main, ["--home", str(hc), "show", "sess-a"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["file_path"] == str(path)
        assert data["title"] == "hello"

    def test_show_not_found(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "show", "missing"])
        assert result.exit_code == 1
        assert "Session 'missing' not found" in result.output

    def test_history(self, hc, runner, write_session):
        write_session("-work-acme", "sess-a", [
            user_record("run tests"),
            assistant_record([
                {"type": "text", "text": "Running."},
                {"type": "tool_use", "id": "toolu_1", "name": "Bash", "input": {"command": "pytest"}},
            ], message_id="msg_1", usage={"input_tokens": 10, "output_tokens": 5}),
        ])
        result = runner.invoke(main, ["--home", str(hc), "history", "sess-a"])
        assert result.exit_code == 0
        updates = _json_lines(result.output)
        assert [u["type"] for u in updates] == [
            "user_message_chunk", "agent_message_chunk", "tool_call", "usage_update",
        ]
        assert updates[0]["content"] == {"type": "text", "text": "run tests"}
        assert updates[2]["tool_call"]["status"] == "in_progress"

    def test_history_not_found(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "history", "nope"])
        assert result.exit_code == 1


class TestParse:

    def test_valid_line(self, hc, runner):
        line = json.dumps({"request_id": "r1", "command": "cancel_turn", "session_id": "s1"})
        result = runner.invoke(main, ["--home", str(hc), "parse", line])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"command": "cancel_turn", "session_id": "s1", "request_id": "r1"}

    def test_invalid_line(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "parse", '{"command": "prompt", "session_id": "s1"}'])
        assert result.exit_code == 1
        assert "line 1: prompt.chunks must be an array" in result.output

    def test_stdin(self, hc, runner):
        stdin = "\n".join([
            json.dumps({"command": "shutdown"}),
            "",
            json.dumps({"command": "set_mode", "session_id": "s1", "mode": "plan"}),
        ]) + "\n"
        result = runner.invoke(main, ["--home", str(hc), "parse"], input=stdin)
        assert result.exit_code == 0
        assert _json_lines(result.output) == [
            {"command": "shutdown"},
            {"command": "set_mode", "session_id": "s1", "mode": "plan"},
        ]

    def test_stdin_without_deprecation_warnings(self, hc, runner):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = runner.invoke(main, ["--home", str(hc), "parse"], input=json.dumps({"command": "shutdown"}) + "\n")
        assert result.exit_code == 0, result.output
        assert _json_lines(result.output) == [{"command": "shutdown"}]

    def test_too_deeply_nested_line(self, hc, runner):
        line = '{"command": "shutdown", "x": ' + "[" * 200_000 + "]" * 200_000 + "}"
        result = runner.invoke(main, ["--home", str(hc), "parse", line])
        assert result.exit_code == 1
        assert "line 1: command envelope is not valid JSON" in result.output

    def test_stdin_reports_line_number(self, hc, runner):
        stdin = json.dumps({"command": "shutdown"}) + "\nnot json\n"
        result = runner.invoke(main, ["--home", str(hc), "parse"], input=stdin)
        assert result.exit_code == 1
        assert "line 2: command envelope is not valid JSON" in result.output


class TestModes:

    def test_default(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "modes"])
        assert result.exit_code == 0
        state = json.loads(result.output)
        assert state["current_mode_id"] == "default"
        assert [m["id"] for m in state["available_modes"]] == [
            "default", "acceptEdits", "plan", "dontAsk", "bypassPermissions",
        ]

    def test_named(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "modes", "dontAsk"])
        assert json.loads(result.output)["current_mode_name"] == "Don't Ask"

    def test_unknown(self, hc, runner):
        result = runner.invoke(main, ["--home", str(hc), "modes", "yolo"])
        assert result.exit_code == 1
        assert "Unknown permission mode 'yolo'" in result.output


class TestConfigSet:

    def test_projects_root(self, tmp_path, runner):
        hc_home = tmp_path / "hc"
        target = tmp_path / "elsewhere"
        result = runner.invoke(main, ["--home", str(hc_home), "config", "set", "projects-root", str(target)])
        assert result.exit_code == 0
        assert get_projects_root(hc_home) == target.resolve()

    def test_session_limit(self, tmp_path, runner):
        hc_home = tmp_path / "hc"
        result = runner.invoke(main, ["--home", str(hc_home), "config", "set", "session-limit", "3"])
        assert result.exit_code == 0
        assert get_session_limit(hc_home) == 3

    def test_session_limit_rejected(self, tmp_path, runner):
        hc_home = tmp_path / "hc"
        result = runner.invoke(main, ["--home", str(hc_home), "config", "set", "session-limit", "0"])
        assert result.exit_code == 1
        assert "must be positive" in result.output

    def test_log_level(self, tmp_path, runner):
        hc_home = tmp_path / "hc"
        result = runner.invoke(main, ["--home", str(hc_home), "config", "set", "log-level", "warning"])
        assert result.exit_code == 0
        assert "log_level = WARNING" in result.output
        assert get_log_level(hc_home) == 30
