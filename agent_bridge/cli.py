"""agent-bridge CLI entry point using Click.

Commands:
    agent-bridge sessions [--limit N] [--json]
        list recent resumable sessions
    agent-bridge show <session_id>
        resolve one persisted session
    agent-bridge history <session_id>
        replay a session as JSON-line updates
    agent-bridge parse [LINE]
        validate host command line(s)
    agent-bridge modes [MODE]
        print the permission mode state
    agent-bridge config set projects-root <path>
        set where session logs live
    agent-bridge config set session-limit <n>
        set default listing size
    agent-bridge config set log-level <level>
        set log level
"""

import json
import logging
from pathlib import Path

import click

from agent_bridge import __version__
from agent_bridge.commands import (
    CommandParseError,
    build_mode_state,
    parse_command_envelope,
    to_permission_mode,
)
from agent_bridge.config import (
    get_session_limit,
    projects_root,
    set_log_level,
    set_projects_root,
    set_session_limit,
)
from agent_bridge.history import extract_session_history_updates
from agent_bridge.logging_setup import configure_logging, session_caller
from agent_bridge.paths import home as _home
from agent_bridge.sessions import list_recent_persisted_sessions, resolve_persisted_session_entry
from agent_bridge.types import command_to_dict

logger = logging.getLogger(__name__)


def _get_home(ctx: click.Context) -> Path:
    """Resolve bridge home from context or default."""
    return _home(ctx.obj.get("home_override") if ctx.obj else None)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, ensure_ascii=False))


@click.group()
@click.version_option(version=__version__, prog_name="agent-bridge")
@click.option(
    "--home", "home_override", type=click.Path(path_type=Path), default=None,
    envvar="AGENT_BRIDGE_HOME",
    help="Override bridge home directory (default: ~/.agent-bridge).",
)
@click.option("--verbose", is_flag=True, help="Also log to stderr.")
@click.pass_context
def main(ctx: click.Context, home_override: Path | None, verbose: bool) -> None:
    """agent-bridge: session discovery, replay and command validation."""
    ctx.ensure_object(dict)
    ctx.obj["home_override"] = home_override
    hc_home = _get_home(ctx)
    configure_logging(hc_home, verbose=verbose)


# ──────────────────────────────────────────────────────────────
# agent-bridge sessions / show / history
# ──────────────────────────────────────────────────────────────

@main.command()
@click.option("--limit", type=int, default=None, help="Maximum sessions to list (default from config).")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON object per session.")
@click.pass_context
def sessions(ctx: click.Context, limit: int | None, as_json: bool) -> None:
    """List recent resumable sessions, newest first."""
    hc_home = _get_home(ctx)
    limit = limit if limit is not None else get_session_limit(hc_home)
    entries = list_recent_persisted_sessions(limit, root=projects_root(hc_home))

    if as_json:
        for entry in entries:
            _echo_json(entry.to_dict())
        return

    if not entries:
        click.echo("No sessions found.")
        return
    for entry in entries:
        title = entry.title or "(untitled)"
        click.echo(f"{entry.session_id}  {entry.updated_at or '-'}  {entry.cwd}")
        click.echo(f"    {title}")


@main.command()
@click.argument("session_id")
@click.pass_context
def show(ctx: click.Context, session_id: str) -> None:
    """Resolve a persisted session by id."""
    entry = resolve_persisted_session_entry(session_id, root=projects_root(_get_home(ctx)))
    if entry is None:
        raise click.ClickException(f"Session '{session_id}' not found")
    _echo_json(entry.to_dict())


@main.command()
@click.argument("session_id")
@click.pass_context
def history(ctx: click.Context, session_id: str) -> None:
    """Replay a persisted session as JSON-line session updates."""
    entry = resolve_persisted_session_entry(session_id, root=projects_root(_get_home(ctx)))
    if entry is None:
        raise click.ClickException(f"Session '{session_id}' not found")

    with session_caller(session_id):
        updates = extract_session_history_updates(entry.file_path)
        logger.info("Replayed %d updates from %s", len(updates), entry.file_path)
    for update in updates:
        _echo_json(update.to_dict())


# ──────────────────────────────────────────────────────────────
# agent-bridge parse / modes
# ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("line", required=False)
def parse(line: str | None) -> None:
    """Validate a host command line (or every stdin line) and print it normalised."""
    if line is not None:
        lines = [line]
    else:
        with click.open_file("-") as stdin:
            lines = stdin.read().splitlines()
    for number, raw in enumerate(lines, start=1):
        if not raw.strip():
            continue
        try:
            envelope = parse_command_envelope(raw)
        except CommandParseError as exc:
            raise click.ClickException(f"line {number}: {exc}") from exc
        data = command_to_dict(envelope.command)
        if envelope.request_id is not None:
            data["request_id"] = envelope.request_id
        _echo_json(data)


@main.command()
@click.argument("mode", required=False, default="default")
def modes(mode: str) -> None:
    """Print the permission mode state for MODE (default: 'default')."""
    known = to_permission_mode(mode)
    if known is None:
        raise click.ClickException(f"Unknown permission mode '{mode}'")
    _echo_json(build_mode_state(known).to_dict())


# ──────────────────────────────────────────────────────────────
# agent-bridge config
# ──────────────────────────────────────────────────────────────

@main.group()
def config() -> None:
    """Manage bridge configuration."""


@config.group("set")
def config_set() -> None:
    """Set a configuration value."""


@config_set.command("projects-root")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def set_projects_root_cmd(ctx: click.Context, path: Path) -> None:
    """Set the directory holding per-project session logs."""
    set_projects_root(_get_home(ctx), path.expanduser().resolve())
    click.echo(f"projects_root = {path.expanduser().resolve()}")


@config_set.command("session-limit")
@click.argument("limit", type=int)
@click.pass_context
def set_session_limit_cmd(ctx: click.Context, limit: int) -> None:
    """Set how many sessions are listed by default."""
    try:
        set_session_limit(_get_home(ctx), limit)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"session_limit = {limit}")


@config_set.command("log-level")
@click.argument("level")
@click.pass_context
def set_log_level_cmd(ctx: click.Context, level: str) -> None:
    """Set the log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
    try:
        set_log_level(_get_home(ctx), level)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"log_level = {level.upper()}")
