"""claudefeed: operator console for assistant CLI sessions.

Subcommands:
  claudefeed list [--all] [--json]
  claudefeed thread SESSION_ID
  claudefeed resume SESSION_ID... [--prompt TEXT]
  claudefeed hide SESSION_ID
  claudefeed rename SESSION_ID NAME
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from claudefeed import __version__
from claudefeed.core import preferences
from claudefeed.core.errors import ClaudeFeedError, ExecutableNotFoundError
from claudefeed.core.feed import SessionFeed
from claudefeed.core.models import (
    QuestionAction,
    ResumeTarget,
    SessionStatus,
    SessionSummary,
    SessionView,
    ThreadItem,
    ToolItem,
)
from claudefeed.core.pty_manager import PtyManager
from claudefeed.core.reclaimer import find_running_session_ids, reclaim
from claudefeed.core.session_derivation import format_relative_time
from claudefeed.logging_config import setup_logging

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    SessionStatus.IDLE: "dim",
    SessionStatus.THINKING: "yellow",
    SessionStatus.WAITING: "bold red",
}

QUIT_CHOICE = "q"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="claudefeed", description="Operator console for assistant CLI sessions")
    parser.add_argument("--log-level", help="Override CLAUDEFEED_LOG_LEVEL")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List sessions")
    list_cmd.add_argument("--all", action="store_true", help="Include sessions not active today")
    list_cmd.add_argument("--json", action="store_true", help="Machine-readable output")

    thread_cmd = sub.add_parser("thread", help="Show a session's conversation")
    thread_cmd.add_argument("session_id")

    resume_cmd = sub.add_parser("resume", help="Resume sessions and attach to the first")
    resume_cmd.add_argument("session_ids", nargs="+", metavar="session_id")
    resume_cmd.add_argument("--prompt", help="Prompt to send each resumed session")

    hide_cmd = sub.add_parser("hide", help="Hide a session from the list")
    hide_cmd.add_argument("session_id")

    rename_cmd = sub.add_parser("rename", help="Give a session a display name")
    rename_cmd.add_argument("session_id")
    rename_cmd.add_argument("name")
    return parser


def _label_for(summary: Optional[SessionSummary], session_id: str, names: dict[str, str]) -> str:
    if session_id in names:
        return names[session_id]
    if summary is not None:
        return summary.project
    return session_id[:8]


def summary_to_dict(summary: SessionSummary, names: dict[str, str], running: set[str]) -> dict[str, object]:
    """JSON shape of one session for `list --json`."""
    pending: Optional[dict[str, object]] = None
    action = summary.pending_action
    if isinstance(action, QuestionAction):
        pending = {
            "kind": action.kind,
            "question": action.question,
            "options": [{"label": o.label, "description": o.description} for o in action.options],
        }
    elif action is not None:
        pending = {"kind": action.kind, "description": action.description}

    return {
        "session_id": summary.session_id,
        "name": names.get(summary.session_id),
        "project": summary.project,
        "cwd": summary.cwd,
        "last_activity_at": summary.last_activity_at.isoformat(),
        "entry_count": summary.entry_count,
        "status": summary.status.value,
        "model": summary.model,
        "git_branch": summary.git_branch,
        "running": summary.session_id in running,
        "pending_action": pending,
        "preview": [{"label": line.label, "text": line.text} for line in summary.preview],
    }


def _render_table(console: Console, summaries: Sequence[SessionSummary], names: dict[str, str], running: set[str]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Session")
    table.add_column("Project")
    table.add_column("Status")
    table.add_column("Last")
    table.add_column("Preview", overflow="fold")

    for summary in summaries:
        status = summary.status.value
        if summary.session_id in running:
            status += " *"
        preview = "\n".join(f"{line.label}: {escape(line.text)}" for line in summary.preview)
        if summary.pending_action is not None:
            action = summary.pending_action
            detail = escape(action.question if isinstance(action, QuestionAction) else action.description)
            preview = f"{preview}\n[bold]waiting:[/bold] {detail}" if preview else f"[bold]waiting:[/bold] {detail}"
        table.add_row(
            escape(names.get(summary.session_id, summary.session_id[:8])),
            escape(summary.project),
            f"[{_STATUS_STYLES[summary.status]}]{status}[/]",
            format_relative_time(summary.last_activity_at),
            preview,
        )
    console.print(table)


def _render_thread(console: Console, items: Sequence[ThreadItem]) -> None:
    for item in items:
        if isinstance(item, ToolItem):
            style = "red" if item.is_error else "cyan"
            console.print(f"[{style}]> {escape(item.description)}[/]", highlight=False)
            if item.result:
                console.print(item.result, markup=False, highlight=False)
        elif item.kind == "prompt":
            console.print(f"[bold]User:[/bold] {escape(item.text)}", highlight=False)
        else:
            console.print(f"[green]Claude:[/green] {escape(item.text)}", highlight=False)


async def _list(args: argparse.Namespace, console: Console) -> int:
    feed = SessionFeed()
    await feed.refresh()
    view = SessionView.ALL if args.all else SessionView.ACTIVE
    summaries = feed.sessions(view)
    names = preferences.load_names()
    running = await asyncio.to_thread(find_running_session_ids, [s.session_id for s in summaries])

    if args.json:
        print(json.dumps([summary_to_dict(s, names, running) for s in summaries], indent=2))
    else:
        _render_table(console, summaries, names, running)
    return 0


async def _thread(args: argparse.Namespace, console: Console) -> int:
    items = await SessionFeed().thread(args.session_id)
    if not items:
        console.print(f"No transcript for session {args.session_id}")
        return 1
    _render_thread(console, items)
    return 0


def choose_next(console: Console, running: Sequence[str], labels: dict[str, str]) -> Optional[str]:
    """Ask which running session to attach next. None means quit."""
    for index, session_id in enumerate(running, start=1):
        console.print(f"  {index}) {escape(labels.get(session_id, session_id))}")
    choices = [str(i) for i in range(1, len(running) + 1)] + [QUIT_CHOICE]
    answer = Prompt.ask("Attach to", console=console, choices=choices, default="1")
    if answer == QUIT_CHOICE:
        return None
    return running[int(answer) - 1]


async def _resume(args: argparse.Namespace, console: Console) -> int:
    feed = SessionFeed()
    await feed.refresh()
    known = {s.session_id: s for s in feed.sessions(SessionView.ALL, include_hidden=True)}
    names = preferences.load_names()

    targets = [
        ResumeTarget(
            session_id=sid,
            label=_label_for(known.get(sid), sid, names),
            cwd=known[sid].cwd if sid in known else None,
            injected_prompt=args.prompt,
        )
        for sid in dict.fromkeys(args.session_ids)
    ]
    labels = {t.session_id: t.label for t in targets}

    manager = PtyManager()
    try:
        for target in targets:
            await asyncio.to_thread(reclaim, target.session_id)
            manager.spawn(target.session_id, target.cwd, target.agent_args())

        current: Optional[str] = targets[0].session_id
        while current is not None:
            outcome = await manager.attach(current, labels.get(current))
            logger.info("Attach to %s ended: %s", current, outcome.value)
            running = sorted(manager.ids())
            if not running:
                console.print("All sessions have exited.")
                break
            current = await asyncio.to_thread(choose_next, console, running, labels)
    finally:
        manager.kill_all()
    return 0


def _hide(args: argparse.Namespace, console: Console) -> int:
    preferences.add_hidden(args.session_id)
    console.print(f"Hidden {args.session_id}")
    return 0


def _rename(args: argparse.Namespace, console: Console) -> int:
    name = args.name.strip()
    if name:
        preferences.save_name(args.session_id, name)
        console.print(f"Renamed {args.session_id} to {name}")
    else:
        preferences.remove_name(args.session_id)
        console.print(f"Cleared name of {args.session_id}")
    return 0


def run(argv: Optional[Sequence[str]] = None, console: Optional[Console] = None) -> int:
    """Parse arguments and run one subcommand. Returns the exit code."""
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_level)
    out = console or Console()

    try:
        if args.command == "list":
            return asyncio.run(_list(args, out))
        if args.command == "thread":
            return asyncio.run(_thread(args, out))
        if args.command == "resume":
            return asyncio.run(_resume(args, out))
        if args.command == "hide":
            return _hide(args, out)
        if args.command == "rename":
            return _rename(args, out)
    except ExecutableNotFoundError as e:
        sys.stderr.write(f"claudefeed error: {e}\n")
        return 127
    except ClaudeFeedError as e:
        sys.stderr.write(f"claudefeed error: {e}\n")
        return 1
    return 2


def main() -> None:
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
