"""Find and terminate stray assistant processes bound to a session.

Resuming a session that is still running elsewhere would give its
transcript two writers. Before spawning, the console terminates every other
process that mentions the session id on its command line or holds files
open under the session's working-state directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

import psutil

from claudefeed.config import config, tasks_root

logger = logging.getLogger(__name__)

_PROC_ATTRS = ["pid", "cmdline"]


def _command_line(proc: psutil.Process) -> str:
    cmdline = getattr(proc, "info", {}).get("cmdline")
    if not cmdline:
        return ""
    return " ".join(str(part) for part in cmdline)


def _is_under(path: str, directory: Path) -> bool:
    try:
        Path(path).resolve().relative_to(directory)
    except (ValueError, OSError):
        return False
    return True


def _holds_files_under(proc: psutil.Process, directory: Path) -> bool:
    """Whether proc has an open file or its cwd inside directory."""
    try:
        if any(_is_under(f.path, directory) for f in proc.open_files()):
            return True
        return _is_under(proc.cwd(), directory)
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return False


def _own_lineage() -> set[int]:
    """Our pid and every ancestor. Launchers carry the session id on their command line too."""
    pids = {os.getpid()}
    try:
        pids.update(p.pid for p in psutil.Process().parents())
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        logger.debug("Could not list parent processes: %s", e)
    return pids


def find_session_processes(session_id: str, tasks_dir: Optional[Path] = None) -> set[int]:
    """PIDs of processes bound to session_id, excluding us and our ancestors."""
    state_dir = (tasks_dir if tasks_dir is not None else tasks_root()) / session_id
    check_files = state_dir.is_dir()
    resolved_state_dir = state_dir.resolve() if check_files else state_dir
    own_pids = _own_lineage()

    pids: set[int] = set()
    for proc in psutil.process_iter(_PROC_ATTRS):
        if proc.pid in own_pids:
            continue
        if session_id in _command_line(proc):
            pids.add(proc.pid)
        elif check_files and _holds_files_under(proc, resolved_state_dir):
            pids.add(proc.pid)
    return pids


def reclaim(session_id: str, tasks_dir: Optional[Path] = None) -> list[int]:
    """Send SIGTERM to every outside process bound to session_id.

    Returns:
        PIDs that were signalled. Processes that vanish or refuse the signal
        are skipped.
    """
    signalled: list[int] = []
    for pid in sorted(find_session_processes(session_id, tasks_dir)):
        try:
            psutil.Process(pid).terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.debug("Could not terminate pid %d: %s", pid, e)
            continue
        signalled.append(pid)

    if signalled:
        logger.info("Reclaimed session %s from pids %s", session_id, signalled)
    return signalled


def find_running_session_ids(known_ids: Iterable[str], executable: Optional[str] = None) -> set[str]:
    """Subset of known_ids that a running assistant process has on its command line."""
    ids = list(known_ids)
    if not ids:
        return set()

    needle = executable or config.agent.binary
    command_lines = [line for line in (_command_line(p) for p in psutil.process_iter(_PROC_ATTRS)) if needle in line]
    return {sid for sid in ids if any(sid in line for line in command_lines)}
