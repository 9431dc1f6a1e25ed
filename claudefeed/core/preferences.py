"""Operator preferences: hidden sessions and custom display names.

Two flat JSON documents under the preferences directory:
    hidden.json  - array of session ids
    names.json   - object mapping session id to display name
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from claudefeed.config import preferences_root

logger = logging.getLogger(__name__)

HIDDEN_FILE = "hidden.json"
NAMES_FILE = "names.json"


def _read_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable preferences file %s: %s", path, e)
        return None


def _write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def load_hidden(base_dir: Optional[Path] = None) -> set[str]:
    data = _read_json((base_dir or preferences_root()) / HIDDEN_FILE)
    if not isinstance(data, list):
        return set()
    return {item for item in data if isinstance(item, str)}


def add_hidden(session_id: str, base_dir: Optional[Path] = None) -> set[str]:
    """Hide a session. Returns the updated set."""
    base = base_dir or preferences_root()
    hidden = load_hidden(base)
    hidden.add(session_id)
    _write_json(base / HIDDEN_FILE, sorted(hidden))
    return hidden


def load_names(base_dir: Optional[Path] = None) -> dict[str, str]:
    data = _read_json((base_dir or preferences_root()) / NAMES_FILE)
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}


def save_name(session_id: str, name: str, base_dir: Optional[Path] = None) -> dict[str, str]:
    """Set a session's display name. Returns the updated mapping."""
    base = base_dir or preferences_root()
    names = load_names(base)
    names[session_id] = name
    _write_json(base / NAMES_FILE, names)
    return names


def remove_name(session_id: str, base_dir: Optional[Path] = None) -> dict[str, str]:
    base = base_dir or preferences_root()
    names = load_names(base)
    names.pop(session_id, None)
    _write_json(base / NAMES_FILE, names)
    return names
