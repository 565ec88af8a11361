"""Cleaning history persisted as JSON under the XDG data directory."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from reclaim.utils import xdg_data_home

log = logging.getLogger(__name__)

MAX_SESSIONS = 1000


def history_path() -> Path:
    """Location of the history file, resolved against the current environment."""
    return xdg_data_home() / "reclaim" / "history.json"


def load_history() -> dict[str, Any]:
    """Load the history file, returning an empty structure if missing or unreadable."""
    path = history_path()
    if not path.exists():
        return {"sessions": []}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        log.exception("Failed to load history file: %s", path)
        return {"sessions": []}
    if not isinstance(data, dict) or not isinstance(data.get("sessions"), list):
        log.warning("Ignoring malformed history file: %s", path)
        return {"sessions": []}
    return data


def save_history(data: dict[str, Any]) -> None:
    """Write the history atomically, keeping only the newest sessions."""
    path = history_path()
    sessions = data.get("sessions", [])
    if len(sessions) > MAX_SESSIONS:
        data = {**data, "sessions": sessions[-MAX_SESSIONS:]}
    tmp = path.with_suffix(".json.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except OSError:
        log.exception("Failed to save history file: %s", path)


def append_session(entry: dict[str, Any]) -> None:
    history = load_history()
    history["sessions"].append(entry)
    save_history(history)
