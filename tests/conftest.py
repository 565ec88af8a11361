"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from reclaim.settings import Settings
from reclaim.storage import history_path


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Point HOME and the XDG directories at a scratch tree."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    monkeypatch.setattr(Settings, "_instance", None)
    return home


@pytest.fixture
def isolate_storage(fake_home):
    """History file inside the fake home."""
    return history_path()


def write_file(path: Path, size: int = 0, content: bytes | None = None, age_days: float | None = None) -> Path:
    """Create *path* with *size* bytes (sparse) or explicit *content*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if content is not None:
        path.write_bytes(content)
    else:
        with open(path, "wb") as f:
            f.truncate(size)
    if age_days is not None:
        stamp = (datetime.now() - timedelta(days=age_days)).timestamp()
        os.utime(path, (stamp, stamp))
    return path
