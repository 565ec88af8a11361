"""JSON-backed settings store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from reclaim.models.category import Category
from reclaim.models.duplicate import DuplicateOptions
from reclaim.models.scan_result import ScanOptions
from reclaim.utils import xdg_config_home

log = logging.getLogger(__name__)

_SETTINGS_DIR = "reclaim"
_SETTINGS_FILE = "settings.json"

DEFAULTS: dict[str, Any] = {
    "scan.large_file_threshold": 500 * 1024 * 1024,
    "scan.old_download_days": 30,
    # None defers to each category's own minimum (1 MiB, trash excepted).
    "scan.min_item_size": None,
    "scan.enabled_categories": None,
    "scan.exclusions": [],
    "duplicates.minimum_size": 1024,
    "duplicates.keep_policy": "oldest",
    "duplicates.max_workers": 4,
}


class Settings:
    """Persistent settings backed by a JSON file.

    Uses dot-notation keys for nested access:
        settings.get("scan.old_download_days")  # reads data["scan"]["old_download_days"]
        settings.set("scan.exclusions", ["~/Downloads/keep"])  # writes + saves
    """

    _instance: Settings | None = None

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or (xdg_config_home() / _SETTINGS_DIR / _SETTINGS_FILE)
        self._data: dict[str, Any] = {}
        self._load()

    @classmethod
    def instance(cls) -> Settings:
        """Return the singleton settings instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key, falling back to the built-in default."""
        if default is None:
            default = DEFAULTS.get(key)
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-notation key and persist to disk."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    def enabled_categories(self) -> list[Category]:
        """Categories the user enabled, all of them when unset."""
        raw = self.get("scan.enabled_categories")
        if not raw:
            return list(Category)
        enabled: list[Category] = []
        for value in raw:
            try:
                enabled.append(Category.from_slug(value))
            except ValueError:
                log.warning("Ignoring unknown category in settings: %s", value)
        return enabled

    def exclusions(self) -> tuple[Path, ...]:
        return tuple(Path(p).expanduser() for p in self.get("scan.exclusions") or [])

    def scan_options(self) -> ScanOptions:
        """Build scanner options from the persisted thresholds."""
        return ScanOptions(
            large_file_threshold=_as_int(self.get("scan.large_file_threshold"), DEFAULTS["scan.large_file_threshold"]),
            old_download_days=_as_int(self.get("scan.old_download_days"), DEFAULTS["scan.old_download_days"]),
            min_item_size=_optional_int(self.get("scan.min_item_size")),
            exclusions=self.exclusions(),
        )

    def duplicate_options(self) -> DuplicateOptions:
        policy = self.get("duplicates.keep_policy")
        if policy not in ("oldest", "newest", "shallowest"):
            log.warning("Unknown keep policy %r, keeping the oldest copy", policy)
            policy = "oldest"
        return DuplicateOptions(
            minimum_size=_as_int(self.get("duplicates.minimum_size"), DEFAULTS["duplicates.minimum_size"]),
            keep_policy=policy,
            max_workers=max(1, _as_int(self.get("duplicates.max_workers"), DEFAULTS["duplicates.max_workers"])),
        )

    def _load(self) -> None:
        """Load settings from disk, gracefully handling errors."""
        if not self._path.exists():
            return
        try:
            self._data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Could not load settings from %s: %s", self._path, e)
            self._data = {}

    def _save(self) -> None:
        """Persist settings to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as e:
            log.warning("Could not save settings to %s: %s", self._path, e)


def _as_int(value: Any, fallback: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        log.warning("Invalid numeric setting %r, using %d", value, fallback)
        return fallback


def _optional_int(value: Any) -> int | None:
    return None if value is None else _as_int(value, 0)
