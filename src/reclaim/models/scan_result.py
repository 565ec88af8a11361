"""Scan result dataclasses."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from reclaim.models.category import Category


@dataclass(slots=True, eq=False)
class ScannedItem:
    """One discovered candidate for cleanup.

    Identity is the generated ``id``; two scans of the same tree yield
    items with equal paths and sizes but different identifiers.
    """

    path: Path
    size_bytes: int
    category: Category
    modified: datetime | None = None
    selected: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def safe_size(self) -> int:
        """Size clamped to a non-negative value for display and totals."""
        return max(0, self.size_bytes)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ScannedItem) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)


class SkipReason(Enum):
    PROTECTED = "protected"
    EXCLUDED = "excluded"
    IO_ERROR = "io_error"


@dataclass(slots=True, frozen=True)
class SkipEvent:
    """A path the scan passed over without failing."""

    path: Path
    reason: SkipReason
    message: str = ""


@dataclass(slots=True)
class ScanOptions:
    """Tunable thresholds supplied by the caller (normally from Settings)."""

    large_file_threshold: int = 500 * 1024 * 1024
    old_download_days: int = 30
    min_item_size: int | None = None
    exclusions: tuple[Path, ...] = ()
    max_workers: int = 4


@dataclass(slots=True)
class ScanResult:
    """Aggregate result of one category scan pass."""

    items: list[ScannedItem] = field(default_factory=list)
    skipped: list[SkipEvent] = field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False

    @property
    def total_size(self) -> int:
        return sum(i.safe_size for i in self.items)

    @property
    def selected_items(self) -> list[ScannedItem]:
        return [i for i in self.items if i.selected]

    @property
    def selected_size(self) -> int:
        return sum(i.safe_size for i in self.selected_items)

    @property
    def protected_count(self) -> int:
        return sum(1 for s in self.skipped if s.reason is SkipReason.PROTECTED)

    @property
    def error_count(self) -> int:
        return sum(1 for s in self.skipped if s.reason is SkipReason.IO_ERROR)

    def items_by_category(self) -> dict[Category, list[ScannedItem]]:
        grouped: dict[Category, list[ScannedItem]] = {}
        for item in self.items:
            grouped.setdefault(item.category, []).append(item)
        return grouped

    def size_by_category(self) -> dict[Category, int]:
        return {cat: sum(i.safe_size for i in items) for cat, items in self.items_by_category().items()}

    def select_all(self) -> None:
        for item in self.items:
            item.selected = True

    def deselect_all(self) -> None:
        for item in self.items:
            item.selected = False

    def toggle(self, item_id: str) -> None:
        for item in self.items:
            if item.id == item_id:
                item.selected = not item.selected
                return

    def toggle_category(self, category: Category) -> None:
        """Select every item of a category, or deselect all if already fully selected."""
        members = [i for i in self.items if i.category is category]
        target = not all(i.selected for i in members)
        for item in members:
            item.selected = target

    def remove(self, paths: Iterable[Path]) -> None:
        """Drop items whose paths were deleted."""
        gone = set(paths)
        self.items = [i for i in self.items if i.path not in gone]


class SortOrder(Enum):
    SIZE_DESCENDING = "Size (Largest First)"
    SIZE_ASCENDING = "Size (Smallest First)"
    NAME_ASCENDING = "Name (A-Z)"
    NAME_DESCENDING = "Name (Z-A)"
    DATE_NEWEST = "Date (Newest First)"
    DATE_OLDEST = "Date (Oldest First)"
    CATEGORY = "Category"

    def sort(self, items: Iterable[ScannedItem]) -> list[ScannedItem]:
        """Return a new list ordered by this sort order."""
        items = list(items)
        match self:
            case SortOrder.SIZE_DESCENDING:
                return sorted(items, key=lambda i: i.size_bytes, reverse=True)
            case SortOrder.SIZE_ASCENDING:
                return sorted(items, key=lambda i: i.size_bytes)
            case SortOrder.NAME_ASCENDING:
                return sorted(items, key=lambda i: i.name.casefold())
            case SortOrder.NAME_DESCENDING:
                return sorted(items, key=lambda i: i.name.casefold(), reverse=True)
            case SortOrder.DATE_NEWEST:
                return sorted(items, key=_date_key, reverse=True)
            case SortOrder.DATE_OLDEST:
                return sorted(items, key=_date_key)
            case SortOrder.CATEGORY:
                return sorted(items, key=lambda i: i.category.value)
        return items


def _date_key(item: ScannedItem) -> float:
    # Missing dates sort as the distant past.
    return item.modified.timestamp() if item.modified else float("-inf")
