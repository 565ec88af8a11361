"""Duplicate detection dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(slots=True)
class DuplicateFile:
    """One member of a duplicate group."""

    path: Path
    modified: datetime | None = None
    created: datetime | None = None
    selected: bool = False
    is_original: bool = False

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(slots=True)
class DuplicateGroup:
    """Files sharing one size and one content fingerprint."""

    fingerprint: str
    size_bytes: int
    files: list[DuplicateFile] = field(default_factory=list)

    @property
    def wasted_space(self) -> int:
        return self.size_bytes * max(0, len(self.files) - 1)

    @property
    def original(self) -> DuplicateFile | None:
        return next((f for f in self.files if f.is_original), None)

    @property
    def selected_files(self) -> list[DuplicateFile]:
        return [f for f in self.files if f.selected]

    @property
    def files_to_delete(self) -> list[DuplicateFile]:
        """Selected members, always leaving at least one copy behind."""
        selected = self.selected_files
        if selected and len(selected) == len(self.files):
            keep = self.original or self.files[0]
            selected = [f for f in selected if f is not keep]
        return selected

    def toggle(self, path: Path) -> None:
        for member in self.files:
            if member.path == path:
                member.selected = not member.selected
                return

    def remove(self, path: Path) -> None:
        """Drop a member that no longer exists on disk."""
        self.files = [f for f in self.files if f.path != path]
        if self.files and self.original is None:
            self.files[0].is_original = True
            self.files[0].selected = False


def prune_groups(groups: list[DuplicateGroup], deleted: set[Path]) -> list[DuplicateGroup]:
    """Remove deleted members and drop groups with fewer than two left."""
    remaining: list[DuplicateGroup] = []
    for group in groups:
        for path in deleted:
            group.remove(path)
        if len(group.files) >= 2:
            remaining.append(group)
    return remaining


@dataclass(slots=True, frozen=True)
class DuplicateOptions:
    """Tunables for a duplicate scan."""

    minimum_size: int = 1024
    keep_policy: str = "oldest"
    max_workers: int = 4
