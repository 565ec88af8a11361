"""Deletion result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Outcome(Enum):
    DELETED = "deleted"
    PROTECTED = "protected"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ItemOutcome:
    """What happened to one path handed to the deletion choke point."""

    path: Path
    outcome: Outcome
    size_bytes: int = 0
    reason: str = ""
    category: str = ""


@dataclass(slots=True)
class CleanResult:
    """Result of a deletion batch."""

    outcomes: list[ItemOutcome] = field(default_factory=list)
    cancelled: bool = False

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)

    @property
    def deleted_count(self) -> int:
        return self._count(Outcome.DELETED)

    @property
    def protected_count(self) -> int:
        return self._count(Outcome.PROTECTED)

    @property
    def missing_count(self) -> int:
        return self._count(Outcome.MISSING)

    @property
    def failed_count(self) -> int:
        return self._count(Outcome.FAILED)

    @property
    def freed_bytes(self) -> int:
        return sum(max(0, o.size_bytes) for o in self.outcomes if o.outcome is Outcome.DELETED)

    @property
    def deleted_paths(self) -> set[Path]:
        return {o.path for o in self.outcomes if o.outcome in (Outcome.DELETED, Outcome.MISSING)}

    @property
    def errors(self) -> list[str]:
        return [f"{o.path}: {o.reason}" for o in self.outcomes if o.outcome is Outcome.FAILED]

    @property
    def summary(self) -> str:
        return (
            f"{self.deleted_count} deleted, {self.protected_count} protected, "
            f"{self.missing_count} missing, {self.failed_count} failed"
        )
