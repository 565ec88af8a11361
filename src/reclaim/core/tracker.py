"""Tracks freed space across cleaning sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from reclaim.models.clean_result import CleanResult, Outcome
from reclaim.storage import append_session, load_history

log = logging.getLogger(__name__)

PERIODS = ("today", "week", "month", "all")

_UNCATEGORIZED = "other"


class Tracker:
    """Accumulates deletion results and persists them as history sessions."""

    def __init__(self) -> None:
        self._results: list[CleanResult] = []

    @property
    def session_bytes_freed(self) -> int:
        return sum(r.freed_bytes for r in self._results)

    @property
    def session_items_removed(self) -> int:
        return sum(r.deleted_count for r in self._results)

    def record(self, result: CleanResult) -> None:
        self._results.append(result)

    def get_last_clean_time(self) -> str | None:
        """Return ISO timestamp of the most recent cleaning session, or None."""
        sessions = load_history().get("sessions", [])
        return sessions[-1]["timestamp"] if sessions else None

    def save_session(self) -> None:
        """Persist the recorded results as one history session."""
        entry = self._build_session_entry()
        if not entry["details"]:
            self._results.clear()
            return
        append_session(entry)
        log.info(
            "Saved session: %d bytes freed across %d categories",
            _session_bytes(entry),
            len(entry["details"]),
        )
        self._results.clear()

    def get_stats(self, period: str = "all") -> dict[str, Any]:
        """Aggregate history for a period.

        Args:
            period: One of 'today', 'week', 'month', 'all'.
        """
        all_sessions = load_history().get("sessions", [])

        match period:
            case "today":
                cutoff = _start_of_today()
            case "week":
                cutoff = _start_of_today() - timedelta(days=7)
            case "month":
                cutoff = _start_of_today() - timedelta(days=30)
            case _:
                cutoff = None

        if cutoff is not None:
            sessions = [s for s in all_sessions if _timestamp(s) >= cutoff]
        else:
            sessions = all_sessions

        return {
            "period": period,
            "bytes_freed": sum(_session_bytes(s) for s in sessions),
            "items_removed": sum(_session_items(s) for s in sessions),
            "session_count": len(sessions),
            "lifetime_bytes_freed": sum(_session_bytes(s) for s in all_sessions),
            "per_category": _aggregate_categories(sessions),
        }

    def _build_session_entry(self) -> dict[str, Any]:
        per_category: dict[str, dict[str, int]] = {}
        for result in self._results:
            for item in result.outcomes:
                if item.outcome is not Outcome.DELETED:
                    continue
                totals = per_category.setdefault(
                    item.category or _UNCATEGORIZED, {"bytes_freed": 0, "items_removed": 0}
                )
                totals["bytes_freed"] += max(0, item.size_bytes)
                totals["items_removed"] += 1
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": [{"category": name, **totals} for name, totals in sorted(per_category.items())],
        }


def _aggregate_categories(sessions: list[dict[str, Any]]) -> dict[str, dict[str, int]]:
    totals: dict[str, dict[str, int]] = {}
    for session in sessions:
        for detail in session.get("details", []):
            bucket = totals.setdefault(
                detail.get("category", _UNCATEGORIZED), {"bytes_freed": 0, "items_removed": 0}
            )
            bucket["bytes_freed"] += detail.get("bytes_freed", 0)
            bucket["items_removed"] += detail.get("items_removed", 0)
    return totals


def _session_bytes(session: dict[str, Any]) -> int:
    return sum(d.get("bytes_freed", 0) for d in session.get("details", []))


def _session_items(session: dict[str, Any]) -> int:
    return sum(d.get("items_removed", 0) for d in session.get("details", []))


def _timestamp(session: dict[str, Any]) -> datetime:
    try:
        stamp = datetime.fromisoformat(session["timestamp"])
    except (KeyError, TypeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def _start_of_today() -> datetime:
    """Return the start of the current UTC day."""
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)
