"""Tests for the tracker module."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import reclaim.storage as storage
from reclaim.core.tracker import Tracker
from reclaim.models.clean_result import CleanResult, ItemOutcome, Outcome
from reclaim.storage import load_history, save_history

pytestmark = pytest.mark.usefixtures("isolate_storage")


def _result(*outcomes: tuple[str, Outcome, int]) -> CleanResult:
    return CleanResult(
        outcomes=[ItemOutcome(Path(f"/h/{i}"), outcome, size, "", category) for i, (category, outcome, size) in
                  enumerate(outcomes)]
    )


class TestTracker:
    def test_session_tracking(self):
        tracker = Tracker()
        tracker.record(_result(("system_caches", Outcome.DELETED, 1024), ("trash", Outcome.DELETED, 2048)))
        tracker.record(_result(("trash", Outcome.FAILED, 4096)))

        assert tracker.session_bytes_freed == 1024 + 2048
        assert tracker.session_items_removed == 2

    def test_save_session_groups_by_category(self, isolate_storage):
        tracker = Tracker()
        tracker.record(
            _result(
                ("trash", Outcome.DELETED, 5000),
                ("trash", Outcome.DELETED, 1000),
                ("duplicates", Outcome.DELETED, 10),
                ("trash", Outcome.PROTECTED, 99999),
            )
        )
        tracker.save_session()

        history = json.loads(isolate_storage.read_text())
        assert len(history["sessions"]) == 1
        assert history["sessions"][0]["details"] == [
            {"category": "duplicates", "bytes_freed": 10, "items_removed": 1},
            {"category": "trash", "bytes_freed": 6000, "items_removed": 2},
        ]
        assert tracker.session_bytes_freed == 0

    def test_nothing_deleted_saves_nothing(self, isolate_storage):
        tracker = Tracker()
        tracker.record(_result(("trash", Outcome.MISSING, 0)))
        tracker.save_session()
        assert not isolate_storage.exists()

    def test_multiple_sessions(self):
        t1 = Tracker()
        t1.record(_result(("a", Outcome.DELETED, 100)))
        t1.save_session()

        t2 = Tracker()
        t2.record(_result(("b", Outcome.DELETED, 200)))
        t2.save_session()

        stats = t2.get_stats("all")
        assert stats["session_count"] == 2
        assert stats["lifetime_bytes_freed"] == 300
        assert stats["items_removed"] == 2
        assert set(stats["per_category"]) == {"a", "b"}

    def test_uncategorized_outcomes(self):
        tracker = Tracker()
        tracker.record(_result(("", Outcome.DELETED, 7)))
        tracker.save_session()
        assert tracker.get_stats()["per_category"] == {"other": {"bytes_freed": 7, "items_removed": 1}}

    def test_period_filters(self):
        old = (datetime.now(timezone.utc) - timedelta(days=20)).isoformat()
        ancient = (datetime.now(timezone.utc) - timedelta(days=400)).isoformat()
        save_history(
            {
                "sessions": [
                    {"timestamp": ancient, "details": [{"category": "x", "bytes_freed": 1, "items_removed": 1}]},
                    {"timestamp": old, "details": [{"category": "x", "bytes_freed": 10, "items_removed": 1}]},
                ]
            }
        )
        tracker = Tracker()
        tracker.record(_result(("x", Outcome.DELETED, 100)))
        tracker.save_session()

        assert tracker.get_stats("today")["bytes_freed"] == 100
        assert tracker.get_stats("week")["bytes_freed"] == 100
        assert tracker.get_stats("month")["bytes_freed"] == 110
        assert tracker.get_stats("all")["bytes_freed"] == 111
        assert tracker.get_stats("today")["lifetime_bytes_freed"] == 111

    def test_last_clean_time(self):
        tracker = Tracker()
        assert tracker.get_last_clean_time() is None
        tracker.record(_result(("x", Outcome.DELETED, 1)))
        tracker.save_session()
        assert tracker.get_last_clean_time() is not None


class TestStorage:
    def test_corrupt_history_treated_as_empty(self, isolate_storage):
        isolate_storage.parent.mkdir(parents=True)
        isolate_storage.write_text("{not json")
        assert load_history() == {"sessions": []}

    def test_malformed_history_treated_as_empty(self, isolate_storage):
        isolate_storage.parent.mkdir(parents=True)
        isolate_storage.write_text(json.dumps({"sessions": "nope"}))
        assert load_history() == {"sessions": []}

    def test_history_is_capped(self, isolate_storage, monkeypatch):
        monkeypatch.setattr(storage, "MAX_SESSIONS", 3)
        save_history({"sessions": [{"timestamp": str(i), "details": []} for i in range(5)]})

        assert [s["timestamp"] for s in load_history()["sessions"]] == ["2", "3", "4"]
