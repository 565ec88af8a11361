"""Tests for the JSON payloads sent over D-Bus."""

from __future__ import annotations

from pathlib import Path

from reclaim.dbus_service import result_to_dict, task_to_dict
from reclaim.models.category import Category
from reclaim.models.clean_result import CleanResult, ItemOutcome, Outcome
from reclaim.models.duplicate import DuplicateFile, DuplicateGroup
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScannedItem, ScanResult
from reclaim.models.task import BackgroundTask, TaskStatus


class TestTaskPayload:
    def test_fields(self):
        task = BackgroundTask(id="t1", label="Scanning", feature="scan", progress=0.5, status_text="halfway")
        data = task_to_dict(task)
        assert data["id"] == "t1"
        assert data["status"] == TaskStatus.RUNNING.value
        assert data["progress"] == 0.5
        assert data["elapsed"] >= 0


class TestResultPayload:
    def test_scan_result(self):
        item = ScannedItem(Path("/h/cache"), 2048, Category.SYSTEM_CACHES)
        data = result_to_dict(ScanResult(items=[item]))
        assert data["kind"] == "scan"
        assert data["total_bytes"] == 2048
        assert data["items"][0] == {
            "id": item.id,
            "path": "/h/cache",
            "size_bytes": 2048,
            "category": "system_caches",
            "selected": True,
        }

    def test_tree(self):
        node = FileTreeNode(Path("/h"), True, 10)
        data = result_to_dict(node)
        assert data["kind"] == "tree"
        assert data["tree"]["size"] == 10

    def test_clean_result(self):
        result = CleanResult(outcomes=[ItemOutcome(Path("/h/a"), Outcome.DELETED, 100)])
        data = result_to_dict(result)
        assert data["kind"] == "clean"
        assert data["freed_bytes"] == 100
        assert data["errors"] == []

    def test_duplicate_groups(self):
        group = DuplicateGroup(
            "abc",
            50,
            [DuplicateFile(Path("/h/1"), is_original=True), DuplicateFile(Path("/h/2"), selected=True)],
        )
        data = result_to_dict([group])
        assert data["kind"] == "duplicates"
        assert data["groups"][0]["wasted_bytes"] == 50
        assert data["groups"][0]["files"] == [
            {"path": "/h/1", "keep": True},
            {"path": "/h/2", "keep": False},
        ]

    def test_unknown(self):
        assert result_to_dict(42) == {"kind": "unknown"}
