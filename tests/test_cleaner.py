"""Tests for the deletion choke point."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from reclaim.core.cancel import CancellationToken
from reclaim.core.cleaner import Cleaner
from reclaim.models.category import Category
from reclaim.models.clean_result import Outcome
from reclaim.models.duplicate import DuplicateFile, DuplicateGroup
from reclaim.models.scan_result import ScannedItem

from conftest import write_file


class FakeRecycler:
    """Records recycled paths and removes them so the outcome is observable."""

    def __init__(self, error: Exception | None = None):
        self.recycled: list[str] = []
        self.error = error

    def __call__(self, path: str) -> None:
        if self.error is not None:
            raise self.error
        self.recycled.append(path)
        if os.path.isdir(path):
            shutil.rmtree(path)
        else:
            os.unlink(path)


@pytest.fixture
def recycler():
    return FakeRecycler()


@pytest.fixture
def cleaner(fake_home, recycler):
    return Cleaner(recycler=recycler)


class TestDeletePaths:
    def test_allowed_path_recycled(self, cleaner, recycler, fake_home):
        target = write_file(fake_home / "Library" / "Caches" / "App" / "blob", content=b"x" * 2048)

        result = cleaner.delete_paths([target.parent])

        assert result.deleted_count == 1
        assert result.freed_bytes == 2048
        assert recycler.recycled == [str(target.parent)]
        assert not target.parent.exists()

    def test_protected_path_refused(self, cleaner, recycler):
        result = cleaner.delete_paths(["/etc/hosts", "/System/Library"])

        assert result.protected_count == 2
        assert result.deleted_count == 0
        assert recycler.recycled == []
        assert os.path.exists("/etc/hosts")

    def test_home_itself_refused(self, cleaner, fake_home):
        result = cleaner.delete_paths([fake_home])
        assert result.outcomes[0].outcome is Outcome.PROTECTED
        assert fake_home.exists()

    def test_missing_path_reported(self, cleaner, fake_home):
        result = cleaner.delete_paths([fake_home / "gone"])

        assert result.missing_count == 1
        assert result.deleted_paths == {fake_home / "gone"}
        assert result.freed_bytes == 0

    def test_symlink_swapped_after_scan_refused(self, cleaner, fake_home, tmp_path):
        outside = tmp_path / "precious"
        write_file(outside / "data.txt", content=b"keep me")
        cache = fake_home / "Library" / "Caches" / "Swapped"
        os.makedirs(cache.parent, exist_ok=True)
        os.symlink(outside, cache)

        result = cleaner.delete_paths([cache])

        assert result.protected_count == 1
        assert (outside / "data.txt").exists()

    def test_recycler_error_reported_per_item(self, fake_home):
        target = write_file(fake_home / "Downloads" / "locked.bin", content=b"l" * 10)
        ok = write_file(fake_home / "Downloads" / "fine.bin", content=b"f" * 10)
        calls = []

        def flaky(path):
            calls.append(path)
            if path.endswith("locked.bin"):
                raise PermissionError(13, "Permission denied", path)
            os.unlink(path)

        result = Cleaner(recycler=flaky).delete_paths([target, ok])

        assert result.failed_count == 1
        assert result.deleted_count == 1
        assert result.errors == [f"{target}: Permission denied: {target}"]
        assert calls == [str(target), str(ok)]

    def test_non_os_error_reported(self, fake_home):
        target = write_file(fake_home / "Downloads" / "x.bin", content=b"x")
        result = Cleaner(recycler=FakeRecycler(RuntimeError("trash unavailable"))).delete_paths([target])

        assert result.failed_count == 1
        assert "trash unavailable" in result.outcomes[0].reason

    def test_permanent_bypasses_recycler(self, cleaner, recycler, fake_home):
        target = write_file(fake_home / "Downloads" / "p.bin", content=b"p" * 10)

        result = cleaner.delete_paths([target], permanent=True)

        assert result.deleted_count == 1
        assert recycler.recycled == []
        assert not target.exists()

    def test_cancellation_stops_batch(self, cleaner, fake_home):
        files = [write_file(fake_home / "Downloads" / f"{i}.bin", content=b"c") for i in range(3)]
        token = CancellationToken()
        token.cancel()

        result = cleaner.delete_paths(files, token=token)

        assert result.cancelled
        assert result.outcomes == []
        assert all(f.exists() for f in files)

    def test_progress_reported(self, cleaner, fake_home):
        files = [write_file(fake_home / "Downloads" / f"{i}.bin", content=b"c") for i in range(7)]
        reports = []

        cleaner.delete_paths(files, on_progress=lambda done, status: reports.append(done))

        assert reports == [5, 7]


class TestDeleteItems:
    def test_trash_items_removed_permanently(self, cleaner, recycler, fake_home):
        trashed = write_file(fake_home / ".Trash" / "old.txt", content=b"t" * 3)
        cached = write_file(fake_home / "Library" / "Caches" / "C" / "f", content=b"c" * 5)
        items = [
            ScannedItem(trashed, 3, Category.TRASH),
            ScannedItem(cached.parent, 5, Category.SYSTEM_CACHES),
        ]

        result = cleaner.delete_items(items)

        assert result.deleted_count == 2
        assert recycler.recycled == [str(cached.parent)]
        assert not trashed.exists()
        assert {o.category for o in result.outcomes} == {"trash", "system_caches"}

    def test_summary(self, cleaner, fake_home):
        item = ScannedItem(fake_home / "Library" / "Caches" / "Nope", 10, Category.SYSTEM_CACHES)
        result = cleaner.delete_items([item, ScannedItem(Path("/usr/lib"), 1, Category.LOG_FILES)])
        assert result.summary == "0 deleted, 1 protected, 1 missing, 0 failed"


class TestDeleteDuplicates:
    def test_original_always_kept(self, cleaner, fake_home):
        paths = [write_file(fake_home / f"dup{i}.bin", content=b"d" * 100) for i in range(3)]
        group = DuplicateGroup(
            "hash",
            100,
            [DuplicateFile(p, selected=True, is_original=(i == 0)) for i, p in enumerate(paths)],
        )

        result = cleaner.delete_duplicates([group])

        assert result.deleted_count == 2
        assert result.freed_bytes == 200
        assert paths[0].exists()
        assert not paths[1].exists() and not paths[2].exists()
