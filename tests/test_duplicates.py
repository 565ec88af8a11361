"""Tests for duplicate detection."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from reclaim.core.cancel import CancellationToken, ScanCancelled
from reclaim.core.duplicates import DuplicateDetector, keep_newest, keep_shallowest, sha256_file
from reclaim.models.scan_result import SkipReason

from conftest import write_file

MB = 1024 * 1024


@pytest.fixture
def detector(fake_home):
    return DuplicateDetector(max_workers=2)


class TestGrouping:
    def test_identical_files_grouped_oldest_kept(self, detector, fake_home):
        payload = os.urandom(1024) * (50 * 1024)  # 50 MB
        older = write_file(fake_home / "a" / "copy1.bin", content=payload, age_days=10)
        newer = write_file(fake_home / "b" / "copy2.bin", content=payload, age_days=1)

        groups = detector.scan([fake_home])

        assert len(groups) == 1
        group = groups[0]
        assert group.size_bytes == 50 * MB
        assert group.wasted_space == 50 * MB
        assert group.original.path == older
        assert [f.path for f in group.selected_files] == [newer]
        assert group.fingerprint == sha256_file(older)

    def test_same_size_different_content_not_grouped(self, detector, fake_home):
        write_file(fake_home / "x.bin", content=b"a" * 4096)
        write_file(fake_home / "y.bin", content=b"b" * 4096)
        assert detector.scan([fake_home]) == []

    def test_minimum_size_filter(self, detector, fake_home):
        write_file(fake_home / "s1.txt", content=b"tiny")
        write_file(fake_home / "s2.txt", content=b"tiny")

        assert detector.scan([fake_home]) == []
        assert len(detector.scan([fake_home], minimum_size=1)) == 1

    def test_groups_sorted_by_wasted_space(self, detector, fake_home):
        for i in range(3):
            write_file(fake_home / "small" / f"{i}.bin", content=b"s" * 2000)
        for i in range(2):
            write_file(fake_home / "large" / f"{i}.bin", content=b"L" * 10_000)

        groups = detector.scan([fake_home])

        assert [g.wasted_space for g in groups] == [10_000, 4000]

    def test_hard_links_counted_once(self, detector, fake_home):
        original = write_file(fake_home / "orig.bin", content=b"h" * 5000)
        os.link(original, fake_home / "hardlink.bin")
        assert detector.scan([fake_home]) == []

    def test_overlapping_roots_counted_once(self, detector, fake_home):
        write_file(fake_home / "dir" / "one.bin", content=b"o" * 5000)
        write_file(fake_home / "dir" / "sub" / "two.bin", content=b"o" * 5000)

        groups = detector.scan([fake_home / "dir", fake_home / "dir" / "sub"])

        assert len(groups) == 1
        assert len(groups[0].files) == 2

    def test_symlinks_ignored(self, detector, fake_home):
        target = write_file(fake_home / "real.bin", content=b"r" * 5000)
        os.symlink(target, fake_home / "alias.bin")
        assert detector.scan([fake_home]) == []

    def test_protected_paths_skipped(self, detector, fake_home):
        write_file(fake_home / "Keychains" / "k1.bin", content=b"k" * 5000)
        write_file(fake_home / "plain" / "k2.bin", content=b"k" * 5000)
        skipped = []

        assert detector.scan([fake_home], skipped=skipped) == []
        assert any(s.reason is SkipReason.PROTECTED for s in skipped)

    def test_home_directory_as_root(self, detector, fake_home):
        write_file(fake_home / "one.bin", content=b"h" * 8192, age_days=2)
        write_file(fake_home / "Pictures" / "two.bin", content=b"h" * 8192)
        skipped = []

        groups = detector.scan([Path.home()], skipped=skipped)

        assert len(groups) == 1
        assert groups[0].original.path == fake_home / "one.bin"
        assert skipped == []

    def test_forbidden_root_skipped(self, detector):
        skipped = []
        assert detector.scan(["/etc"], skipped=skipped) == []
        assert skipped[0].reason is SkipReason.PROTECTED

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can read anything")
    def test_unreadable_file_left_out(self, detector, fake_home):
        for name in ("p1.bin", "p2.bin", "p3.bin"):
            write_file(fake_home / name, content=b"q" * 5000)
        (fake_home / "p3.bin").chmod(0)
        skipped = []
        try:
            groups = detector.scan([fake_home], skipped=skipped)
        finally:
            (fake_home / "p3.bin").chmod(0o644)

        assert len(groups) == 1
        assert {f.path.name for f in groups[0].files} == {"p1.bin", "p2.bin"}
        assert [s.reason for s in skipped] == [SkipReason.IO_ERROR]


class TestKeepPolicies:
    def test_keep_newest(self, fake_home):
        old = write_file(fake_home / "old.bin", content=b"n" * 5000, age_days=5)
        new = write_file(fake_home / "new.bin", content=b"n" * 5000, age_days=1)

        group = DuplicateDetector(keep_policy=keep_newest).scan([fake_home])[0]

        assert group.original.path == new
        assert [f.path for f in group.files_to_delete] == [old]

    def test_keep_shallowest(self, fake_home):
        deep = write_file(fake_home / "a" / "b" / "c" / "deep.bin", content=b"d" * 5000, age_days=9)
        top = write_file(fake_home / "top.bin", content=b"d" * 5000, age_days=1)

        group = DuplicateDetector(keep_policy=keep_shallowest).scan([fake_home])[0]

        assert group.original.path == top
        assert [f.path for f in group.files_to_delete] == [deep]

    def test_group_never_deletes_every_copy(self, detector, fake_home):
        for i in range(3):
            write_file(fake_home / f"c{i}.bin", content=b"c" * 5000)
        group = detector.scan([fake_home])[0]

        for member in group.files:
            member.selected = True

        assert len(group.files_to_delete) == 2
        assert group.original not in group.files_to_delete


class TestCancellation:
    def test_pre_cancelled(self, detector, fake_home):
        write_file(fake_home / "a.bin", content=b"a" * 5000)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ScanCancelled):
            detector.scan([fake_home], token=token)

    def test_cancel_during_hashing(self, fake_home):
        for i in range(40):
            write_file(fake_home / f"f{i:02d}.bin", content=b"z" * 5000)
        token = CancellationToken()
        detector = DuplicateDetector(max_workers=1)

        def on_progress(count, status):
            if status.startswith("Hashing"):
                token.cancel()

        with pytest.raises(ScanCancelled):
            detector.scan([fake_home], on_progress=on_progress, token=token)
