"""Content-based duplicate detection."""

from __future__ import annotations

import hashlib
import logging
import os
import stat
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path

from reclaim.core.cancel import CancellationToken, ScanCancelled
from reclaim.core.guard import PathSafetyGuard
from reclaim.models.duplicate import DuplicateFile, DuplicateGroup
from reclaim.models.scan_result import SkipEvent, SkipReason
from reclaim.utils import ProgressCallback, ProgressThrottle

log = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024  # 1 MB

KeepPolicy = Callable[[list[DuplicateFile]], DuplicateFile]


def _mtime_key(member: DuplicateFile) -> float:
    return member.modified.timestamp() if member.modified else float("inf")


def keep_oldest(members: list[DuplicateFile]) -> DuplicateFile:
    """Keep the earliest-modified copy; ties go to the lowest path."""
    return min(members, key=lambda m: (_mtime_key(m), str(m.path)))


def keep_newest(members: list[DuplicateFile]) -> DuplicateFile:
    """Keep the most recently modified copy; ties go to the lowest path."""
    return min(members, key=lambda m: (-m.modified.timestamp() if m.modified else float("inf"), str(m.path)))


def keep_shallowest(members: list[DuplicateFile]) -> DuplicateFile:
    """Keep the copy closest to the filesystem root; ties go to the oldest."""
    return min(members, key=lambda m: (len(m.path.parts), _mtime_key(m), str(m.path)))


KEEP_POLICIES: dict[str, KeepPolicy] = {
    "oldest": keep_oldest,
    "newest": keep_newest,
    "shallowest": keep_shallowest,
}


def sha256_file(path: Path | str) -> str:
    """Compute SHA-256 of a file using chunked reads."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            h.update(chunk)
    return h.hexdigest()


class DuplicateDetector:
    """Finds files with identical content under one or more roots.

    Files are bucketed by exact size first; only buckets with at least two
    members are hashed. Hashing runs on a bounded thread pool so parallel
    reads do not thrash the disk.
    """

    def __init__(
        self,
        guard: PathSafetyGuard | None = None,
        max_workers: int = 4,
        keep_policy: KeepPolicy = keep_oldest,
    ) -> None:
        self.guard = guard or PathSafetyGuard()
        self.max_workers = max(1, max_workers)
        self.keep_policy = keep_policy

    def scan(
        self,
        roots: Iterable[Path | str],
        minimum_size: int = 1024,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
        skipped: list[SkipEvent] | None = None,
    ) -> list[DuplicateGroup]:
        """Return duplicate groups found under *roots*, largest waste first.

        Raises:
            ScanCancelled: if *token* is cancelled. The file being hashed
                when cancellation arrives is finished first.
        """
        token = token or CancellationToken()
        progress = ProgressThrottle(on_progress)
        events: list[SkipEvent] = []
        try:
            buckets = self._bucket_by_size(roots, max(0, minimum_size), token, progress, events)
            candidates = [paths for paths in buckets.values() if len(paths) >= 2]
            total = sum(len(paths) for paths in candidates)
            log.debug("%d files share a size with another file", total)
            progress.flush(f"Hashing {total} candidates")

            groups: list[DuplicateGroup] = []
            digests = self._hash_all([p for paths in candidates for p in paths], token, progress, events)
            for paths in candidates:
                by_hash: dict[str, list[str]] = {}
                for path in paths:
                    digest = digests.get(path)
                    if digest is not None:
                        by_hash.setdefault(digest, []).append(path)
                for digest, members in by_hash.items():
                    if len(members) >= 2:
                        groups.append(self._make_group(digest, members))
        finally:
            if skipped is not None:
                skipped.extend(events)

        groups.sort(key=lambda g: g.wasted_space, reverse=True)
        progress.flush("Complete")
        log.info("Found %d duplicate groups", len(groups))
        return groups

    def _bucket_by_size(
        self,
        roots: Iterable[Path | str],
        minimum_size: int,
        token: CancellationToken,
        progress: ProgressThrottle,
        events: list[SkipEvent],
    ) -> dict[int, list[str]]:
        by_size: dict[int, list[str]] = {}
        seen_inodes: set[tuple[int, int]] = set()
        seen_dirs: set[str] = set()

        for root in roots:
            root = os.path.expanduser(str(root))
            if not self.guard.may_traverse(root):
                events.append(SkipEvent(Path(root), SkipReason.PROTECTED))
                continue
            stack = [root]
            while stack:
                token.check()
                current = stack.pop()
                real = os.path.realpath(current)
                if real in seen_dirs:
                    continue
                seen_dirs.add(real)
                try:
                    with os.scandir(current) as it:
                        entries = list(it)
                except OSError as e:
                    events.append(SkipEvent(Path(current), SkipReason.IO_ERROR, str(e)))
                    continue

                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            if self.guard.is_forbidden(entry.path):
                                events.append(SkipEvent(Path(entry.path), SkipReason.PROTECTED))
                            else:
                                stack.append(entry.path)
                            continue
                        st = entry.stat(follow_symlinks=False)
                        if not stat.S_ISREG(st.st_mode) or st.st_size < minimum_size:
                            continue
                        if self.guard.is_forbidden(entry.path):
                            events.append(SkipEvent(Path(entry.path), SkipReason.PROTECTED))
                            continue
                        # Hard links and overlapping roots reach one inode twice.
                        inode = (st.st_dev, st.st_ino)
                        if inode in seen_inodes:
                            continue
                        seen_inodes.add(inode)
                        by_size.setdefault(st.st_size, []).append(entry.path)
                        progress.tick(entry.path)
                    except OSError as e:
                        events.append(SkipEvent(Path(entry.path), SkipReason.IO_ERROR, str(e)))
        return by_size

    def _hash_all(
        self,
        paths: list[str],
        token: CancellationToken,
        progress: ProgressThrottle,
        events: list[SkipEvent],
    ) -> dict[str, str]:
        """Hash *paths* on the worker pool; unreadable files are left out."""
        digests: dict[str, str] = {}
        if not paths:
            return digests

        def _hash(path: str) -> str:
            token.check()
            return sha256_file(path)

        pending = iter(paths)
        running: dict[Future[str], str] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reclaim-hash") as executor:
            try:
                # Keep at most a couple of files queued per worker.
                for path in pending:
                    running[executor.submit(_hash, path)] = path
                    if len(running) >= self.max_workers * 2:
                        break
                while running:
                    done, _ = wait(running, return_when=FIRST_COMPLETED)
                    for future in done:
                        path = running.pop(future)
                        try:
                            digests[path] = future.result()
                        except ScanCancelled:
                            raise
                        except OSError as e:
                            log.debug("Cannot hash %s: %s", path, e)
                            events.append(SkipEvent(Path(path), SkipReason.IO_ERROR, str(e)))
                        progress.tick(path)
                    token.check()
                    for path in pending:
                        running[executor.submit(_hash, path)] = path
                        if len(running) >= self.max_workers * 2:
                            break
            except ScanCancelled:
                for future in running:
                    future.cancel()
                raise
        return digests

    def _make_group(self, digest: str, paths: list[str]) -> DuplicateGroup:
        members: list[DuplicateFile] = []
        size = 0
        for path in paths:
            try:
                st = os.stat(path)
            except OSError:
                st = None
            if st is not None:
                size = st.st_size
            members.append(
                DuplicateFile(
                    path=Path(path),
                    modified=datetime.fromtimestamp(st.st_mtime) if st else None,
                    created=_created(st) if st else None,
                    selected=True,
                )
            )
        keep = self.keep_policy(members)
        keep.is_original = True
        keep.selected = False
        return DuplicateGroup(fingerprint=digest, size_bytes=size, files=members)


def _created(st: os.stat_result) -> datetime | None:
    birth = getattr(st, "st_birthtime", None)
    return datetime.fromtimestamp(birth) if birth is not None else None
