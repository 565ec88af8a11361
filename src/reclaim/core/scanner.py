"""Category-driven scanner for reclaimable storage."""

from __future__ import annotations

import logging
import os
import stat
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path

from reclaim.core.cancel import CancellationToken, ScanCancelled
from reclaim.core.guard import PathSafetyGuard
from reclaim.models.category import Category, WalkMode
from reclaim.models.scan_result import ScannedItem, ScanOptions, ScanResult, SkipEvent, SkipReason
from reclaim.utils import ProgressCallback, ProgressThrottle, is_under

log = logging.getLogger(__name__)

ItemCallback = Callable[[ScannedItem], None]


class _Walk:
    """Per-category walk state: guard, token, skip log and progress."""

    def __init__(
        self,
        guard: PathSafetyGuard,
        token: CancellationToken,
        options: ScanOptions,
        report: Callable[[str], None],
    ) -> None:
        self.guard = guard
        self.token = token
        self.options = options
        self.report = report
        self.skipped: list[SkipEvent] = []
        self._exclusions = tuple(os.path.realpath(os.path.expanduser(str(p))) for p in options.exclusions)

    def skip(self, path: str | Path, reason: SkipReason, message: str = "") -> None:
        log.debug("Skipping %s (%s) %s", path, reason.value, message)
        self.skipped.append(SkipEvent(Path(path), reason, message))

    def admit(self, path: str) -> bool:
        """Check exclusions and the guard before touching *path*."""
        if self._exclusions:
            real = os.path.realpath(path)
            if any(is_under(real, e) for e in self._exclusions):
                self.skip(path, SkipReason.EXCLUDED)
                return False
        if self.guard.is_forbidden(path):
            self.skip(path, SkipReason.PROTECTED)
            return False
        return True

    def tree_size(self, path: str) -> int:
        """Apparent size of *path* and every permitted descendant.

        Symlinks are sized by ``lstat`` and never followed.
        """
        try:
            st = os.lstat(path)
        except OSError as e:
            self.skip(path, SkipReason.IO_ERROR, str(e))
            return 0
        if not stat.S_ISDIR(st.st_mode):
            return st.st_size

        total = 0
        stack = [path]
        while stack:
            self.token.check()
            current = stack.pop()
            self.report(current)
            try:
                with os.scandir(current) as it:
                    for entry in it:
                        try:
                            if entry.is_dir(follow_symlinks=False):
                                if self.admit(entry.path):
                                    stack.append(entry.path)
                            elif self.admit(entry.path):
                                total += entry.stat(follow_symlinks=False).st_size
                        except OSError as e:
                            self.skip(entry.path, SkipReason.IO_ERROR, str(e))
            except OSError as e:
                self.skip(current, SkipReason.IO_ERROR, str(e))
        return total


class CategoryScanner:
    """Walks each category's root paths and emits one ScannedItem per candidate.

    Categories are scanned concurrently on a small thread pool; within a
    category the walk is sequential and checks the cancellation token at
    every directory boundary and between entries.
    """

    def __init__(self, guard: PathSafetyGuard | None = None) -> None:
        self.guard = guard or PathSafetyGuard()

    def scan(
        self,
        categories: list[Category] | None = None,
        options: ScanOptions | None = None,
        on_progress: ProgressCallback | None = None,
        on_item: ItemCallback | None = None,
        token: CancellationToken | None = None,
        on_category: Callable[[Category], None] | None = None,
    ) -> ScanResult:
        """Scan the given categories (all when None).

        Args:
            categories: Categories to scan.
            options: Thresholds and exclusions.
            on_progress: Throttled ``(discovered_count, current_path)`` callback.
            on_item: Fired for each item as soon as it is found.
            token: Cooperative cancellation token. On cancellation the
                items found so far are returned with ``cancelled=True``.
            on_category: Fired once per category when its walk ends.

        Returns:
            The aggregate scan result. Item order is not meaningful.
        """
        categories = list(categories) if categories is not None else list(Category)
        options = options or ScanOptions()
        token = token or CancellationToken()
        started = time.monotonic()

        result = ScanResult()
        lock = threading.Lock()
        throttle = ProgressThrottle(on_progress)

        def report(path: str) -> None:
            with lock:
                throttle.tick(path)

        def emit(item: ScannedItem) -> None:
            with lock:
                result.items.append(item)
            if on_item:
                try:
                    on_item(item)
                except Exception:
                    log.exception("Item callback failed for %s", item.path)

        def scan_category(category: Category) -> None:
            walk = _Walk(self.guard, token, options, report)
            try:
                for item in self._iter_category(category, walk):
                    emit(item)
            except ScanCancelled:
                log.debug("Scan of '%s' cancelled", category.value)
            except Exception:
                log.exception("Category '%s' failed during scan", category.value)
            finally:
                with lock:
                    result.skipped.extend(walk.skipped)
            if on_category:
                try:
                    on_category(category)
                except Exception:
                    log.exception("Category callback failed for '%s'", category.value)

        if len(categories) > 1 and (os.cpu_count() or 1) > 1:
            max_workers = max(1, min(options.max_workers, len(categories)))
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reclaim-scan") as executor:
                for future in [executor.submit(scan_category, c) for c in categories]:
                    future.result()
        else:
            for category in categories:
                scan_category(category)

        throttle.flush("Scan complete")
        result.cancelled = token.cancelled
        result.duration = time.monotonic() - started
        log.info(
            "Scanned %d categories: %d items, %d skipped%s",
            len(categories),
            len(result.items),
            len(result.skipped),
            " (cancelled)" if result.cancelled else "",
        )
        return result

    def iter_category(
        self,
        category: Category,
        options: ScanOptions | None = None,
        token: CancellationToken | None = None,
        skipped: list[SkipEvent] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Iterator[ScannedItem]:
        """Stream the items of a single category.

        Raises ScanCancelled from the generator once *token* is cancelled;
        items already yielded stay valid.
        """
        throttle = ProgressThrottle(on_progress)
        walk = _Walk(self.guard, token or CancellationToken(), options or ScanOptions(), throttle.tick)
        try:
            yield from self._iter_category(category, walk)
        finally:
            if skipped is not None:
                skipped.extend(walk.skipped)
            throttle.flush(category.value)

    def _iter_category(self, category: Category, walk: _Walk) -> Iterator[ScannedItem]:
        options = walk.options
        min_size = options.min_item_size if options.min_item_size is not None else category.info.min_item_size
        other_roots = {
            os.path.realpath(p) for other in Category if other is not category for p in other.paths()
        }

        for root in _unique_roots(category.paths()):
            walk.token.check()
            if not os.path.isdir(root):
                continue
            if not walk.admit(root):
                continue

            match category.mode:
                case WalkMode.WHOLE:
                    size = walk.tree_size(root)
                    if size >= min_size and size > 0:
                        yield _make_item(root, size, category)
                case WalkMode.CHILDREN:
                    for child in _children(root, walk):
                        if os.path.realpath(child) in other_roots:
                            continue
                        if not walk.admit(child):
                            continue
                        size = walk.tree_size(child)
                        if size >= min_size and size > 0:
                            yield _make_item(child, size, category)
                case WalkMode.AGED:
                    cutoff = (datetime.now() - timedelta(days=options.old_download_days)).timestamp()
                    for child in _children(root, walk):
                        if not walk.admit(child):
                            continue
                        try:
                            mtime = os.lstat(child).st_mtime
                        except OSError as e:
                            walk.skip(child, SkipReason.IO_ERROR, str(e))
                            continue
                        if mtime >= cutoff:
                            continue
                        size = walk.tree_size(child)
                        if size >= min_size and size > 0:
                            yield _make_item(child, size, category)
                case WalkMode.OVERSIZED:
                    yield from _oversized_files(root, walk, category, options.large_file_threshold)


def _unique_roots(paths: list[Path]) -> list[str]:
    seen: dict[str, str] = {}
    for path in paths:
        seen.setdefault(os.path.realpath(path), str(path))
    return list(seen.values())


def _children(root: str, walk: _Walk) -> list[str]:
    try:
        with os.scandir(root) as it:
            return sorted(entry.path for entry in it)
    except OSError as e:
        walk.skip(root, SkipReason.IO_ERROR, str(e))
        return []


def _oversized_files(root: str, walk: _Walk, category: Category, threshold: int) -> Iterator[ScannedItem]:
    stack = [root]
    while stack:
        walk.token.check()
        current = stack.pop()
        walk.report(current)
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            walk.skip(current, SkipReason.IO_ERROR, str(e))
            continue
        for entry in entries:
            walk.token.check()
            try:
                if entry.is_dir(follow_symlinks=False):
                    if walk.admit(entry.path):
                        stack.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    st = entry.stat(follow_symlinks=False)
                    if st.st_size > threshold and walk.admit(entry.path):
                        yield _make_item(entry.path, st.st_size, category, st.st_mtime)
            except OSError as e:
                walk.skip(entry.path, SkipReason.IO_ERROR, str(e))


def _make_item(path: str, size: int, category: Category, mtime: float | None = None) -> ScannedItem:
    if mtime is None:
        try:
            mtime = os.lstat(path).st_mtime
        except OSError:
            mtime = None
    modified = datetime.fromtimestamp(mtime) if mtime is not None else None
    return ScannedItem(path=Path(path), size_bytes=size, category=category, modified=modified)
