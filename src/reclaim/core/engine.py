"""Scan and deletion orchestration on top of the task scheduler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from pathlib import Path
from typing import Generic, TypeVar

from reclaim.core.analyzer import SpaceAnalyzer
from reclaim.core.cancel import CancellationToken, ScanCancelled
from reclaim.core.cleaner import Cleaner, Recycler
from reclaim.core.duplicates import KEEP_POLICIES, DuplicateDetector
from reclaim.core.guard import PathSafetyGuard
from reclaim.core.scanner import CategoryScanner, ItemCallback
from reclaim.core.scheduler import TaskScheduler
from reclaim.core.tracker import Tracker
from reclaim.models.category import Category
from reclaim.models.clean_result import CleanResult
from reclaim.models.duplicate import DuplicateGroup, DuplicateOptions
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScannedItem, ScanOptions, ScanResult, SkipEvent

log = logging.getLogger(__name__)

T = TypeVar("T")

FEATURE_SCAN = "scan"
FEATURE_ANALYZE = "analyze"
FEATURE_DUPLICATES = "duplicates"
FEATURE_CLEAN = "clean"

# (token, task_id) -> result
Work = Callable[[CancellationToken, str], T]


class ScanSession(Generic[T]):
    """Handle for one submitted operation.

    Each invocation gets its own session; results are read from it rather
    than from any shared engine state.
    """

    def __init__(
        self,
        task_id: str,
        feature: str,
        future: Future[T],
        token: CancellationToken,
        scheduler: TaskScheduler,
        skipped: list[SkipEvent] | None = None,
    ) -> None:
        self.task_id = task_id
        self.feature = feature
        self.future = future
        self.token = token
        self._scheduler = scheduler
        self.skipped = skipped if skipped is not None else []

    @property
    def done(self) -> bool:
        return self.future.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def result(self, timeout: float | None = None) -> T:
        """Block until the operation finishes.

        Raises:
            ScanCancelled: if the operation was cancelled before producing
                a result.
            TimeoutError: if *timeout* elapses first.
        """
        try:
            return self.future.result(timeout)
        except CancelledError:
            raise ScanCancelled(self.task_id) from None

    def cancel(self) -> bool:
        """Request cancellation. Returns False once the task has finished."""
        if self.future.cancel():
            # Never started, so no worker will report back.
            self.token.cancel()
            self._scheduler.mark_cancelled(self.task_id)
            return True
        return self._scheduler.cancel(self.task_id)

    def __repr__(self) -> str:
        return f"ScanSession({self.feature!r}, {self.task_id}, done={self.done})"


class ReclaimEngine:
    """Runs scans, analyses, duplicate searches and deletions as scheduler tasks.

    Starting a scan cancels any earlier scan of the same feature, so a
    caller that restarts a scan never sees two of them racing. Deletions
    are never superseded.
    """

    def __init__(
        self,
        guard: PathSafetyGuard | None = None,
        scheduler: TaskScheduler | None = None,
        recycler: Recycler | None = None,
        tracker: Tracker | None = None,
        max_workers: int = 4,
    ) -> None:
        self.guard = guard or PathSafetyGuard()
        self.scheduler = scheduler or TaskScheduler()
        self.tracker = tracker
        self.scanner = CategoryScanner(self.guard)
        self.analyzer = SpaceAnalyzer(self.guard)
        self.cleaner = Cleaner(self.guard, recycler)
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="reclaim-task")
        self._closed = False
        self._lock = threading.Lock()

    def scan_categories(
        self,
        categories: list[Category] | None = None,
        options: ScanOptions | None = None,
        on_item: ItemCallback | None = None,
    ) -> ScanSession[ScanResult]:
        """Start a category scan. A cancelled scan still yields its partial result."""
        selected = list(categories) if categories is not None else list(Category)
        finished: list[Category] = []

        def work(token: CancellationToken, task_id: str) -> ScanResult:
            def on_category(category: Category) -> None:
                finished.append(category)
                self.scheduler.update_progress(
                    task_id, len(finished) / max(1, len(selected)), f"Scanned {category.value}"
                )

            return self.scanner.scan(
                selected,
                options,
                on_progress=lambda count, path: self.scheduler.update_progress(
                    task_id, 0.0, f"{count} entries: {path}"
                ),
                on_item=on_item,
                token=token,
                on_category=on_category,
            )

        return self._submit("Scanning categories", FEATURE_SCAN, work)

    def analyze(
        self,
        root: Path | str,
        max_depth: int | None = None,
        skip_hidden: bool = False,
        exclusions: tuple[Path, ...] = (),
    ) -> ScanSession[FileTreeNode]:
        """Start a space analysis of *root*."""
        skipped: list[SkipEvent] = []

        def work(token: CancellationToken, task_id: str) -> FileTreeNode:
            return self.analyzer.analyze(
                root,
                on_progress=lambda count, path: self.scheduler.update_progress(
                    task_id, 0.0, f"{count} entries: {path}"
                ),
                token=token,
                max_depth=max_depth,
                skip_hidden=skip_hidden,
                exclusions=exclusions,
                skipped=skipped,
            )

        return self._submit(f"Analyzing {root}", FEATURE_ANALYZE, work, skipped=skipped)

    def find_duplicates(
        self,
        roots: Iterable[Path | str],
        options: DuplicateOptions | None = None,
    ) -> ScanSession[list[DuplicateGroup]]:
        """Start a duplicate search across *roots*."""
        options = options or DuplicateOptions()
        roots = list(roots)
        detector = DuplicateDetector(
            self.guard,
            max_workers=options.max_workers,
            keep_policy=KEEP_POLICIES[options.keep_policy],
        )
        skipped: list[SkipEvent] = []

        def work(token: CancellationToken, task_id: str) -> list[DuplicateGroup]:
            return detector.scan(
                roots,
                minimum_size=options.minimum_size,
                on_progress=lambda count, status: self.scheduler.update_progress(
                    task_id, 0.0, f"{count} files: {status}"
                ),
                token=token,
                skipped=skipped,
            )

        return self._submit("Finding duplicates", FEATURE_DUPLICATES, work, skipped=skipped)

    def delete_items(self, items: Iterable[ScannedItem]) -> ScanSession[CleanResult]:
        """Delete scanned items through the cleaner's safety checks."""
        items = list(items)
        return self._submit_clean(
            f"Deleting {len(items)} items",
            len(items),
            lambda token, progress: self.cleaner.delete_items(items, progress, token),
        )

    def delete_paths(self, paths: Iterable[Path | str], permanent: bool = False) -> ScanSession[CleanResult]:
        paths = list(paths)
        return self._submit_clean(
            f"Deleting {len(paths)} paths",
            len(paths),
            lambda token, progress: self.cleaner.delete_paths(paths, permanent, progress, token),
        )

    def delete_duplicates(self, groups: Iterable[DuplicateGroup]) -> ScanSession[CleanResult]:
        groups = list(groups)
        total = sum(len(g.files_to_delete) for g in groups)
        return self._submit_clean(
            f"Deleting {total} duplicates",
            total,
            lambda token, progress: self.cleaner.delete_duplicates(groups, progress, token),
        )

    def cancel(self, task_id: str) -> bool:
        return self.scheduler.cancel(task_id)

    def shutdown(self, cancel: bool = True) -> None:
        """Stop accepting work; optionally cancel everything still running."""
        with self._lock:
            self._closed = True
        if cancel:
            for task in self.scheduler.tasks():
                self.scheduler.cancel(task.id)
        self._executor.shutdown(wait=True)

    def __enter__(self) -> ReclaimEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _submit_clean(
        self,
        label: str,
        total: int,
        run: Callable[[CancellationToken, Callable[[int, str], None]], CleanResult],
    ) -> ScanSession[CleanResult]:
        def work(token: CancellationToken, task_id: str) -> CleanResult:
            def progress(done: int, status: str) -> None:
                self.scheduler.update_progress(task_id, done / max(1, total), status)

            result = run(token, progress)
            if self.tracker is not None:
                self.tracker.record(result)
                self.tracker.save_session()
            return result

        return self._submit(label, FEATURE_CLEAN, work, supersede=False)

    def _submit(
        self,
        label: str,
        feature: str,
        work: Work[T],
        supersede: bool = True,
        skipped: list[SkipEvent] | None = None,
    ) -> ScanSession[T]:
        with self._lock:
            if self._closed:
                raise RuntimeError("Engine has been shut down")
            if supersede:
                superseded = self.scheduler.cancel_all(feature)
                if superseded:
                    log.info("Superseded %d running '%s' task(s)", superseded, feature)
            task_id = self.scheduler.start(label, feature)
            token = self.scheduler.token(task_id)
            future = self._executor.submit(self._run, task_id, token, work)
        return ScanSession(task_id, feature, future, token, self.scheduler, skipped)

    def _run(self, task_id: str, token: CancellationToken, work: Work[T]) -> T:
        try:
            value = work(token, task_id)
        except ScanCancelled:
            log.info("Task %s cancelled", task_id)
            self.scheduler.mark_cancelled(task_id)
            raise
        except Exception as e:
            log.exception("Task %s failed", task_id)
            self.scheduler.fail(task_id, str(e) or type(e).__name__)
            raise

        if token.cancelled:
            self.scheduler.mark_cancelled(task_id, "Cancelled with partial results")
        else:
            self.scheduler.complete(task_id)
        return value
