"""Deletion choke point.

Every removal goes through :class:`Cleaner`, which asks the guard again
immediately before touching each path. Verdicts are never cached between
discovery and deletion, so a path swapped for a symlink after the scan is
still caught.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

from send2trash import send2trash

from reclaim.core.cancel import CancellationToken
from reclaim.core.guard import PathSafetyGuard
from reclaim.models.category import Category
from reclaim.models.clean_result import CleanResult, ItemOutcome, Outcome
from reclaim.models.duplicate import DuplicateGroup
from reclaim.models.scan_result import ScannedItem
from reclaim.utils import ProgressCallback, dir_size

log = logging.getLogger(__name__)

Recycler = Callable[[str], None]


def remove_permanently(path: str) -> None:
    """Remove a file, symlink or directory tree without a recovery copy."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class Cleaner:
    """Deletes user-confirmed paths after re-validating each one.

    Args:
        guard: Safety authority consulted before every removal.
        recycler: Moves a path to a recoverable holding location.
            Defaults to the desktop trash via ``send2trash``.
    """

    def __init__(self, guard: PathSafetyGuard | None = None, recycler: Recycler | None = None) -> None:
        self.guard = guard or PathSafetyGuard()
        self.recycler = recycler or send2trash

    def delete_items(
        self,
        items: Iterable[ScannedItem],
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CleanResult:
        """Delete scanned items. Trash items are removed permanently."""
        requests = [
            (item.path, item.safe_size, item.category is Category.TRASH, item.category.slug) for item in items
        ]
        return self._run(requests, on_progress, token)

    def delete_paths(
        self,
        paths: Iterable[Path | str],
        permanent: bool = False,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CleanResult:
        """Delete arbitrary paths previously reported by a scan."""
        requests = []
        for path in paths:
            requests.append((Path(path), _lsize(str(path)), permanent, ""))
        return self._run(requests, on_progress, token)

    def delete_duplicates(
        self,
        groups: Iterable[DuplicateGroup],
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> CleanResult:
        """Delete the selected copies of each group, never the last one."""
        requests = [
            (member.path, group.size_bytes, False, "duplicates")
            for group in groups
            for member in group.files_to_delete
        ]
        return self._run(requests, on_progress, token)

    def delete_one(self, path: Path | str, size: int = 0, permanent: bool = False, category: str = "") -> ItemOutcome:
        """Validate and remove a single path, reporting what happened."""
        raw = os.fspath(path)
        verdict = self.guard.evaluate(raw)
        if verdict.forbidden:
            log.warning("Refusing to delete protected path %s (%s)", raw, verdict.rule.value)
            return ItemOutcome(Path(raw), Outcome.PROTECTED, size, f"Protected path ({verdict.rule.value})", category)

        if not os.path.lexists(raw):
            return ItemOutcome(Path(raw), Outcome.MISSING, 0, "Already gone", category)

        try:
            if permanent:
                remove_permanently(raw)
            else:
                self.recycler(raw)
        except FileNotFoundError:
            return ItemOutcome(Path(raw), Outcome.MISSING, 0, "Already gone", category)
        except OSError as e:
            return ItemOutcome(Path(raw), Outcome.FAILED, size, _describe(raw, e), category)
        except Exception as e:
            # send2trash raises its own TrashPermissionError and friends.
            log.debug("Recycler failed for %s", raw, exc_info=True)
            return ItemOutcome(Path(raw), Outcome.FAILED, size, f"Failed to delete: {e}", category)

        log.debug("Deleted %s (%d bytes%s)", raw, size, ", permanent" if permanent else "")
        return ItemOutcome(Path(raw), Outcome.DELETED, size, "", category)

    def _run(
        self,
        requests: list[tuple[Path, int, bool, str]],
        on_progress: ProgressCallback | None,
        token: CancellationToken | None,
    ) -> CleanResult:
        result = CleanResult()
        total = len(requests)
        for index, (path, size, permanent, category) in enumerate(requests, 1):
            if token is not None and token.cancelled:
                result.cancelled = True
                break
            result.outcomes.append(self.delete_one(path, size, permanent, category))
            if on_progress and (index % 5 == 0 or index == total):
                on_progress(index, f"Deleting files: {index}/{total}")
        log.info("Deletion finished: %s", result.summary)
        return result


def _lsize(path: str) -> int:
    try:
        st = os.lstat(path)
    except OSError:
        return 0
    if os.path.isdir(path) and not os.path.islink(path):
        return dir_size(path)
    return st.st_size


def _describe(path: str, e: OSError) -> str:
    match e.errno:
        case errno.EACCES | errno.EPERM:
            return f"Permission denied: {path}"
        case errno.EBUSY:
            return f"File in use: {path}"
        case _:
            return f"Failed to delete {path}: {e.strerror or e}"
