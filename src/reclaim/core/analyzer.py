"""Recursive space analysis producing a size-rollup tree."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from reclaim.core.cancel import CancellationToken
from reclaim.core.guard import PathSafetyGuard, RuleKind
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import SkipEvent, SkipReason
from reclaim.utils import ProgressCallback, ProgressThrottle, is_under

log = logging.getLogger(__name__)


class SpaceAnalyzer:
    """Builds a FileTreeNode tree for an arbitrary root directory.

    Protected subdirectories are represented as empty leaves flagged
    ``protected`` instead of being expanded. ``max_depth`` limits how
    many levels of nodes are materialized; sizes always roll up every
    descendant regardless of the cap.
    """

    def __init__(self, guard: PathSafetyGuard | None = None) -> None:
        self.guard = guard or PathSafetyGuard()

    def analyze(
        self,
        root: Path | str,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
        max_depth: int | None = None,
        skip_hidden: bool = False,
        exclusions: tuple[Path, ...] = (),
        skipped: list[SkipEvent] | None = None,
    ) -> FileTreeNode:
        """Analyze *root* and return the fully rolled-up tree.

        Raises:
            ScanCancelled: if *token* is cancelled before the walk finishes.
                No partial tree is returned in that case.
            FileNotFoundError: if *root* does not exist.
        """
        run = _Run(
            self.guard,
            token or CancellationToken(),
            ProgressThrottle(on_progress),
            max_depth,
            skip_hidden,
            exclusions,
        )
        root_path = Path(root).expanduser()
        st = os.lstat(root_path)
        node = FileTreeNode(root_path, is_dir=os.path.isdir(root_path))
        verdict = self.guard.evaluate(root_path)
        if verdict.rule in (RuleKind.DENY_PREFIX, RuleKind.DENY_PATTERN):
            log.info("Not expanding protected root %s (%s)", root_path, verdict.matched)
            node.protected = True
            if skipped is not None:
                skipped.append(SkipEvent(root_path, SkipReason.PROTECTED))
            return node
        try:
            if node.is_dir:
                node.size = run.scan_dir(node, str(root_path), 0)
            else:
                node.size = st.st_size
        finally:
            if skipped is not None:
                skipped.extend(run.skipped)
        run.progress.flush(str(root_path))
        log.info("Analyzed %s: %d entries, %d bytes", root_path, run.progress.count, node.size)
        return node


class _Run:
    def __init__(
        self,
        guard: PathSafetyGuard,
        token: CancellationToken,
        progress: ProgressThrottle,
        max_depth: int | None,
        skip_hidden: bool,
        exclusions: tuple[Path, ...],
    ) -> None:
        self.guard = guard
        self.token = token
        self.progress = progress
        self.max_depth = max_depth
        self.skip_hidden = skip_hidden
        self.exclusions = tuple(os.path.realpath(os.path.expanduser(str(p))) for p in exclusions)
        self.skipped: list[SkipEvent] = []

    def _blocked(self, path: str) -> SkipReason | None:
        if self.exclusions and any(is_under(os.path.realpath(path), e) for e in self.exclusions):
            return SkipReason.EXCLUDED
        if self.guard.is_forbidden(path):
            return SkipReason.PROTECTED
        return None

    def scan_dir(self, node: FileTreeNode | None, path: str, depth: int) -> int:
        """Return the rollup size of *path*, attaching children to *node* when materialized."""
        self.token.check()
        try:
            with os.scandir(path) as it:
                entries = list(it)
        except OSError as e:
            log.debug("Cannot list %s: %s", path, e)
            self.skipped.append(SkipEvent(Path(path), SkipReason.IO_ERROR, str(e)))
            if node is not None:
                node.children = []
            return 0

        materialize = node is not None and (self.max_depth is None or depth < self.max_depth)
        children: list[FileTreeNode] = []
        total = 0

        for entry in entries:
            self.token.check()
            if self.skip_hidden and entry.name.startswith("."):
                continue
            parent = node if materialize else None
            try:
                if entry.is_dir(follow_symlinks=False):
                    reason = self._blocked(entry.path)
                    if reason is not None:
                        self.skipped.append(SkipEvent(Path(entry.path), reason))
                        size = 0
                        child = FileTreeNode(Path(entry.path), True, 0, parent, protected=True) if materialize else None
                    else:
                        child = FileTreeNode(Path(entry.path), True, 0, parent) if materialize else None
                        size = self.scan_dir(child, entry.path, depth + 1)
                        if child is not None:
                            child.size = size
                else:
                    size = entry.stat(follow_symlinks=False).st_size
                    child = FileTreeNode(Path(entry.path), False, size, parent) if materialize else None
            except OSError as e:
                self.skipped.append(SkipEvent(Path(entry.path), SkipReason.IO_ERROR, str(e)))
                continue

            total += size
            if child is not None:
                children.append(child)
            self.progress.tick(entry.path)

        if node is not None:
            node.size = total
            if materialize:
                node.children = children
                node.sort_children()
        return total
