"""Size-rollup tree produced by space analysis."""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from pathlib import Path
from typing import Any


class FileTreeNode:
    """One file or directory in a space-analysis tree.

    The parent owns its children; the upward link is a weak reference
    used only for breadcrumbs and percentage display, so it never keeps
    a discarded parent subtree alive.
    """

    __slots__ = ("path", "name", "is_dir", "size", "children", "protected", "_parent", "__weakref__")

    def __init__(
        self,
        path: Path,
        is_dir: bool,
        size: int = 0,
        parent: FileTreeNode | None = None,
        protected: bool = False,
    ) -> None:
        self.path = path
        self.name = path.name or str(path)
        self.is_dir = is_dir
        self.size = size
        self.children: list[FileTreeNode] | None = None
        self.protected = protected
        self._parent: weakref.ref[FileTreeNode] | None = weakref.ref(parent) if parent is not None else None

    @property
    def parent(self) -> FileTreeNode | None:
        """The parent node, or None for a root or once the parent is gone."""
        return self._parent() if self._parent is not None else None

    @property
    def percent_of_parent(self) -> float:
        parent = self.parent
        if parent is None or parent.size <= 0:
            return 100.0
        return self.size / parent.size * 100.0

    @property
    def depth(self) -> int:
        """Number of ancestors still alive above this node (0 for the root)."""
        depth = 0
        parent = self.parent
        while parent is not None:
            depth += 1
            parent = parent.parent
        return depth

    @property
    def height(self) -> int:
        """Height of the materialized subtree (0 for a leaf)."""
        if not self.children:
            return 0
        return 1 + max(child.height for child in self.children)

    def sort_children(self) -> None:
        """Order children by size, largest first. Presentation only."""
        if self.children:
            self.children.sort(key=lambda n: n.size, reverse=True)

    def walk(self) -> Iterator[FileTreeNode]:
        """Yield this node and all materialized descendants, depth-first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))

    def find(self, path: Path | str) -> FileTreeNode | None:
        target = Path(path)
        for node in self.walk():
            if node.path == target:
                return node
        return None

    def to_dict(self, max_depth: int | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": str(self.path),
            "name": self.name,
            "is_dir": self.is_dir,
            "size": self.size,
        }
        if self.protected:
            data["protected"] = True
        if self.children is not None and (max_depth is None or max_depth > 0):
            next_depth = None if max_depth is None else max_depth - 1
            data["children"] = [c.to_dict(next_depth) for c in self.children]
        return data

    def __repr__(self) -> str:
        kind = "dir" if self.is_dir else "file"
        return f"FileTreeNode({str(self.path)!r}, {kind}, size={self.size})"
