"""Squarified treemap layout.

Pure geometry: no filesystem access, no rendering. ``layout`` takes
weights in the order given; sort them largest first (``squarify`` does)
for the best aspect ratios.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from reclaim.models.duplicate import DuplicateGroup
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScanResult

K = TypeVar("K", bound=Hashable)

_EPSILON = 1e-9


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def intersection_area(self, other: Rect) -> float:
        w = min(self.x + self.width, other.x + other.width) - max(self.x, other.x)
        h = min(self.y + self.height, other.y + other.height) - max(self.y, other.y)
        return w * h if w > 0 and h > 0 else 0.0


@dataclass(slots=True)
class TreemapNode:
    """Generic weighted node for layout purposes."""

    name: str
    path: str
    weight: int
    children: list[TreemapNode] = field(default_factory=list)

    @classmethod
    def from_file_tree(cls, node: FileTreeNode, max_depth: int | None = None) -> TreemapNode:
        children: list[TreemapNode] = []
        if node.children and (max_depth is None or max_depth > 0):
            next_depth = None if max_depth is None else max_depth - 1
            children = [cls.from_file_tree(c, next_depth) for c in node.children]
        return cls(node.name, str(node.path), max(0, node.size), children)

    @classmethod
    def from_scan_result(cls, result: ScanResult, name: str = "Scan") -> TreemapNode:
        """Two-level tree: categories, then their items."""
        categories = [
            cls(
                category.value,
                category.slug,
                sum(i.safe_size for i in items),
                [cls(i.name, str(i.path), i.safe_size) for i in items],
            )
            for category, items in result.items_by_category().items()
        ]
        return cls(name, "", sum(c.weight for c in categories), categories)

    @classmethod
    def from_duplicates(cls, groups: Iterable[DuplicateGroup], name: str = "Duplicates") -> TreemapNode:
        """One node per group weighted by its wasted space."""
        children = [
            cls(group.files[0].name if group.files else group.fingerprint[:12], group.fingerprint, group.wasted_space)
            for group in groups
        ]
        return cls(name, "", sum(c.weight for c in children), children)


def layout(items: Sequence[tuple[float, K]], bounds: Rect) -> list[tuple[K, Rect]]:
    """Partition *bounds* into one rectangle per ``(weight, id)`` item.

    Rectangles tile *bounds* with areas proportional to weight. A zero
    total weight or a collapsed rectangle yields the remaining bounds for
    every remaining item instead of dividing by zero.
    """
    placed: list[tuple[K, Rect]] = []
    remaining = [(max(0.0, float(w)), key) for w, key in items]
    rect = bounds

    while remaining:
        total = sum(w for w, _ in remaining)
        if total <= _EPSILON or rect.width <= _EPSILON or rect.height <= _EPSILON:
            placed.extend((key, rect) for _, key in remaining)
            break

        horizontal = rect.width >= rect.height
        long_side = rect.width if horizontal else rect.height
        short_side = rect.height if horizontal else rect.width
        scale = long_side / total  # row thickness per unit of weight along the short side

        row: list[tuple[float, K]] = []
        row_weight = 0.0
        best = float("inf")
        for weight, key in remaining:
            candidate = row_weight + weight
            ratio = _worst_ratio([w for w, _ in row] + [weight], candidate, candidate * scale, short_side)
            if row and ratio > best:
                break
            row.append((weight, key))
            row_weight = candidate
            best = ratio

        if len(row) == len(remaining):
            thickness = long_side
        else:
            thickness = row_weight * scale

        offset = 0.0
        for weight, key in row:
            length = short_side * (weight / row_weight) if row_weight > 0 else 0.0
            if horizontal:
                placed.append((key, Rect(rect.x, rect.y + offset, thickness, length)))
            else:
                placed.append((key, Rect(rect.x + offset, rect.y, length, thickness)))
            offset += length

        if horizontal:
            rect = Rect(rect.x + thickness, rect.y, rect.width - thickness, rect.height)
        else:
            rect = Rect(rect.x, rect.y + thickness, rect.width, rect.height - thickness)
        remaining = remaining[len(row):]

    return placed


def _worst_ratio(weights: list[float], row_weight: float, row_length: float, short_side: float) -> float:
    """Worst aspect ratio in a row of *row_length* thickness spread over *short_side*."""
    if row_weight <= 0 or row_length <= 0:
        return float("inf")
    worst = 0.0
    for weight in weights:
        item_length = short_side * weight / row_weight
        if item_length <= 0:
            return float("inf")
        worst = max(worst, row_length / item_length, item_length / row_length)
    return worst


def squarify(node: TreemapNode, bounds: Rect) -> list[tuple[TreemapNode, Rect]]:
    """Lay out the direct children of *node*, largest first."""
    children = sorted(node.children, key=lambda c: c.weight, reverse=True)
    by_index = layout([(c.weight, i) for i, c in enumerate(children)], bounds)
    return [(children[i], r) for i, r in by_index]
