"""Tests for the squarified treemap layout."""

from __future__ import annotations

from pathlib import Path

import pytest

from reclaim.models.category import Category
from reclaim.models.duplicate import DuplicateFile, DuplicateGroup
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScannedItem, ScanResult
from reclaim.treemap import Rect, TreemapNode, layout, squarify

BOUNDS = Rect(0, 0, 100, 100)


def _assert_tiles(placed, bounds):
    total = sum(r.area for _, r in placed)
    assert total == pytest.approx(bounds.area)
    rects = [r for _, r in placed]
    for i, a in enumerate(rects):
        assert a.x >= bounds.x - 1e-6 and a.y >= bounds.y - 1e-6
        assert a.x + a.width <= bounds.x + bounds.width + 1e-6
        assert a.y + a.height <= bounds.y + bounds.height + 1e-6
        for b in rects[i + 1:]:
            assert a.intersection_area(b) == pytest.approx(0.0, abs=1e-6)


class TestLayout:
    def test_four_equal_weights_make_quadrants(self):
        placed = layout([(1, "a"), (1, "b"), (1, "c"), (1, "d")], BOUNDS)

        assert len(placed) == 4
        for _, rect in placed:
            assert rect.area == pytest.approx(2500)
            assert rect.width == pytest.approx(50)
            assert rect.height == pytest.approx(50)
        _assert_tiles(placed, BOUNDS)

    def test_areas_proportional_to_weight(self):
        weights = [6, 6, 4, 3, 2, 2, 1]
        bounds = Rect(0, 0, 600, 400)
        placed = layout([(w, i) for i, w in enumerate(weights)], bounds)

        total = sum(weights)
        for key, rect in placed:
            assert rect.area == pytest.approx(bounds.area * weights[key] / total)
        _assert_tiles(placed, bounds)

    def test_aspect_ratios_reasonable(self):
        placed = layout([(w, i) for i, w in enumerate([6, 6, 4, 3, 2, 2, 1])], Rect(0, 0, 600, 400))
        for _, rect in placed:
            assert max(rect.width / rect.height, rect.height / rect.width) < 3

    def test_single_item_fills_bounds(self):
        assert layout([(42, "only")], Rect(5, 5, 10, 20)) == [("only", Rect(5, 5, 10, 20))]

    def test_order_and_keys_preserved(self):
        placed = layout([(5, "x"), (3, "y"), (2, "z")], BOUNDS)
        assert [key for key, _ in placed] == ["x", "y", "z"]

    def test_zero_total_weight_returns_bounds(self):
        placed = layout([(0, "a"), (0, "b")], BOUNDS)
        assert placed == [("a", BOUNDS), ("b", BOUNDS)]

    def test_collapsed_bounds_degenerate(self):
        flat = Rect(0, 0, 100, 0)
        assert layout([(1, "a"), (2, "b")], flat) == [("a", flat), ("b", flat)]

    def test_negative_weights_treated_as_zero(self):
        placed = layout([(-5, "neg"), (10, "pos")], BOUNDS)
        assert dict(placed)["pos"].area == pytest.approx(10_000)

    def test_empty_input(self):
        assert layout([], BOUNDS) == []

    def test_deterministic(self):
        items = [(w, i) for i, w in enumerate([9, 7, 5, 5, 3, 1])]
        assert layout(items, BOUNDS) == layout(items, BOUNDS)


class TestAdapters:
    def test_squarify_file_tree(self):
        root = FileTreeNode(Path("/h"), True, 300)
        small = FileTreeNode(Path("/h/small"), False, 100, root)
        big = FileTreeNode(Path("/h/big"), False, 200, root)
        root.children = [small, big]

        node = TreemapNode.from_file_tree(root)
        placed = squarify(node, BOUNDS)

        assert [n.name for n, _ in placed] == ["big", "small"]
        assert placed[0][1].area == pytest.approx(2 * placed[1][1].area)

    def test_from_file_tree_depth(self):
        root = FileTreeNode(Path("/h"), True, 10)
        child = FileTreeNode(Path("/h/d"), True, 10, root)
        child.children = [FileTreeNode(Path("/h/d/f"), False, 10, child)]
        root.children = [child]

        node = TreemapNode.from_file_tree(root, max_depth=1)
        assert node.children[0].children == []

    def test_from_scan_result(self):
        result = ScanResult(
            items=[
                ScannedItem(Path("/h/a"), 10, Category.SYSTEM_CACHES),
                ScannedItem(Path("/h/b"), 30, Category.SYSTEM_CACHES),
                ScannedItem(Path("/h/c"), 5, Category.TRASH),
            ]
        )
        node = TreemapNode.from_scan_result(result)

        assert node.weight == 45
        assert {c.name: c.weight for c in node.children} == {"System Caches": 40, "Trash": 5}

    def test_from_duplicates(self):
        group = DuplicateGroup("abc", 100, [DuplicateFile(Path("/h/1")), DuplicateFile(Path("/h/2"))])
        node = TreemapNode.from_duplicates([group])
        assert node.weight == 100
        assert node.children[0].name == "1"
