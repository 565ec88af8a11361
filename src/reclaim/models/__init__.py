"""Reclaim data models."""

from reclaim.models.category import Category, CategoryInfo, WalkMode
from reclaim.models.clean_result import CleanResult, ItemOutcome, Outcome
from reclaim.models.duplicate import DuplicateFile, DuplicateGroup, DuplicateOptions, prune_groups
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScannedItem, ScanOptions, ScanResult, SkipEvent, SkipReason, SortOrder
from reclaim.models.task import BackgroundTask, TaskStatus

__all__ = [
    "BackgroundTask",
    "Category",
    "CategoryInfo",
    "CleanResult",
    "DuplicateFile",
    "DuplicateGroup",
    "DuplicateOptions",
    "FileTreeNode",
    "ItemOutcome",
    "Outcome",
    "ScannedItem",
    "ScanOptions",
    "ScanResult",
    "SkipEvent",
    "SkipReason",
    "SortOrder",
    "TaskStatus",
    "WalkMode",
    "prune_groups",
]
