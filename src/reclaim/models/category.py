"""Reclaimable storage categories."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from reclaim.utils import xdg_cache_home, xdg_data_home

_MIB = 1024 * 1024


class WalkMode(Enum):
    """How a category turns its root paths into scanned items."""

    CHILDREN = "children"  # each direct child of a root is one item
    WHOLE = "whole"  # each existing root is one item
    AGED = "aged"  # direct children older than the age threshold
    OVERSIZED = "oversized"  # any descendant file above the size threshold


@dataclass(frozen=True)
class CategoryInfo:
    """Static metadata attached to a Category."""

    description: str
    destructive: bool
    mode: WalkMode
    min_item_size: int = _MIB


class Category(str, Enum):
    """Closed set of reclaimable-storage kinds."""

    SYSTEM_CACHES = "System Caches"
    DERIVED_DATA = "Build Derived Data"
    DEVICE_BACKUPS = "Device Backups"
    PACKAGE_CACHES = "Package Manager Caches"
    CONTAINER_DATA = "Container Data"
    OLD_DOWNLOADS = "Old Downloads"
    TRASH = "Trash"
    LARGE_FILES = "Large Files"
    LOG_FILES = "Log Files"

    @property
    def info(self) -> CategoryInfo:
        return _INFO[self]

    @property
    def description(self) -> str:
        return self.info.description

    @property
    def destructive(self) -> bool:
        """True when items are irreplaceable user data rather than regenerable cache."""
        return self.info.destructive

    @property
    def mode(self) -> WalkMode:
        return self.info.mode

    @property
    def slug(self) -> str:
        """Short identifier used on the command line and in settings."""
        return self.name.lower()

    def paths(self) -> list[Path]:
        """Root paths to scan, computed against the current home directory."""
        return _roots(self, Path.home())

    @classmethod
    def from_slug(cls, value: str) -> Category:
        """Look up a category by slug, enum name or display name."""
        needle = value.strip().lower().replace("-", "_")
        for category in cls:
            if needle in (category.slug, category.value.lower()):
                return category
        raise ValueError(f"Unknown category: {value}")


_INFO: dict[Category, CategoryInfo] = {
    Category.SYSTEM_CACHES: CategoryInfo(
        "Temporary files from apps and system", destructive=False, mode=WalkMode.CHILDREN
    ),
    Category.DERIVED_DATA: CategoryInfo(
        "Build artifacts, archives and simulator caches from developer tools",
        destructive=False,
        mode=WalkMode.CHILDREN,
    ),
    Category.DEVICE_BACKUPS: CategoryInfo(
        "Old iPhone/iPad backups", destructive=True, mode=WalkMode.CHILDREN
    ),
    Category.PACKAGE_CACHES: CategoryInfo(
        "Downloaded packages from Homebrew, npm, yarn, pnpm and bun",
        destructive=False,
        mode=WalkMode.WHOLE,
    ),
    Category.CONTAINER_DATA: CategoryInfo(
        "Docker images, volumes, and build cache", destructive=False, mode=WalkMode.WHOLE
    ),
    Category.OLD_DOWNLOADS: CategoryInfo(
        "Downloads not modified for a long time", destructive=True, mode=WalkMode.AGED
    ),
    Category.TRASH: CategoryInfo(
        "Files in your Trash", destructive=False, mode=WalkMode.CHILDREN, min_item_size=1
    ),
    Category.LARGE_FILES: CategoryInfo(
        "Files above the large-file threshold", destructive=True, mode=WalkMode.OVERSIZED
    ),
    Category.LOG_FILES: CategoryInfo(
        "System and application logs", destructive=False, mode=WalkMode.CHILDREN
    ),
}


def _roots(category: Category, home: Path) -> list[Path]:
    library = home / "Library"
    match category:
        case Category.SYSTEM_CACHES:
            return [library / "Caches", Path("/Library/Caches"), xdg_cache_home()]
        case Category.DERIVED_DATA:
            developer = library / "Developer"
            return [
                developer / "Xcode" / "DerivedData",
                developer / "Xcode" / "Archives",
                developer / "Xcode" / "iOS DeviceSupport",
                developer / "CoreSimulator" / "Caches",
            ]
        case Category.DEVICE_BACKUPS:
            return [library / "Application Support" / "MobileSync" / "Backup"]
        case Category.PACKAGE_CACHES:
            return [
                library / "Caches" / "Homebrew",
                Path("/opt/homebrew/Caches"),
                xdg_cache_home() / "Homebrew",
                home / ".npm" / "_cacache",
                home / ".npm" / "_logs",
                home / ".yarn" / "cache",
                home / ".pnpm-store",
                home / ".bun" / "install" / "cache",
            ]
        case Category.CONTAINER_DATA:
            return [library / "Containers" / "com.docker.docker" / "Data", home / ".docker"]
        case Category.OLD_DOWNLOADS:
            return [home / "Downloads"]
        case Category.TRASH:
            return [home / ".Trash", xdg_data_home() / "Trash" / "files"]
        case Category.LARGE_FILES:
            return [home / "Documents", home / "Desktop", home / "Movies", home / "Music"]
        case Category.LOG_FILES:
            return [library / "Logs", Path("/var/log")]
    return []
