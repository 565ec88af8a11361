"""Path safety guard: the single authority on what may be deleted.

Rules are evaluated in a fixed order and the first match wins:

1. ``DENY_PREFIX``  - core OS locations, at or below the prefix
2. ``DENY_PATTERN`` - substrings marking OS metadata, credentials and
   first-party service storage, even inside an allowed zone
3. ``PROTECTED_ROOT`` - the exact root of an allowed zone (e.g. ``~``)
4. ``ALLOW_PREFIX`` - the user's home and third-party package roots
5. ``DEFAULT_DENY`` - anything unrecognized

Every check runs against the fully resolved path (symlinks followed,
``.`` and ``..`` collapsed). The guard keeps no state between calls and
is safe to share across threads.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from reclaim.utils import is_under

log = logging.getLogger(__name__)

DENIED_PREFIXES: tuple[str, ...] = (
    "/System",
    "/usr",
    "/bin",
    "/sbin",
    "/private/var",
    "/private/etc",
    "/Library/Apple",
    "/Library/Preferences/SystemConfiguration",
    "/Applications",
    "/Users/Shared",
    "/etc",
    "/var",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/lib",
    "/lib64",
)

DENIED_PATTERNS: tuple[str, ...] = (
    ".Spotlight",
    ".fseventsd",
    ".DocumentRevisions",
    ".MobileBackups",
    "/.Trashes",
    ".vol/",
    "com.apple.",
    "CloudKit",
    "Keychains",
    "Safari/LocalStorage",
    "Safari/Databases",
    "CoreServices",
    "SystemConfiguration",
    "LaunchServices",
    "loginwindow",
    "SystemAppearance",
    "FontCollections",
    "NetworkInterfaces",
    "Bluetooth",
    "WiFi",
    "cups",
    "sshd",
)

THIRD_PARTY_PREFIXES: tuple[str, ...] = (
    "/opt/homebrew",
    "/home/linuxbrew/.linuxbrew",
)


class RuleKind(Enum):
    DENY_PREFIX = "deny_prefix"
    DENY_PATTERN = "deny_pattern"
    PROTECTED_ROOT = "protected_root"
    ALLOW_PREFIX = "allow_prefix"
    DEFAULT_DENY = "default_deny"
    INVALID = "invalid"


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating one path."""

    path: str
    resolved: str
    forbidden: bool
    rule: RuleKind
    matched: str = ""


class PathSafetyGuard:
    """Decides whether a path may be traversed for, or targeted by, deletion."""

    def __init__(
        self,
        allowed_prefixes: list[str] | tuple[str, ...] | None = None,
        denied_prefixes: tuple[str, ...] = DENIED_PREFIXES,
        denied_patterns: tuple[str, ...] = DENIED_PATTERNS,
    ) -> None:
        if allowed_prefixes is None:
            allowed_prefixes = (str(Path.home()), *THIRD_PARTY_PREFIXES)
        allowed: list[str] = []
        for prefix in allowed_prefixes:
            resolved = _resolve(str(prefix))
            # An allow-list entry of "/" would open the whole filesystem.
            if resolved and resolved != "/":
                allowed.append(resolved)
        self._allowed = tuple(dict.fromkeys(allowed))
        self._denied_prefixes = tuple(p.casefold() for p in denied_prefixes)
        self._denied_patterns = tuple(denied_patterns)

    @property
    def allowed_prefixes(self) -> tuple[str, ...]:
        return self._allowed

    def is_forbidden(self, path: Path | str) -> bool:
        """Return True unless the path is positively inside a safe zone."""
        return self.evaluate(path).forbidden

    def is_allowed(self, path: Path | str) -> bool:
        return not self.is_forbidden(path)

    def may_traverse(self, path: Path | str) -> bool:
        """Return True if *path* may be walked to look for candidates.

        The exact root of an allowed zone is never a deletion target, but
        everything beneath it is, so it can still be walked. Entries found
        under it are checked on their own.
        """
        verdict = self.evaluate(path)
        return not verdict.forbidden or verdict.rule is RuleKind.PROTECTED_ROOT

    def evaluate(self, path: Path | str) -> Verdict:
        """Evaluate the rule set against *path* and report which rule decided."""
        try:
            return self._evaluate(os.fspath(path))
        except Exception:
            log.exception("Guard failed to evaluate %r, treating as forbidden", path)
            return Verdict(str(path), "", True, RuleKind.INVALID)

    def _evaluate(self, raw: str) -> Verdict:
        if not raw or not raw.strip():
            return Verdict(raw, "", True, RuleKind.INVALID, "empty path")

        resolved = _resolve(raw)
        if not resolved or resolved == "/":
            return Verdict(raw, resolved, True, RuleKind.INVALID, "filesystem root")

        folded = resolved.casefold()
        for prefix in self._denied_prefixes:
            if is_under(folded, prefix):
                return Verdict(raw, resolved, True, RuleKind.DENY_PREFIX, prefix)

        for pattern in self._denied_patterns:
            if pattern in resolved:
                return Verdict(raw, resolved, True, RuleKind.DENY_PATTERN, pattern)

        for prefix in self._allowed:
            if resolved == prefix:
                return Verdict(raw, resolved, True, RuleKind.PROTECTED_ROOT, prefix)
            if is_under(resolved, prefix):
                return Verdict(raw, resolved, False, RuleKind.ALLOW_PREFIX, prefix)

        return Verdict(raw, resolved, True, RuleKind.DEFAULT_DENY)


def _resolve(raw: str) -> str:
    """Absolute, symlink-free, normalized form of *raw*."""
    return os.path.realpath(os.path.abspath(os.path.expanduser(raw)))
