"""Cooperative cancellation token."""

from __future__ import annotations

import threading


class ScanCancelled(Exception):
    """Raised at a cancellation checkpoint once the token is cancelled."""


class CancellationToken:
    """Flag passed down the call chain and checked at well-defined points."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise ScanCancelled if cancellation was requested."""
        if self._event.is_set():
            raise ScanCancelled()
