"""Process-wide registry of cancellable background tasks."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterator

from reclaim.core.cancel import CancellationToken
from reclaim.models.task import BackgroundTask, TaskStatus

log = logging.getLogger(__name__)

TaskListener = Callable[[BackgroundTask], None]

_RECENT_LIMIT = 10


class TaskScheduler:
    """Tracks running operations so callers can observe and cancel them.

    All registry mutations happen under one lock. Readers get copies of
    task state, never the live records.
    """

    def __init__(self, recent_limit: int = _RECENT_LIMIT) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, BackgroundTask] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._recent: deque[BackgroundTask] = deque(maxlen=recent_limit)
        self._listeners: list[TaskListener] = []

    def add_listener(self, listener: TaskListener) -> None:
        """Register a callback fired (outside the lock) on every task change."""
        with self._lock:
            self._listeners.append(listener)

    def start(self, label: str, feature: str) -> str:
        """Register a new running task and return its identifier."""
        task = BackgroundTask(id=uuid.uuid4().hex, label=label, feature=feature, status_text="Starting")
        with self._lock:
            self._tasks[task.id] = task
            self._tokens[task.id] = CancellationToken()
            snapshot = dataclasses.replace(task)
        log.debug("Started task %s (%s, feature=%s)", task.id, label, feature)
        self._notify(snapshot)
        return task.id

    def token(self, task_id: str) -> CancellationToken:
        """The cancellation token the task's worker should check."""
        with self._lock:
            token = self._tokens.get(task_id)
        if token is None:
            raise KeyError(task_id)
        return token

    def update_progress(self, task_id: str, fraction: float, status_text: str = "") -> None:
        """Advance progress. Values are clamped to [0, 1] and never move backwards."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return
            task.progress = max(task.progress, min(1.0, max(0.0, fraction)))
            if status_text:
                task.status_text = status_text
            snapshot = dataclasses.replace(task)
        self._notify(snapshot)

    def complete(self, task_id: str, status_text: str = "Complete") -> None:
        self._finish(task_id, TaskStatus.COMPLETED, status_text, progress=1.0)

    def fail(self, task_id: str, error: str) -> None:
        self._finish(task_id, TaskStatus.FAILED, error)

    def cancel(self, task_id: str) -> bool:
        """Request cooperative cancellation; the worker stops at its next checkpoint."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return False
            task.cancel_requested = True
            task.status_text = "Cancelling"
            self._tokens[task_id].cancel()
            snapshot = dataclasses.replace(task)
        log.info("Cancellation requested for task %s (%s)", task_id, snapshot.label)
        self._notify(snapshot)
        return True

    def cancel_all(self, feature: str) -> int:
        """Cancel every live task tagged with *feature*. Returns how many were signalled."""
        with self._lock:
            ids = [t.id for t in self._tasks.values() if t.feature == feature]
        return sum(1 for task_id in ids if self.cancel(task_id))

    def mark_cancelled(self, task_id: str, status_text: str = "Cancelled") -> None:
        """Record that a worker honoured cancellation and stopped."""
        self._finish(task_id, TaskStatus.CANCELLED, status_text)

    def get(self, task_id: str) -> BackgroundTask | None:
        """Snapshot of a live task, or of a recently finished one."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                task = next((t for t in self._recent if t.id == task_id), None)
            return dataclasses.replace(task) if task is not None else None

    def tasks(self, feature: str | None = None) -> list[BackgroundTask]:
        """Snapshots of live tasks, optionally filtered by feature."""
        with self._lock:
            return [
                dataclasses.replace(t) for t in self._tasks.values() if feature is None or t.feature == feature
            ]

    def recent(self) -> list[BackgroundTask]:
        """Snapshots of recently finished tasks, oldest first."""
        with self._lock:
            return [dataclasses.replace(t) for t in self._recent]

    def clear_recent(self) -> None:
        with self._lock:
            self._recent.clear()

    @property
    def running_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __len__(self) -> int:
        return self.running_count

    def __iter__(self) -> Iterator[BackgroundTask]:
        return iter(self.tasks())

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def _finish(self, task_id: str, status: TaskStatus, status_text: str, progress: float | None = None) -> None:
        with self._lock:
            task = self._tasks.pop(task_id, None)
            self._tokens.pop(task_id, None)
            if task is None:
                return
            task.status = status
            task.status_text = status_text
            task.finished = time.monotonic()
            if progress is not None:
                task.progress = progress
            self._recent.append(task)
            snapshot = dataclasses.replace(task)
        log.debug("Task %s finished: %s (%s)", task_id, status.value, status_text)
        self._notify(snapshot)

    def _notify(self, snapshot: BackgroundTask) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                log.exception("Task listener failed")
