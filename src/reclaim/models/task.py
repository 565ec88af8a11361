"""Background task snapshot dataclass."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class TaskStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(slots=True)
class BackgroundTask:
    """Scheduler-tracked operation. Instances handed out are copies."""

    id: str
    label: str
    feature: str
    progress: float = 0.0
    status_text: str = ""
    status: TaskStatus = TaskStatus.RUNNING
    cancel_requested: bool = False
    started: float = field(default_factory=time.monotonic)
    finished: float | None = None

    @property
    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    @property
    def elapsed(self) -> float:
        end = self.finished if self.finished is not None else time.monotonic()
        return end - self.started
