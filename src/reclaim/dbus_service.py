"""D-Bus service exposing scans and deletions as cancellable tasks.

D-Bus methods use PascalCase per D-Bus convention, and type signatures
like "as" and "(sssds)" are D-Bus protocol types, not Python syntax.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from dbus_next import BusType
from dbus_next.aio import MessageBus
from dbus_next.service import ServiceInterface, method, signal

from reclaim.core.cancel import ScanCancelled
from reclaim.core.engine import FEATURE_DUPLICATES, FEATURE_SCAN, ReclaimEngine, ScanSession
from reclaim.core.tracker import Tracker
from reclaim.models.category import Category
from reclaim.models.clean_result import CleanResult
from reclaim.models.duplicate import DuplicateGroup
from reclaim.models.file_tree import FileTreeNode
from reclaim.models.scan_result import ScanResult
from reclaim.models.task import BackgroundTask
from reclaim.settings import Settings

log = logging.getLogger(__name__)

_BUS_NAME = "io.github.reclaim"
_OBJECT_PATH = "/io/github/reclaim"
_INTERFACE = "io.github.reclaim.Manager"

_TREE_DEPTH = 3


def task_to_dict(task: BackgroundTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "label": task.label,
        "feature": task.feature,
        "status": task.status.value,
        "progress": task.progress,
        "status_text": task.status_text,
        "elapsed": task.elapsed,
    }


def result_to_dict(value: Any) -> dict[str, Any]:
    """JSON-friendly form of whatever a session produced."""
    match value:
        case ScanResult():
            return {
                "kind": "scan",
                "total_bytes": value.total_size,
                "cancelled": value.cancelled,
                "items": [
                    {
                        "id": i.id,
                        "path": str(i.path),
                        "size_bytes": i.safe_size,
                        "category": i.category.slug,
                        "selected": i.selected,
                    }
                    for i in value.items
                ],
                "skipped": len(value.skipped),
            }
        case FileTreeNode():
            return {"kind": "tree", "tree": value.to_dict(max_depth=_TREE_DEPTH)}
        case CleanResult():
            return {
                "kind": "clean",
                "summary": value.summary,
                "freed_bytes": value.freed_bytes,
                "errors": value.errors,
            }
        case list():
            return {
                "kind": "duplicates",
                "groups": [
                    {
                        "hash": g.fingerprint,
                        "size_bytes": g.size_bytes,
                        "wasted_bytes": g.wasted_space,
                        "files": [{"path": str(f.path), "keep": f.is_original} for f in g.files],
                    }
                    for g in value
                ],
            }
    return {"kind": "unknown"}


# noinspection PyPep8Naming
class ReclaimDBusService(ServiceInterface):
    """D-Bus service interface for Reclaim."""

    def __init__(self, engine: ReclaimEngine | None = None, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(_INTERFACE)
        self._tracker = Tracker()
        self._engine = engine or ReclaimEngine(tracker=self._tracker)
        self._settings = Settings.instance()
        self._sessions: dict[str, ScanSession] = {}
        self._loop = loop
        self._engine.scheduler.add_listener(self._on_task_changed)

    @method()
    def StartScan(self, categories: "as") -> "s":  # type: ignore[override]
        """Start a category scan, returning its task id."""
        try:
            selected = [Category.from_slug(c) for c in categories] if categories else None
        except ValueError as e:
            return json.dumps({"error": str(e)})
        selected = selected or self._settings.enabled_categories()
        return self._track(self._engine.scan_categories(selected, self._settings.scan_options()))

    @method()
    def StartAnalysis(self, root: "s", max_depth: "i") -> "s":  # type: ignore[override]
        """Start a space analysis; a negative depth keeps the full tree."""
        return self._track(
            self._engine.analyze(
                root,
                max_depth=max_depth if max_depth >= 0 else None,
                exclusions=self._settings.exclusions(),
            )
        )

    @method()
    def StartDuplicateScan(self, roots: "as") -> "s":  # type: ignore[override]
        return self._track(self._engine.find_duplicates(list(roots), self._settings.duplicate_options()))

    @method()
    def ListTasks(self) -> "s":  # type: ignore[override]
        """Live and recently finished tasks as JSON."""
        scheduler = self._engine.scheduler
        return json.dumps(
            {
                "running": [task_to_dict(t) for t in scheduler.tasks()],
                "recent": [task_to_dict(t) for t in scheduler.recent()],
            }
        )

    @method()
    def CancelTask(self, task_id: "s") -> "b":  # type: ignore[override]
        session = self._sessions.get(task_id)
        if session is not None:
            return session.cancel()
        return self._engine.cancel(task_id)

    @method()
    def CancelFeature(self, feature: "s") -> "i":  # type: ignore[override]
        return self._engine.scheduler.cancel_all(feature)

    @method()
    def GetResult(self, task_id: "s") -> "s":  # type: ignore[override]
        """Result of a finished task as JSON, or its status while it runs."""
        session = self._sessions.get(task_id)
        if session is None:
            return json.dumps({"error": f"Unknown task '{task_id}'"})
        if not session.done:
            task = self._engine.scheduler.get(task_id)
            return json.dumps({"status": "running", "task": task_to_dict(task) if task else None})
        try:
            return json.dumps(result_to_dict(session.result()))
        except ScanCancelled:
            return json.dumps({"status": "cancelled"})
        except Exception as e:
            return json.dumps({"status": "failed", "error": str(e)})

    @method()
    def Delete(self, task_id: "s", item_ids: "as") -> "s":  # type: ignore[override]
        """Delete results of a finished scan or duplicate search.

        For scans, *item_ids* picks items (all selected items when empty).
        For duplicate searches the extra copies of every group are removed.
        """
        session = self._sessions.get(task_id)
        if session is None or not session.done or session.feature not in (FEATURE_SCAN, FEATURE_DUPLICATES):
            return json.dumps({"error": f"No finished scan '{task_id}'"})
        try:
            value = session.result()
        except Exception as e:
            return json.dumps({"error": f"Scan has no result: {e}"})

        if isinstance(value, ScanResult):
            wanted = set(item_ids)
            items = [i for i in value.items if i.id in wanted] if wanted else value.selected_items
            clean = self._engine.delete_items(items)
        else:
            groups: list[DuplicateGroup] = value
            clean = self._engine.delete_duplicates(groups)
        return self._track(clean)

    @method()
    def GetStats(self, period: "s") -> "s":  # type: ignore[override]
        """Get statistics for a time period."""
        return json.dumps(self._tracker.get_stats(period))

    @signal()
    def TaskChanged(  # type: ignore[override]
        self, task_id: str, feature: str, status: str, progress: float, status_text: str
    ) -> "(sssds)":
        return [task_id, feature, status, progress, status_text]

    def close(self) -> None:
        self._engine.shutdown()

    def _track(self, session: ScanSession) -> str:
        self._sessions[session.task_id] = session
        self._prune_sessions()
        return session.task_id

    def _prune_sessions(self) -> None:
        """Forget finished sessions the scheduler no longer remembers."""
        scheduler = self._engine.scheduler
        for task_id, session in list(self._sessions.items()):
            if session.done and scheduler.get(task_id) is None:
                del self._sessions[task_id]

    def _on_task_changed(self, task: BackgroundTask) -> None:
        # Scheduler listeners run on worker threads; signals must go out on the bus loop.
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(
            self.TaskChanged, task.id, task.feature, task.status.value, task.progress, task.status_text
        )


async def run_service() -> None:
    """Start the D-Bus service."""
    bus = await MessageBus(bus_type=BusType.SESSION).connect()
    service = ReclaimDBusService(loop=asyncio.get_running_loop())
    bus.export(_OBJECT_PATH, service)
    await bus.request_name(_BUS_NAME)
    log.info("D-Bus service started on %s", _BUS_NAME)
    try:
        await bus.wait_for_disconnect()
    finally:
        service.close()


def start_service() -> None:
    """Entry point to start the D-Bus service."""
    asyncio.run(run_service())
