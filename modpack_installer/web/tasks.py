"""Installer runs started from the web UI, with their events fanned out as SSE."""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from queue import Empty, Queue
from typing import Any, Callable, Generator

from ..events import AddAlert, ChangeDetail, ChangePhase, EventCallback, InstallerEvent, UpdateProgress

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 30
TERMINAL_EVENTS = ("complete", "error")


@dataclass
class InstallerRun:
    """Latest known view of one background run plus its pending SSE messages."""

    id: str
    mode: str
    status: str = "queued"  # queued, running, completed, failed
    progress: float = 0.0
    phase: str = ""
    detail: str = ""
    alerts: list[dict] = field(default_factory=list)
    error: str = ""
    outbox: Queue = field(default_factory=Queue)

    def record(self, event: InstallerEvent) -> None:
        if isinstance(event, UpdateProgress):
            self.progress = event.progress
        elif isinstance(event, ChangePhase):
            self.phase = event.phase.value
        elif isinstance(event, ChangeDetail):
            self.detail = event.detail
        elif isinstance(event, AddAlert):
            self.alerts.append(event.to_dict())
        self.outbox.put(("installer", event.to_dict()))

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode,
            "status": self.status,
            "progress": self.progress,
            "phase": self.phase,
            "detail": self.detail,
            "alerts": list(self.alerts),
            "error": self.error,
        }


class TaskManager:
    """Starts installer runs on daemon threads and keeps them addressable by id."""

    def __init__(self):
        self._runs: dict[str, InstallerRun] = {}
        self._lock = threading.Lock()

    def start(self, mode: str, target: Callable[[EventCallback], None]) -> str:
        """Run ``target(on_event)`` in the background. Returns the run id."""
        run = InstallerRun(id=uuid.uuid4().hex[:8], mode=mode)
        with self._lock:
            self._runs[run.id] = run

        thread = threading.Thread(
            target=self._execute, args=(run, target), name=f"installer-{run.id}", daemon=True
        )
        thread.start()
        return run.id

    def _execute(self, run: InstallerRun, target: Callable[[EventCallback], None]) -> None:
        run.status = "running"
        run.outbox.put(("status", {"status": "running"}))
        try:
            target(run.record)
        except Exception as e:
            # The service has already logged the traceback.
            run.status = "failed"
            run.error = str(e)
            run.outbox.put(("error", {"msg": run.error}))
            return
        run.status = "completed"
        run.progress = 1.0
        run.outbox.put(("complete", {"status": "completed"}))

    def get(self, run_id: str) -> InstallerRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def stream_events(self, run_id: str) -> Generator[str, None, None]:
        """SSE messages for ``run_id`` until the run finishes."""
        run = self.get(run_id)
        if run is None:
            yield 'event: error\ndata: {"msg": "Task not found"}\n\n'
            return

        while True:
            try:
                name, payload = run.outbox.get(timeout=KEEPALIVE_SECONDS)
            except Empty:
                yield ": keepalive\n\n"
                continue

            yield f"event: {name}\ndata: {json.dumps(payload)}\n\n"
            if name in TERMINAL_EVENTS:
                logger.debug("Run %s stream closed after %s", run_id, name)
                return
