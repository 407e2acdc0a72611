"""FIFO job queue drained by a single worker thread."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..infra.pacing import Sleeper, real_sleep
from ..models import Job
from .manager import JobManager, JobOptions

_STOP = object()


@dataclass(slots=True)
class QueueEntry:
    job: Job
    locations: list[str]
    options: JobOptions = field(default_factory=JobOptions)


class JobQueue:
    """Run queued jobs one at a time, pausing between subjects."""

    def __init__(
        self,
        manager: JobManager,
        subject_delay: float = 10.0,
        sleep: Sleeper = real_sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.subject_delay = subject_delay
        self.sleep = sleep
        self.logger = logger or structlog.get_logger("unidata_engine.queue")
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._current_job_id: str | None = None
        self._processed = 0
        self._failed = 0

    # ------------------------------------------------------------------
    def enqueue(
        self,
        job: Job,
        locations: list[str] | None = None,
        options: JobOptions | None = None,
    ) -> None:
        entry = QueueEntry(
            job=job,
            locations=list(job.locations if locations is None else locations),
            options=options or JobOptions(),
        )
        self._queue.put(entry)
        self.logger.info("job_enqueued", job_id=job.id, queue_size=self._queue.qsize())

    def start(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run, name="unidata-job-queue", daemon=True
            )
            self._worker.start()
        self.logger.info("queue_started")

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            worker = self._worker
        if worker is None:
            return
        self._queue.put(_STOP)
        worker.join(timeout)
        with self._lock:
            self._worker = None
        self.logger.info("queue_stopped")

    def clear(self) -> int:
        """Drop entries that have not started yet."""

        dropped = 0
        while True:
            try:
                entry = self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            if entry is _STOP:
                self._queue.put(_STOP)
                break
            dropped += 1
        if dropped:
            self.logger.info("queue_cleared", dropped=dropped)
        return dropped

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until every enqueued job has been processed."""

        if timeout is None:
            self._queue.join()
            return True
        done = threading.Event()

        def _join() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=_join, daemon=True).start()
        return done.wait(timeout)

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            current = self._current_job_id
        return {
            "queue_size": self._queue.qsize(),
            "is_processing": current is not None,
            "current_job_id": current,
            "processed": self._processed,
            "failed": self._failed,
        }

    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            if entry is _STOP:
                self._queue.task_done()
                return
            try:
                self.process(entry)
            finally:
                self._queue.task_done()
            if not self._queue.empty() and self.subject_delay > 0:
                self.logger.debug("subject_delay", seconds=self.subject_delay)
                self.sleep(self.subject_delay)

    def process(self, entry: QueueEntry) -> None:
        with self._lock:
            self._current_job_id = entry.job.id
        try:
            self.manager.execute_job(entry.job, entry.locations, entry.options)
        except Exception as exc:  # noqa: BLE001
            self._failed += 1
            self.logger.error("queued_job_failed", job_id=entry.job.id, error=str(exc))
        finally:
            self._processed += 1
            with self._lock:
                self._current_job_id = None


__all__ = ["JobQueue", "QueueEntry"]
