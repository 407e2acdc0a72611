"""Job lifecycle management and the single-worker queue."""

from .manager import JobManager, JobOptions, TRANSITIONS
from .queue import JobQueue, QueueEntry

__all__ = ["JobManager", "JobOptions", "JobQueue", "QueueEntry", "TRANSITIONS"]
