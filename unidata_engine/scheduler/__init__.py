from .apsched_adapter import APSchedulerAdapter, subject_job_id

__all__ = ["APSchedulerAdapter", "subject_job_id"]
