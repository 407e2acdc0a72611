"""APScheduler wrapper that turns subject schedules into queued jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleType, SubjectConfig


def subject_job_id(name: str) -> str:
    return f"subject::{name}"


class APSchedulerAdapter:
    """Manage APScheduler jobs for configured subjects."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.logger = structlog.get_logger("unidata_engine.scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_subject(
        self, subject: SubjectConfig, callback: Callable[[SubjectConfig], None]
    ) -> str:
        trigger = self._build_trigger(subject)
        job_id = subject_job_id(subject.name)
        self.scheduler.add_job(
            callback, trigger=trigger, id=job_id, args=[subject], replace_existing=True
        )
        self.logger.info(
            "subject_scheduled", subject=subject.name, schedule=subject.schedule.model_dump(mode="json")
        )
        return job_id

    def remove_subject(self, name: str) -> bool:
        job_id = subject_job_id(name)
        if self.scheduler.get_job(job_id) is None:
            self.logger.warning("subject_schedule_missing", subject=name)
            return False
        self.scheduler.remove_job(job_id)
        self.logger.info("subject_unscheduled", subject=name)
        return True

    @staticmethod
    def _build_trigger(subject: SubjectConfig):
        schedule = subject.schedule
        if schedule.type is ScheduleType.CRON:
            return CronTrigger.from_crontab(str(schedule.value), timezone="UTC")
        if schedule.type is ScheduleType.INTERVAL:
            if isinstance(schedule.value, (int, float)):
                return IntervalTrigger(seconds=float(schedule.value))
            if isinstance(schedule.value, dict):
                return IntervalTrigger(**schedule.value)
            raise ValueError("Interval schedule requires seconds or kwargs dict")
        if schedule.type is ScheduleType.ONCE:
            if schedule.value:
                run_date = datetime.fromisoformat(str(schedule.value))
            else:
                run_date = datetime.now(timezone.utc)
            return DateTrigger(run_date=run_date)
        raise ValueError(f"Unknown schedule type: {schedule.type}")

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "next_run_time": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]


__all__ = ["APSchedulerAdapter", "subject_job_id"]
