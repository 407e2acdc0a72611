"""Job lifecycle: drive one subject through the ingestion pipeline."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

import structlog

from ..config import EngineSettings, slugify
from ..engine import (
    ConfidenceVerifier,
    DiffEngine,
    Fetcher,
    Parser,
    PublishOptions,
    Publisher,
    Validator,
)
from ..errors import (
    ErrorCode,
    IngestError,
    InvalidStateError,
    JobNotFoundError,
    classify_exception,
)
from ..infra.storage import DocumentStore
from ..models import DiffResult, Job, JobStatus, ProgramRecord, utcnow

JOBS_COLLECTION = "fetch_jobs"
STAGED_COLLECTION = "staged_records"
DIFFS_COLLECTION = "diff_results"

_FAILURE_STATES = (JobStatus.FAILED, JobStatus.FAILED_BLOCKED)
TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.QUEUED: (JobStatus.FETCHING, *_FAILURE_STATES),
    JobStatus.FETCHING: (JobStatus.PARSING, *_FAILURE_STATES),
    JobStatus.PARSING: (JobStatus.VALIDATING, *_FAILURE_STATES),
    JobStatus.VALIDATING: (JobStatus.DIFFING, *_FAILURE_STATES),
    JobStatus.DIFFING: (
        JobStatus.AI_VERIFYING,
        JobStatus.READY_TO_PUBLISH,
        JobStatus.PUBLISHED,
        *_FAILURE_STATES,
    ),
    JobStatus.AI_VERIFYING: (JobStatus.READY_TO_PUBLISH, JobStatus.PUBLISHED, *_FAILURE_STATES),
    JobStatus.READY_TO_PUBLISH: (JobStatus.PUBLISHED, *_FAILURE_STATES),
    JobStatus.PUBLISHED: (),
    JobStatus.FAILED: (),
    JobStatus.FAILED_BLOCKED: (),
}


def new_job_id(now: datetime | None = None) -> str:
    stamp = int((now or utcnow()).timestamp() * 1000)
    return f"job_{stamp}_{uuid.uuid4().hex[:9]}"


@dataclass(slots=True)
class JobOptions:
    """Per-execution overrides; ``None`` falls back to the job document."""

    auto_publish: bool | None = None


class JobManager:
    """Own the job document and every status transition it goes through."""

    def __init__(
        self,
        store: DocumentStore,
        fetcher: Fetcher,
        parser: Parser,
        validator: Validator,
        diff_engine: DiffEngine,
        verifier: ConfidenceVerifier,
        publisher: Publisher,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        logger: structlog.BoundLogger | None = None,
        subject_logger: Callable[[str], structlog.BoundLogger] | None = None,
    ) -> None:
        settings = settings or EngineSettings()
        self.store = store
        self.fetcher = fetcher
        self.parser = parser
        self.validator = validator
        self.diff_engine = diff_engine
        self.verifier = verifier
        self.publisher = publisher
        self.ai_enabled = settings.ai.enabled
        self.max_retries = settings.rate_limit.max_retries
        self.job_timeout = settings.job.timeout
        self.clock = clock
        self.monotonic = monotonic
        self.logger = logger or structlog.get_logger("unidata_engine.jobs")
        self.subject_logger = subject_logger or self._bound_logger
        self._approve_lock = threading.Lock()

    def _bound_logger(self, subject_id: str) -> structlog.BoundLogger:
        return self.logger.bind(subject=subject_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def get_job(self, job_id: str) -> Job:
        doc = self.store.get(JOBS_COLLECTION, job_id)
        if doc is None:
            raise JobNotFoundError(job_id)
        return Job.model_validate(doc)

    def get_diff(self, job_id: str) -> DiffResult | None:
        doc = self.store.get(DIFFS_COLLECTION, job_id)
        return DiffResult.model_validate(doc) if doc is not None else None

    def list_jobs(self) -> list[Job]:
        jobs = [Job.model_validate(doc) for doc in self.store.list(JOBS_COLLECTION)]
        return sorted(jobs, key=lambda job: job.created_at)

    def staged_records(self, job_id: str) -> list[ProgramRecord]:
        doc = self.store.get(STAGED_COLLECTION, job_id) or {}
        return [ProgramRecord.model_validate(item) for item in doc.get("records", [])]

    def _save(self, job: Job) -> None:
        job.updated_at = self.clock()
        self.store.set(JOBS_COLLECTION, job.id, job.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create_job(
        self,
        subject_name: str,
        country: str,
        locations: Sequence[str],
        created_by: str = "system",
        auto_publish: bool = False,
    ) -> Job:
        now = self.clock()
        job = Job(
            id=new_job_id(now),
            subject_id=slugify(subject_name),
            subject_name=subject_name,
            country=country,
            locations=list(locations),
            max_retries=self.max_retries,
            created_by=created_by,
            auto_publish=auto_publish,
            created_at=now,
        )
        self._save(job)
        self.logger.info(
            "job_created",
            job_id=job.id,
            subject=subject_name,
            locations=len(job.locations),
            auto_publish=auto_publish,
        )
        return job

    def transition(self, job: Job, status: JobStatus) -> Job:
        if status not in TRANSITIONS[job.status]:
            raise InvalidStateError(
                f"Illegal transition {job.status.value} -> {status.value} for job {job.id}"
            )
        previous = job.status
        job.status = status
        now = self.clock()
        if status is JobStatus.FETCHING:
            job.started_at = now
        if status in _FAILURE_STATES:
            job.failed_at = now
        if status.is_terminal:
            job.completed_at = now
        self._save(job)
        self.logger.info(
            "job_transition", job_id=job.id, previous=previous.value, status=status.value
        )
        return job

    def fail(self, job: Job, error: IngestError) -> Job:
        job.error = error.to_job_error()
        status = JobStatus.FAILED_BLOCKED if error.blocked else JobStatus.FAILED
        self.transition(job, status)
        self.logger.error(
            "job_failed",
            job_id=job.id,
            status=status.value,
            code=error.code.value,
            error=error.message,
        )
        return job

    def execute_job(
        self,
        job: Job,
        locations: Sequence[str] | None = None,
        options: JobOptions | None = None,
    ) -> Job:
        """Run every stage in order; failures are recorded on the job and re-raised."""

        options = options or JobOptions()
        locations = list(job.locations if locations is None else locations)
        auto_publish = job.auto_publish if options.auto_publish is None else options.auto_publish
        log = self.subject_logger(job.subject_id).bind(job_id=job.id)

        if not locations:
            error = IngestError("No locations configured for subject", ErrorCode.NO_LOCATIONS)
            self.fail(job, error)
            raise error

        started = self.monotonic()
        try:
            self.transition(job, JobStatus.FETCHING)
            batch = self.fetcher.fetch_many(locations)
            job.retry_count = batch.retries
            job.locations_fetched = [result.location for result in batch.results]
            if batch.blocked is not None:
                raise batch.blocked
            log.info(
                "fetch_stage_complete",
                fetched=len(batch.results),
                failed=len(batch.failures),
            )
            self._check_timeout(job, started)

            self.transition(job, JobStatus.PARSING)
            parsed = self.parser.parse(
                batch.results, job.subject_name, job.country, subject_id=job.subject_id
            )
            job.records_found = len(parsed.records)
            self._check_timeout(job, started)

            self.transition(job, JobStatus.VALIDATING)
            validation = self.validator.validate(parsed.records)
            records = validation.valid
            job.records_valid = len(records)
            self._check_timeout(job, started)

            self.transition(job, JobStatus.DIFFING)
            previous = self.publisher.load_snapshot(job.subject_id)
            diffs = self.diff_engine.compute_diff(previous, records)
            diff_result = self.diff_engine.summarize(job.id, job.subject_id, diffs)
            self.store.set(DIFFS_COLLECTION, job.id, diff_result.model_dump(mode="json"))
            self._check_timeout(job, started)

            if self.ai_enabled:
                self.transition(job, JobStatus.AI_VERIFYING)
                report = self.verifier.verify(records, diffs)
                records = report.records
                log.info("verification_stage_complete", manual_review=len(report.manual_review))
                self._check_timeout(job, started)

            retired = [diff.record_id for diff in diffs if diff.is_deleted]
            if auto_publish:
                self.publisher.publish(
                    records,
                    PublishOptions(approved_by=job.created_by, retire_ids=retired),
                )
                job.approved_by = job.created_by
                self.transition(job, JobStatus.PUBLISHED)
            else:
                self.store.set(
                    STAGED_COLLECTION,
                    job.id,
                    {
                        "job_id": job.id,
                        "subject_id": job.subject_id,
                        "records": [record.model_dump(mode="json") for record in records],
                        "retire_ids": retired,
                    },
                )
                self.transition(job, JobStatus.READY_TO_PUBLISH)
        except Exception as exc:
            error = classify_exception(exc)
            if not job.status.is_terminal:
                self.fail(job, error)
            if error is exc:
                raise
            raise error from exc

        log.info(
            "job_complete",
            status=job.status.value,
            records_found=job.records_found,
            records_valid=job.records_valid,
            changed=diff_result.summary.changed,
            new=diff_result.summary.new,
            review=diff_result.summary.requires_review,
        )
        return job

    def approve_and_publish(
        self,
        job_id: str,
        approved_by: str,
        record_ids: Sequence[str] | None = None,
    ) -> Job:
        # status check and publish must not interleave with another approval
        with self._approve_lock:
            return self._approve_locked(job_id, approved_by, record_ids)

    def _approve_locked(
        self, job_id: str, approved_by: str, record_ids: Sequence[str] | None
    ) -> Job:
        job = self.get_job(job_id)
        if job.status is not JobStatus.READY_TO_PUBLISH:
            raise InvalidStateError(
                f"Job {job_id} is {job.status.value}, expected {JobStatus.READY_TO_PUBLISH.value}"
            )
        staged = self.store.get(STAGED_COLLECTION, job_id) or {}
        records = [ProgramRecord.model_validate(item) for item in staged.get("records", [])]
        retired = list(staged.get("retire_ids", []))
        if record_ids is not None:
            wanted = set(record_ids)
            records = [record for record in records if record.id in wanted]
            retired = [record_id for record_id in retired if record_id in wanted]

        self.publisher.publish(records, PublishOptions(approved_by=approved_by, retire_ids=retired))
        job.approved_by = approved_by
        self.transition(job, JobStatus.PUBLISHED)
        self.logger.info(
            "job_approved", job_id=job_id, approved_by=approved_by, records=len(records)
        )
        return job

    def _check_timeout(self, job: Job, started: float) -> None:
        elapsed = self.monotonic() - started
        if elapsed > self.job_timeout:
            raise IngestError(
                f"Job {job.id} exceeded {self.job_timeout:g}s (ran {elapsed:.1f}s)",
                ErrorCode.JOB_TIMEOUT,
            )


__all__ = [
    "DIFFS_COLLECTION",
    "JOBS_COLLECTION",
    "JobManager",
    "JobOptions",
    "STAGED_COLLECTION",
    "TRANSITIONS",
    "new_job_id",
]
