"""Pydantic models describing extracted records, diffs and jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# camelCase on the HTTP wire; field names still validate for stored documents
WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionMethod(str, Enum):
    DIRECT = "direct"
    INFERRED = "inferred"
    AI_VERIFIED = "ai_verified"


class SourceMeta(BaseModel):
    """Provenance attached to every extracted value."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    source_url: str
    fetched_at: datetime = Field(default_factory=utcnow)
    confidence: float = Field(ge=0, le=100)
    method: ExtractionMethod
    notes: str | None = None


class FieldValue(BaseModel):
    """A value and its provenance; both are always present together.

    Absence is modelled by the owning field being ``None``, so a value of
    ``""`` is a present-but-empty field rather than a missing one.
    """

    model_config = ConfigDict(frozen=True)

    value: Any
    source: SourceMeta

    @property
    def confidence(self) -> float:
        return self.source.confidence

    def with_source(self, **changes: Any) -> "FieldValue":
        return self.model_copy(update={"source": self.source.model_copy(update=changes)})


class ProgramLevel(str, Enum):
    UNDERGRADUATE = "Undergraduate"
    POSTGRADUATE = "Postgraduate"
    PHD = "PhD"


class IntakeTerm(str, Enum):
    FALL = "Fall"
    SPRING = "Spring"
    SUMMER = "Summer"
    WINTER = "Winter"


class DeadlineType(str, Enum):
    APPLICATION = "application"
    DOCUMENT = "document"
    DEPOSIT = "deposit"
    REGISTRATION = "registration"
    OTHER = "other"


class Deadline(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: FieldValue
    type: DeadlineType = DeadlineType.APPLICATION
    notes: str | None = None


class Intake(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: IntakeTerm
    year: int
    deadlines: tuple[Deadline, ...] = ()
    is_active: FieldValue | None = None

    @property
    def key(self) -> str:
        return f"{self.term.value.lower()}-{self.year}"


# Optional FieldValue attributes of a record, in comparison order.
OPTIONAL_FIELDS: tuple[str, ...] = (
    "tuition_fee",
    "application_fee",
    "ielts_score",
    "toefl_score",
    "admission_requirements",
    "indian_academic_req",
    "backlog_policy",
    "indian_scholarships",
    "language_waiver",
)
IDENTITY_FIELDS: tuple[str, ...] = ("university_name", "program_name")
MONETARY_FIELDS: frozenset[str] = frozenset({"tuition_fee", "application_fee"})
SCORE_FIELDS: frozenset[str] = frozenset({"ielts_score", "toefl_score"})


class ProgramRecord(BaseModel):
    """A single program listing extracted for a subject (university)."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject_id: str
    university_name: FieldValue
    program_name: FieldValue
    level: ProgramLevel = ProgramLevel.UNDERGRADUATE
    country: str = "Other"

    tuition_fee: FieldValue | None = None
    application_fee: FieldValue | None = None
    ielts_score: FieldValue | None = None
    toefl_score: FieldValue | None = None
    admission_requirements: FieldValue | None = None
    indian_academic_req: FieldValue | None = None
    backlog_policy: FieldValue | None = None
    indian_scholarships: FieldValue | None = None
    language_waiver: FieldValue | None = None

    intakes: tuple[Intake, ...] = ()

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_verified_at: datetime | None = None

    def with_field(self, name: str, value: FieldValue | None) -> "ProgramRecord":
        """Return a copy with ``name`` replaced; the original is untouched."""

        if name not in IDENTITY_FIELDS and name not in OPTIONAL_FIELDS:
            raise KeyError(f"Unknown record field: {name}")
        return self.model_copy(update={name: value, "updated_at": utcnow()})

    def compared_fields(self) -> Iterator[tuple[str, FieldValue | None]]:
        """Yield every comparable field, with intake deadlines flattened."""

        for name in IDENTITY_FIELDS + OPTIONAL_FIELDS:
            yield name, getattr(self, name)
        for intake in self.intakes:
            seen: set[str] = set()
            for deadline in intake.deadlines:
                key = f"deadline.{intake.key}.{deadline.type.value}"
                if key in seen:
                    continue
                seen.add(key)
                yield key, deadline.date


class ChangeType(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    MISSING = "missing"
    NEWLY_ADDED = "newly_added"


class FieldDiff(BaseModel):
    model_config = WIRE_CONFIG

    field_name: str
    change_type: ChangeType
    previous_value: Any = None
    previous_source: SourceMeta | None = None
    new_value: Any = None
    new_source: SourceMeta | None = None
    confidence: float
    requires_review: bool


class RecordDiff(BaseModel):
    model_config = WIRE_CONFIG

    record_id: str
    is_new: bool = False
    is_deleted: bool = False
    field_diffs: list[FieldDiff] = Field(default_factory=list)
    overall_confidence: float = 100.0
    requires_review: bool = False

    def changed_fields(self) -> set[str]:
        return {
            diff.field_name
            for diff in self.field_diffs
            if diff.change_type is not ChangeType.UNCHANGED
        }


class DiffSummary(BaseModel):
    model_config = WIRE_CONFIG

    total: int = 0
    unchanged: int = 0
    changed: int = 0
    new: int = 0
    deleted: int = 0
    requires_review: int = 0


class DiffResult(BaseModel):
    model_config = WIRE_CONFIG

    job_id: str
    subject_id: str
    diffs: list[RecordDiff] = Field(default_factory=list)
    summary: DiffSummary = Field(default_factory=DiffSummary)
    created_at: datetime = Field(default_factory=utcnow)


class ConfidenceScore(BaseModel):
    record_id: str
    overall: float
    by_category: dict[str, float] = Field(default_factory=dict)
    factors: dict[str, bool] = Field(default_factory=dict)


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    FETCHING = "FETCHING"
    PARSING = "PARSING"
    VALIDATING = "VALIDATING"
    DIFFING = "DIFFING"
    AI_VERIFYING = "AI_VERIFYING"
    READY_TO_PUBLISH = "READY_TO_PUBLISH"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"
    FAILED_BLOCKED = "FAILED_BLOCKED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.PUBLISHED, JobStatus.FAILED, JobStatus.FAILED_BLOCKED})


class JobError(BaseModel):
    model_config = WIRE_CONFIG

    message: str
    code: str
    retryable: bool = False
    blocked: bool = False


class Job(BaseModel):
    """Persisted job document; mutated only by the job manager."""

    model_config = WIRE_CONFIG

    id: str
    subject_id: str
    subject_name: str
    country: str = "Other"
    status: JobStatus = JobStatus.QUEUED
    retry_count: int = 0
    max_retries: int = 3
    locations: list[str] = Field(default_factory=list)
    locations_fetched: list[str] = Field(default_factory=list)
    records_found: int = 0
    records_valid: int = 0
    created_by: str = "system"
    auto_publish: bool = False
    approved_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error: JobError | None = None


__all__ = [
    "ChangeType",
    "ConfidenceScore",
    "Deadline",
    "DeadlineType",
    "DiffResult",
    "DiffSummary",
    "ExtractionMethod",
    "FieldDiff",
    "FieldValue",
    "IDENTITY_FIELDS",
    "Intake",
    "IntakeTerm",
    "Job",
    "JobError",
    "JobStatus",
    "MONETARY_FIELDS",
    "OPTIONAL_FIELDS",
    "ProgramLevel",
    "ProgramRecord",
    "RecordDiff",
    "SCORE_FIELDS",
    "SourceMeta",
    "TERMINAL_STATUSES",
    "WIRE_CONFIG",
    "utcnow",
]
