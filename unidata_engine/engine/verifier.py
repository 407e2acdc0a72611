"""Secondary confidence verification.

The verification capability only adjusts confidence and review flags on
values that were already extracted. It never supplies a value of its own.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from statistics import fmean
from typing import Any, Callable, Iterable, Protocol, Sequence

import httpx
import structlog

from ..models import (
    ConfidenceScore,
    ExtractionMethod,
    FieldValue,
    ProgramRecord,
    RecordDiff,
    utcnow,
)

CHECKED_FIELDS: tuple[str, ...] = (
    "tuition_fee",
    "application_fee",
    "ielts_score",
    "toefl_score",
    "indian_academic_req",
    "backlog_policy",
    "indian_scholarships",
)
SCORED_FIELDS: tuple[str, ...] = (
    "tuition_fee",
    "application_fee",
    "ielts_score",
    "toefl_score",
    "indian_academic_req",
    "backlog_policy",
)
CONTEXT_LIMIT = 500
RECENT_WINDOW = timedelta(days=7)


@dataclass(slots=True)
class FieldContext:
    record_id: str
    university: str
    program: str
    field_name: str
    value: Any
    confidence: float
    method: str
    context: str = ""


@dataclass(slots=True)
class VerificationOutcome:
    confidence: float
    needs_review: bool


class FieldVerifier(Protocol):
    def verify(self, context: FieldContext) -> VerificationOutcome: ...


class HttpFieldVerifier:
    """Call a remote verification endpoint that answers ``{confidence, needs_review}``."""

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        timeout: float = 20.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.Client(timeout=timeout, headers=headers)

    def verify(self, context: FieldContext) -> VerificationOutcome:
        response = self._client.post(self.endpoint, json=asdict(context))
        response.raise_for_status()
        payload = response.json()
        confidence = float(payload["confidence"])
        needs_review = payload.get("needs_review", payload.get("needsReview", False))
        return VerificationOutcome(
            confidence=min(100.0, max(0.0, confidence)),
            needs_review=bool(needs_review),
        )

    def close(self) -> None:
        self._client.close()


@dataclass(slots=True)
class ManualReviewItem:
    record_id: str
    field_name: str
    reason: str


@dataclass(slots=True)
class VerificationReport:
    records: list[ProgramRecord] = field(default_factory=list)
    confidence_scores: dict[str, ConfidenceScore] = field(default_factory=dict)
    manual_review: list[ManualReviewItem] = field(default_factory=list)


def _mean_confidence(values: Iterable[FieldValue | None]) -> float:
    present = [fv.confidence for fv in values if fv is not None]
    return fmean(present) if present else 0.0


class ConfidenceVerifier:
    """Re-check low-confidence, inferred or changed fields."""

    def __init__(
        self,
        verifier: FieldVerifier | None = None,
        threshold: float = 70.0,
        enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.verifier = verifier
        self.threshold = threshold
        self.enabled = enabled
        self.clock = clock
        self.logger = logger or structlog.get_logger("unidata_engine.verifier")

    @property
    def available(self) -> bool:
        return self.enabled and self.verifier is not None

    def verify(
        self,
        records: Sequence[ProgramRecord],
        diffs: Sequence[RecordDiff] | None = None,
    ) -> VerificationReport:
        report = VerificationReport()
        diff_map = {diff.record_id: diff for diff in diffs or ()}
        if not self.available:
            self.logger.warning("verification_unavailable", enabled=self.enabled)
        for record in records:
            if self.available:
                verified = self._verify_record(record, diff_map.get(record.id), report)
            else:
                verified = record
                for name in CHECKED_FIELDS:
                    fv = getattr(record, name)
                    if fv is not None and fv.confidence < self.threshold:
                        report.manual_review.append(
                            ManualReviewItem(
                                record.id,
                                name,
                                f"Confidence {fv.confidence:.1f}% below threshold",
                            )
                        )
            report.records.append(verified)
            score = self.score(verified)
            if score is None:
                continue
            report.confidence_scores[verified.id] = score
            if score.overall < self.threshold:
                report.manual_review.append(
                    ManualReviewItem(
                        verified.id, "overall", f"Low confidence score: {score.overall:.1f}%"
                    )
                )
        self.logger.info(
            "verification_complete",
            records=len(report.records),
            manual_review=len(report.manual_review),
        )
        return report

    def needs_check(self, name: str, fv: FieldValue, diff: RecordDiff | None) -> bool:
        return (
            fv.confidence < self.threshold
            or fv.source.method is ExtractionMethod.INFERRED
            or (diff is not None and name in diff.changed_fields())
        )

    def _verify_record(
        self, record: ProgramRecord, diff: RecordDiff | None, report: VerificationReport
    ) -> ProgramRecord:
        updated = record
        touched = False
        for name in CHECKED_FIELDS:
            fv: FieldValue | None = getattr(record, name)
            if fv is None or not self.needs_check(name, fv, diff):
                continue
            context = FieldContext(
                record_id=record.id,
                university=str(record.university_name.value),
                program=str(record.program_name.value),
                field_name=name,
                value=fv.value,
                confidence=fv.confidence,
                method=fv.source.method.value,
                context=f"Field: {name}, Value: {fv.value}"[:CONTEXT_LIMIT],
            )
            try:
                outcome = self.verifier.verify(context)
            except Exception as exc:  # noqa: BLE001
                self.logger.error(
                    "verification_failed", record_id=record.id, field=name, error=str(exc)
                )
                report.manual_review.append(
                    ManualReviewItem(record.id, name, f"Verification failed: {exc}")
                )
                continue
            confidence = min(100.0, max(0.0, float(outcome.confidence)))
            updated = updated.with_field(
                name, fv.with_source(confidence=confidence, method=ExtractionMethod.AI_VERIFIED)
            )
            touched = True
            if outcome.needs_review:
                report.manual_review.append(
                    ManualReviewItem(record.id, name, "Flagged by verifier")
                )
        if touched:
            updated = updated.model_copy(update={"last_verified_at": self.clock()})
        return updated

    def score(self, record: ProgramRecord) -> ConfidenceScore | None:
        fields = [getattr(record, name) for name in SCORED_FIELDS]
        present = [fv for fv in fields if fv is not None]
        if not present:
            return None
        deadlines = [d.date for intake in record.intakes for d in intake.deadlines]
        sources = {fv.source.source_url for fv in present}
        now = self.clock()
        return ConfidenceScore(
            record_id=record.id,
            overall=fmean(fv.confidence for fv in present),
            by_category={
                "financial": _mean_confidence([record.tuition_fee, record.application_fee]),
                "requirements": _mean_confidence(
                    [record.indian_academic_req, record.admission_requirements]
                ),
                "deadlines": _mean_confidence(deadlines),
                "scholarships": _mean_confidence([record.indian_scholarships]),
            },
            factors={
                "has_direct_source": any(
                    fv.source.method is ExtractionMethod.DIRECT for fv in present
                ),
                "has_multiple_sources": len(sources) > 1,
                "is_ai_verified": any(
                    fv.source.method is ExtractionMethod.AI_VERIFIED for fv in present
                ),
                "is_recent": all(now - fv.source.fetched_at <= RECENT_WINDOW for fv in present),
            },
        )


__all__ = [
    "CHECKED_FIELDS",
    "ConfidenceVerifier",
    "FieldContext",
    "FieldVerifier",
    "HttpFieldVerifier",
    "ManualReviewItem",
    "VerificationOutcome",
    "VerificationReport",
]
