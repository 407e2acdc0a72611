"""Field-by-field comparison of a record set against the accepted snapshot."""

from __future__ import annotations

from statistics import fmean
from typing import Sequence

import structlog

from ..models import (
    ChangeType,
    DiffResult,
    DiffSummary,
    FieldDiff,
    FieldValue,
    MONETARY_FIELDS,
    ProgramRecord,
    RecordDiff,
    SCORE_FIELDS,
)
from .validator import parse_amount

REVIEW_THRESHOLD = 70.0
SIGNIFICANT_MONETARY_CHANGE = 0.20


def is_date_field(name: str) -> bool:
    lowered = name.lower()
    return "deadline" in lowered or "date" in lowered


class DiffEngine:
    """Classify every field of every record as unchanged/changed/missing/new."""

    def __init__(
        self,
        threshold: float = REVIEW_THRESHOLD,
        significant_monetary_change: float = SIGNIFICANT_MONETARY_CHANGE,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.threshold = threshold
        self.significant_monetary_change = significant_monetary_change
        self.logger = logger or structlog.get_logger("unidata_engine.diff")

    def compute_diff(
        self,
        previous: Sequence[ProgramRecord],
        current: Sequence[ProgramRecord],
    ) -> list[RecordDiff]:
        previous_by_id = {record.id: record for record in previous}
        current_ids = set()
        diffs: list[RecordDiff] = []
        for record in current:
            current_ids.add(record.id)
            diffs.append(self.diff_record(previous_by_id.get(record.id), record))
        for record_id, record in previous_by_id.items():
            if record_id not in current_ids:
                diffs.append(
                    RecordDiff(
                        record_id=record_id,
                        is_deleted=True,
                        overall_confidence=100.0,
                        requires_review=True,
                    )
                )
        self.logger.info(
            "diff_computed",
            records=len(diffs),
            review=sum(1 for diff in diffs if diff.requires_review),
        )
        return diffs

    def diff_record(self, previous: ProgramRecord | None, current: ProgramRecord) -> RecordDiff:
        prev_fields = dict(previous.compared_fields()) if previous is not None else {}
        curr_fields = dict(current.compared_fields())
        names = list(curr_fields) + [name for name in prev_fields if name not in curr_fields]

        field_diffs = []
        for name in names:
            field_diff = self.compare_field(name, prev_fields.get(name), curr_fields.get(name))
            if field_diff is not None:
                field_diffs.append(field_diff)

        relevant = [d.confidence for d in field_diffs if d.change_type is not ChangeType.UNCHANGED]
        overall = fmean(relevant) if relevant else 100.0
        requires_review = any(d.requires_review for d in field_diffs) or overall < self.threshold
        return RecordDiff(
            record_id=current.id,
            is_new=previous is None,
            field_diffs=field_diffs,
            overall_confidence=overall,
            requires_review=requires_review,
        )

    def compare_field(
        self, name: str, previous: FieldValue | None, current: FieldValue | None
    ) -> FieldDiff | None:
        if previous is None and current is None:
            return None
        if previous is None:
            confidence = current.confidence
            return FieldDiff(
                field_name=name,
                change_type=ChangeType.NEWLY_ADDED,
                new_value=current.value,
                new_source=current.source,
                confidence=confidence,
                requires_review=confidence < self.threshold,
            )
        if current is None:
            return FieldDiff(
                field_name=name,
                change_type=ChangeType.MISSING,
                previous_value=previous.value,
                previous_source=previous.source,
                confidence=previous.confidence,
                requires_review=True,
            )
        if previous.value == current.value:
            return FieldDiff(
                field_name=name,
                change_type=ChangeType.UNCHANGED,
                previous_value=previous.value,
                previous_source=previous.source,
                new_value=current.value,
                new_source=current.source,
                confidence=max(previous.confidence, current.confidence),
                requires_review=False,
            )
        confidence = (previous.confidence + current.confidence) / 2
        return FieldDiff(
            field_name=name,
            change_type=ChangeType.CHANGED,
            previous_value=previous.value,
            previous_source=previous.source,
            new_value=current.value,
            new_source=current.source,
            confidence=confidence,
            requires_review=confidence < self.threshold
            or self.is_significant(name, previous.value, current.value),
        )

    def is_significant(self, name: str, previous_value, new_value) -> bool:
        """Changes that always need review regardless of confidence."""

        if name in MONETARY_FIELDS:
            old = parse_amount(previous_value)
            new = parse_amount(new_value)
            if not old or new is None:
                return False
            return abs(new - old) / old > self.significant_monetary_change
        if name in SCORE_FIELDS:
            return True
        return is_date_field(name)

    @staticmethod
    def summarize(
        job_id: str, subject_id: str, diffs: Sequence[RecordDiff]
    ) -> DiffResult:
        summary = DiffSummary()
        for diff in diffs:
            if diff.is_deleted:
                summary.deleted += 1
            elif diff.is_new:
                summary.new += 1
            elif diff.changed_fields():
                summary.changed += 1
            else:
                summary.unchanged += 1
            if diff.requires_review:
                summary.requires_review += 1
        summary.total = len(diffs) - summary.deleted
        return DiffResult(job_id=job_id, subject_id=subject_id, diffs=list(diffs), summary=summary)


__all__ = ["DiffEngine", "REVIEW_THRESHOLD", "SIGNIFICANT_MONETARY_CHANGE", "is_date_field"]
