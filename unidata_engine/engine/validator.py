"""Format, range and consistency checks for extracted records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Literal, Sequence

import structlog

from ..models import FieldValue, ProgramRecord, utcnow

Severity = Literal["error", "warning"]

MAX_CURRENCY_LENGTH = 100
IELTS_RANGE = (0.0, 9.0)
TOEFL_RANGE = (0.0, 120.0)
INTAKE_YEARS_BEHIND = 1
INTAKE_YEARS_AHEAD = 5
TOEFL_BAND_TOLERANCE = 20
APPLICATION_FEE_RATIO = 0.10

_AMOUNT_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")
_PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
DATE_FORMATS = (
    "%Y-%m-%d",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)


def parse_amount(value: Any) -> float | None:
    """First number in a currency-like value, ``None`` when there is none."""

    if isinstance(value, (int, float)):
        return float(value)
    match = _AMOUNT_PATTERN.search(str(value))
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def parse_date(value: Any) -> date | None:
    text = " ".join(str(value).split())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


@dataclass(slots=True)
class ValidationIssue:
    field: str
    message: str
    severity: Severity = "error"

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(slots=True)
class InvalidRecord:
    record: ProgramRecord
    errors: list[str]


@dataclass(slots=True)
class ValidationResult:
    valid: list[ProgramRecord] = field(default_factory=list)
    invalid: list[InvalidRecord] = field(default_factory=list)
    warnings: dict[str, list[str]] = field(default_factory=dict)


class Validator:
    """Partition records into valid and invalid sets."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.clock = clock
        self.logger = logger or structlog.get_logger("unidata_engine.validator")

    def validate(self, records: Sequence[ProgramRecord]) -> ValidationResult:
        result = ValidationResult()
        for record in records:
            issues = self.check(record)
            errors = [str(issue) for issue in issues if issue.severity == "error"]
            warnings = [str(issue) for issue in issues if issue.severity == "warning"]
            if warnings:
                result.warnings[record.id] = warnings
                self.logger.info("validation_warnings", record_id=record.id, warnings=warnings)
            if errors:
                result.invalid.append(InvalidRecord(record=record, errors=errors))
                self.logger.warning("validation_failed", record_id=record.id, errors=errors)
            else:
                result.valid.append(record)
        return result

    def check(self, record: ProgramRecord) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues.extend(self._check_required(record))
        for name in ("tuition_fee", "application_fee"):
            issues.extend(self._check_currency(name, getattr(record, name)))
        issues.extend(self._check_range("ielts_score", record.ielts_score, IELTS_RANGE))
        issues.extend(self._check_range("toefl_score", record.toefl_score, TOEFL_RANGE))
        issues.extend(self._check_percentage("indian_academic_req", record.indian_academic_req))
        issues.extend(self._check_intakes(record))
        issues.extend(self._check_consistency(record))
        return issues

    # ------------------------------------------------------------------
    @staticmethod
    def _check_required(record: ProgramRecord) -> list[ValidationIssue]:
        issues = []
        if not record.id.strip():
            issues.append(ValidationIssue("id", "Required field missing"))
        for name in ("university_name", "program_name"):
            fv: FieldValue | None = getattr(record, name)
            if fv is None or not str(fv.value or "").strip():
                issues.append(ValidationIssue(name, "Required field missing"))
        return issues

    @staticmethod
    def _check_currency(name: str, fv: FieldValue | None) -> list[ValidationIssue]:
        if fv is None:
            return []
        text = str(fv.value)
        if not re.search(r"\d", text):
            return [ValidationIssue(name, f"Invalid currency format: {text}")]
        if len(text) >= MAX_CURRENCY_LENGTH:
            return [ValidationIssue(name, "Currency value too long")]
        return []

    @staticmethod
    def _check_range(
        name: str, fv: FieldValue | None, bounds: tuple[float, float]
    ) -> list[ValidationIssue]:
        if fv is None:
            return []
        number = _number(fv.value)
        low, high = bounds
        if number is None:
            return [ValidationIssue(name, f"Not a number: {fv.value}")]
        if not low <= number <= high:
            return [ValidationIssue(name, f"{fv.value} outside {low:g}-{high:g}")]
        return []

    @staticmethod
    def _check_percentage(name: str, fv: FieldValue | None) -> list[ValidationIssue]:
        if fv is None:
            return []
        match = _PERCENT_PATTERN.search(str(fv.value))
        if match and not 0 <= float(match.group(1)) <= 100:
            return [ValidationIssue(name, f"Percentage out of range: {match.group(0)}")]
        return []

    def _check_intakes(self, record: ProgramRecord) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        today = self.clock().date()
        for intake in record.intakes:
            if not today.year - INTAKE_YEARS_BEHIND <= intake.year <= today.year + INTAKE_YEARS_AHEAD:
                issues.append(
                    ValidationIssue(
                        "intake.year",
                        f"Year {intake.year} outside {today.year - INTAKE_YEARS_BEHIND}"
                        f"-{today.year + INTAKE_YEARS_AHEAD}",
                        "warning",
                    )
                )
            for deadline in intake.deadlines:
                parsed = parse_date(deadline.date.value)
                if parsed is None:
                    issues.append(
                        ValidationIssue("deadline.date", f"Invalid date: {deadline.date.value}")
                    )
                elif parsed < today:
                    issues.append(
                        ValidationIssue(
                            "deadline.date", f"Deadline {deadline.date.value} is in the past", "warning"
                        )
                    )
        return issues

    @staticmethod
    def _check_consistency(record: ProgramRecord) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        ielts = _number(record.ielts_score.value) if record.ielts_score else None
        toefl = _number(record.toefl_score.value) if record.toefl_score else None
        if ielts is not None and toefl is not None:
            expected_min = (ielts - 5) * 30 + 35
            expected_max = (ielts - 4) * 30 + 45
            if (
                toefl < expected_min - TOEFL_BAND_TOLERANCE
                or toefl > expected_max + TOEFL_BAND_TOLERANCE
            ):
                issues.append(
                    ValidationIssue(
                        "toefl_score",
                        f"TOEFL {toefl:g} inconsistent with IELTS {ielts:g}",
                        "warning",
                    )
                )
        tuition = parse_amount(record.tuition_fee.value) if record.tuition_fee else None
        app_fee = parse_amount(record.application_fee.value) if record.application_fee else None
        if tuition and app_fee is not None and app_fee > tuition * APPLICATION_FEE_RATIO:
            issues.append(
                ValidationIssue(
                    "application_fee",
                    "Application fee is unusually high relative to tuition",
                    "warning",
                )
            )
        return issues


__all__ = [
    "InvalidRecord",
    "ValidationIssue",
    "ValidationResult",
    "Validator",
    "parse_amount",
    "parse_date",
]
