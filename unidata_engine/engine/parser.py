"""Extract program records from fetched documents without guessing."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

import structlog
from selectolax.parser import HTMLParser

from ..config.loader import slugify
from ..models import (
    Deadline,
    DeadlineType,
    ExtractionMethod,
    FieldValue,
    Intake,
    IntakeTerm,
    ProgramLevel,
    ProgramRecord,
    SourceMeta,
    utcnow,
)
from .fetcher import FetchResult

DIRECT_CONFIDENCE = 90.0
INFERRED_CONFIDENCE = 60.0
LEVEL_SCAN_CHARS = 5000
PARSEABLE_CONTENT_TYPES = ("text/html", "text/plain", "application/xhtml+xml")

_FLAGS = re.IGNORECASE

PROGRAM_NAME_PATTERNS = [re.compile(r"program(?:me)?[:\s]+([^<\n]+)", _FLAGS)]

# Labelled values, tagged ``direct``.
DIRECT_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "application_fee": [re.compile(r"application\s+fee[:\s\$]+([\d,]+)", _FLAGS)],
    "tuition_fee": [
        re.compile(r"tuition(?:\s+fees?)?[:\s\$]+([\d,]+)", _FLAGS),
        re.compile(r"(?<!application )fee[:\s\$]+([\d,]+)", _FLAGS),
    ],
    "ielts_score": [re.compile(r"ielts(?:\s+score)?[:\s]+([\d.]+)", _FLAGS)],
    "toefl_score": [re.compile(r"toefl(?:\s+score)?[:\s]+(\d+)", _FLAGS)],
}

# Values found by proximity to a keyword, tagged ``inferred``.
INFERRED_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "indian_academic_req": [
        re.compile(r"india[^<]*?(\d+%)", _FLAGS),
        re.compile(r"cbse[^<]*?(\d+%)", _FLAGS),
        re.compile(r"icse[^<]*?(\d+%)", _FLAGS),
    ],
    "backlog_policy": [
        re.compile(r"backlog[^<]{0,200}", _FLAGS),
        re.compile(r"re.?attempt[^<]{0,200}", _FLAGS),
    ],
    "indian_scholarships": [
        re.compile(r"india[^<]*?scholarship[^<]{0,300}", _FLAGS),
        re.compile(r"commonwealth[^<]{0,300}", _FLAGS),
    ],
}

LEVEL_PATTERNS: list[tuple[ProgramLevel, re.Pattern[str]]] = [
    (ProgramLevel.PHD, re.compile(r"\b(?:ph\.?d|doctorate|doctoral)\b", _FLAGS)),
    (
        ProgramLevel.POSTGRADUATE,
        re.compile(r"\b(?:postgraduate|master'?s?|m\.sc|m\.b\.a|mba|m\.a)\b", _FLAGS),
    ),
    (
        ProgramLevel.UNDERGRADUATE,
        re.compile(r"\b(?:undergraduate|bachelor'?s?|b\.sc|b\.a)\b", _FLAGS),
    ),
]

DEADLINE_PATTERN = re.compile(
    r"\b(fall|spring|summer|winter)\s+(\d{4})\s+"
    r"(?:(application|document|deposit|registration)\s+)?deadline[:\s]+"
    r"(\d{4}-\d{2}-\d{2}|[A-Z][a-z]+\s+\d{1,2},?\s+\d{4}|\d{1,2}\s+[A-Z][a-z]+\s+\d{4})",
    _FLAGS,
)


@dataclass(slots=True)
class ParseIssue:
    location: str
    message: str


@dataclass(slots=True)
class ParseResult:
    records: list[ProgramRecord] = field(default_factory=list)
    locations_parsed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[ParseIssue] = field(default_factory=list)


def first_match(text: str, patterns: Iterable[re.Pattern[str]]) -> str | None:
    """Return the first pattern hit, preferring its first group; ``None`` if nothing matches."""

    for pattern in patterns:
        match = pattern.search(text)
        if not match:
            continue
        value = match.group(1) if match.groups() else match.group(0)
        value = value.strip() if value else ""
        if value:
            return value
    return None


def classify_level(text: str, heading: str | None = None) -> ProgramLevel:
    """Classify from the program name first, then the start of the page."""

    for window in (heading or "", text[:LEVEL_SCAN_CHARS]):
        for level, pattern in LEVEL_PATTERNS:
            if pattern.search(window):
                return level
    return ProgramLevel.UNDERGRADUATE


def record_id(university: str, program: str) -> str:
    return f"{slugify(university)}-{slugify(program)}"


def _coerce_score(raw: str, cast) -> Any:
    try:
        return cast(raw)
    except ValueError:
        return raw


class Parser:
    """Turn fetched documents into program records for one subject."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("unidata_engine.parser")

    def parse(
        self,
        documents: Sequence[FetchResult],
        subject: str,
        country: str = "Other",
        subject_id: str | None = None,
    ) -> ParseResult:
        result = ParseResult()
        seen: set[str] = set()
        subject_id = subject_id or slugify(subject)
        for document in documents:
            if not self._is_parseable(document.content_type):
                result.skipped.append(document.location)
                self.logger.debug(
                    "parse_skipped", url=document.location, content_type=document.content_type
                )
                continue
            try:
                record = self.parse_document(document, subject, country, subject_id)
            except Exception as exc:  # noqa: BLE001
                result.errors.append(ParseIssue(document.location, str(exc)))
                self.logger.warning("parse_error", url=document.location, error=str(exc))
                continue
            result.locations_parsed.append(document.location)
            if record is None:
                continue
            if record.id in seen:
                self.logger.info("parse_duplicate", url=document.location, record_id=record.id)
                continue
            seen.add(record.id)
            result.records.append(record)
        return result

    def parse_document(
        self, document: FetchResult, subject: str, country: str, subject_id: str
    ) -> ProgramRecord | None:
        text, program_name = self._extract_text(document)
        if not program_name:
            program_name = first_match(text, PROGRAM_NAME_PATTERNS)
        if not program_name:
            self.logger.debug("parse_no_program_name", url=document.location)
            return None

        fetched_at = document.fetched_at
        fields: dict[str, FieldValue] = {}
        for name, patterns in DIRECT_PATTERNS.items():
            value = first_match(text, patterns)
            if value is not None:
                fields[name] = self._field(value, document.location, fetched_at, ExtractionMethod.DIRECT)
        for name, patterns in INFERRED_PATTERNS.items():
            value = first_match(text, patterns)
            if value is not None:
                fields[name] = self._field(
                    value, document.location, fetched_at, ExtractionMethod.INFERRED
                )
        for name, cast in (("ielts_score", float), ("toefl_score", int)):
            if name in fields:
                fields[name] = fields[name].model_copy(
                    update={"value": _coerce_score(fields[name].value, cast)}
                )

        now = utcnow()
        record = ProgramRecord(
            id=record_id(subject, program_name),
            subject_id=subject_id,
            university_name=self._field(subject, document.location, fetched_at, ExtractionMethod.DIRECT),
            program_name=self._field(program_name, document.location, fetched_at, ExtractionMethod.DIRECT),
            level=classify_level(text, program_name),
            country=country,
            intakes=tuple(self._extract_intakes(text, document.location, fetched_at)),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.logger.debug(
            "parse_record",
            url=document.location,
            record_id=record.id,
            fields_found=len(fields),
        )
        return record

    # ------------------------------------------------------------------
    @staticmethod
    def _is_parseable(content_type: str) -> bool:
        media_type = (content_type or "").split(";", 1)[0].strip().lower()
        return media_type in PARSEABLE_CONTENT_TYPES

    @staticmethod
    def _extract_text(document: FetchResult) -> tuple[str, str | None]:
        if document.content_type.lower().startswith("text/plain"):
            return document.body, None
        tree = HTMLParser(document.body)
        tree.strip_tags(["script", "style", "noscript"])
        heading = None
        for selector in ("h1", "title"):
            node = tree.css_first(selector)
            if node is None:
                continue
            candidate = node.text(separator=" ", strip=True)
            if candidate:
                heading = candidate
                break
        root = tree.body or tree.root
        text = root.text(separator=" ", strip=True) if root is not None else ""
        return text, heading

    @staticmethod
    def _field(value: Any, location: str, fetched_at: datetime, method: ExtractionMethod) -> FieldValue:
        confidence = DIRECT_CONFIDENCE if method is ExtractionMethod.DIRECT else INFERRED_CONFIDENCE
        return FieldValue(
            value=value,
            source=SourceMeta(
                source_url=location,
                fetched_at=fetched_at,
                confidence=confidence,
                method=method,
            ),
        )

    def _extract_intakes(self, text: str, location: str, fetched_at: datetime) -> list[Intake]:
        grouped: dict[tuple[IntakeTerm, int], list[Deadline]] = {}
        for match in DEADLINE_PATTERN.finditer(text):
            term = IntakeTerm(match.group(1).capitalize())
            year = int(match.group(2))
            deadline_type = DeadlineType((match.group(3) or "application").lower())
            deadline = Deadline(
                date=self._field(match.group(4).strip(), location, fetched_at, ExtractionMethod.DIRECT),
                type=deadline_type,
            )
            grouped.setdefault((term, year), []).append(deadline)
        return [
            Intake(term=term, year=year, deadlines=tuple(deadlines))
            for (term, year), deadlines in grouped.items()
        ]


__all__ = [
    "DIRECT_CONFIDENCE",
    "INFERRED_CONFIDENCE",
    "ParseIssue",
    "ParseResult",
    "Parser",
    "classify_level",
    "first_match",
    "record_id",
]
