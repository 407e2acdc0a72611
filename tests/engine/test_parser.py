from __future__ import annotations

from unidata_engine.engine.fetcher import FetchResult
from unidata_engine.engine.parser import (
    DIRECT_CONFIDENCE,
    INFERRED_CONFIDENCE,
    Parser,
    classify_level,
    record_id,
)
from unidata_engine.models import DeadlineType, ExtractionMethod, IntakeTerm, ProgramLevel


def _doc(body: str, location: str = "https://uni.example.edu/cs", content_type: str = "text/html") -> FetchResult:
    return FetchResult(
        location=location, status_code=200, headers={}, body=body, content_type=content_type
    )


def test_parse_extracts_labelled_fields(program_page) -> None:
    result = Parser().parse([_doc(program_page())], "Example University", "Canada")

    assert result.errors == []
    assert len(result.records) == 1
    record = result.records[0]
    assert record.id == record_id("Example University", "Master of Computer Science")
    assert record.subject_id == "example-university"
    assert record.country == "Canada"
    assert record.level is ProgramLevel.POSTGRADUATE
    assert record.program_name.value == "Master of Computer Science"
    assert record.tuition_fee.value == "25,000"
    assert record.application_fee.value == "100"
    assert record.ielts_score.value == 6.5
    assert record.toefl_score.value == 90
    assert record.tuition_fee.source.method is ExtractionMethod.DIRECT
    assert record.tuition_fee.confidence == DIRECT_CONFIDENCE
    assert record.tuition_fee.source.source_url == "https://uni.example.edu/cs"


def test_missing_labels_leave_fields_absent(program_page) -> None:
    page = program_page(tuition=None, application_fee=None, ielts=None, toefl=None)

    record = Parser().parse([_doc(page)], "Example University").records[0]

    assert record.tuition_fee is None
    assert record.application_fee is None
    assert record.ielts_score is None
    assert record.toefl_score is None
    assert record.backlog_policy is None


def test_inferred_fields_use_lower_confidence(program_page) -> None:
    page = program_page(
        extra=[
            "Applicants from India need 75% in Class XII",
            "Up to 5 backlogs are accepted",
        ]
    )

    record = Parser().parse([_doc(page)], "Example University").records[0]

    assert record.indian_academic_req.value == "75%"
    assert record.indian_academic_req.source.method is ExtractionMethod.INFERRED
    assert record.indian_academic_req.confidence == INFERRED_CONFIDENCE
    assert record.backlog_policy.value.startswith("backlogs are accepted")


def test_documents_without_program_name_contribute_nothing() -> None:
    result = Parser().parse([_doc("<html><body><p>Welcome to campus</p></body></html>")], "Example University")

    assert result.records == []
    assert result.locations_parsed == ["https://uni.example.edu/cs"]
    assert result.errors == []


def test_non_text_documents_are_skipped(program_page) -> None:
    result = Parser().parse(
        [_doc(program_page(), content_type="application/pdf")], "Example University"
    )

    assert result.records == []
    assert result.skipped == ["https://uni.example.edu/cs"]


def test_duplicate_records_keep_first(program_page) -> None:
    documents = [
        _doc(program_page(tuition="$25,000"), location="https://uni.example.edu/a"),
        _doc(program_page(tuition="$30,000"), location="https://uni.example.edu/b"),
    ]

    result = Parser().parse(documents, "Example University")

    assert len(result.records) == 1
    assert result.records[0].tuition_fee.value == "25,000"


def test_plain_text_uses_program_label() -> None:
    text = "Programme: Bachelor of Arts in History\nTuition: 18,500 CAD"

    record = Parser().parse([_doc(text, content_type="text/plain")], "Example University").records[0]

    assert record.program_name.value == "Bachelor of Arts in History"
    assert record.level is ProgramLevel.UNDERGRADUATE
    assert record.tuition_fee.value == "18,500"


def test_intake_deadlines_are_grouped(program_page) -> None:
    page = program_page(
        extra=[
            "Fall 2026 application deadline: 2026-01-15",
            "Fall 2026 deposit deadline: March 1, 2026",
            "Spring 2027 deadline: 2026-09-30",
        ]
    )

    record = Parser().parse([_doc(page)], "Example University").records[0]

    intakes = {intake.key: intake for intake in record.intakes}
    assert set(intakes) == {"fall-2026", "spring-2027"}
    fall = intakes["fall-2026"]
    assert fall.term is IntakeTerm.FALL
    assert [d.type for d in fall.deadlines] == [DeadlineType.APPLICATION, DeadlineType.DEPOSIT]
    assert fall.deadlines[1].date.value == "March 1, 2026"
    assert intakes["spring-2027"].deadlines[0].type is DeadlineType.APPLICATION


def test_classify_level_prefers_heading_and_defaults() -> None:
    assert classify_level("", "PhD in Chemistry") is ProgramLevel.PHD
    assert classify_level("Our M.B.A. cohort", None) is ProgramLevel.POSTGRADUATE
    assert classify_level("Undergraduate and postgraduate options", "Master of Data Science") is ProgramLevel.POSTGRADUATE
    assert classify_level("Nothing relevant here") is ProgramLevel.UNDERGRADUATE


def test_parse_errors_are_recorded_per_document(monkeypatch, program_page) -> None:
    parser = Parser()
    original = parser.parse_document

    def flaky(document, *args):
        if document.location.endswith("/bad"):
            raise RuntimeError("broken markup")
        return original(document, *args)

    monkeypatch.setattr(parser, "parse_document", flaky)

    result = parser.parse(
        [
            _doc(program_page(), location="https://uni.example.edu/bad"),
            _doc(program_page(title="Master of Data Science"), location="https://uni.example.edu/good"),
        ],
        "Example University",
    )

    assert len(result.records) == 1
    assert result.errors[0].location == "https://uni.example.edu/bad"
    assert "broken markup" in result.errors[0].message
