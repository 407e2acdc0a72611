from __future__ import annotations

from unidata_engine.engine.diff import DiffEngine
from unidata_engine.models import ChangeType, ExtractionMethod


def _by_field(diff):
    return {fd.field_name: fd for fd in diff.field_diffs}


def test_identical_snapshots_have_no_changes(make_record, make_intake) -> None:
    records = [
        make_record(tuition_fee="$25,000", ielts_score=6.5, intakes=(make_intake(),)),
        make_record(record_id="other", program="Master of Data Science", toefl_score=90),
    ]

    diffs = DiffEngine().compute_diff(records, records)

    assert len(diffs) == 2
    for diff in diffs:
        assert diff.is_new is False
        assert diff.requires_review is False
        assert diff.overall_confidence == 100.0
        assert diff.changed_fields() == set()
        assert all(fd.change_type is ChangeType.UNCHANGED for fd in diff.field_diffs)


def test_empty_snapshot_marks_everything_new(make_record) -> None:
    diffs = DiffEngine().compute_diff([], [make_record(tuition_fee="$25,000")])

    diff = diffs[0]
    assert diff.is_new is True
    fields = _by_field(diff)
    assert fields["tuition_fee"].change_type is ChangeType.NEWLY_ADDED
    assert fields["tuition_fee"].new_value == "$25,000"
    assert diff.requires_review is False


def test_large_monetary_change_requires_review(make_record) -> None:
    previous = make_record(tuition_fee="$10,000")
    current = make_record(tuition_fee="$13,000")

    diff = DiffEngine().compute_diff([previous], [current])[0]

    fee = _by_field(diff)["tuition_fee"]
    assert fee.change_type is ChangeType.CHANGED
    assert fee.previous_value == "$10,000"
    assert fee.new_value == "$13,000"
    assert fee.confidence == 90.0
    assert fee.requires_review is True
    assert diff.requires_review is True
    assert diff.overall_confidence == 90.0


def test_small_monetary_change_passes(make_record) -> None:
    diff = DiffEngine().compute_diff(
        [make_record(tuition_fee="$10,000")], [make_record(tuition_fee="$10,500")]
    )[0]

    assert _by_field(diff)["tuition_fee"].requires_review is False
    assert diff.requires_review is False


def test_score_and_deadline_changes_always_need_review(make_record, make_intake) -> None:
    previous = make_record(ielts_score=6.5, intakes=(make_intake(deadline="2026-01-15"),))
    current = make_record(ielts_score=7.0, intakes=(make_intake(deadline="2026-02-01"),))

    diff = DiffEngine().compute_diff([previous], [current])[0]

    fields = _by_field(diff)
    assert fields["ielts_score"].requires_review is True
    assert fields["deadline.fall-2026.application"].change_type is ChangeType.CHANGED
    assert fields["deadline.fall-2026.application"].requires_review is True


def test_missing_field_and_low_confidence(make_record, make_field) -> None:
    previous = make_record(tuition_fee="$10,000", backlog_policy="Up to 5 backlogs")
    current = make_record(
        tuition_fee=None,
        backlog_policy=make_field("Up to 3 backlogs", confidence=60, method=ExtractionMethod.INFERRED),
    )

    diff = DiffEngine().compute_diff([previous], [current])[0]

    fields = _by_field(diff)
    assert fields["tuition_fee"].change_type is ChangeType.MISSING
    assert fields["tuition_fee"].requires_review is True
    backlog = fields["backlog_policy"]
    assert backlog.confidence == 75.0
    assert backlog.requires_review is False
    assert diff.overall_confidence == (90.0 + 75.0) / 2


def test_deleted_records_get_synthetic_diff(make_record) -> None:
    kept = make_record()
    dropped = make_record(record_id="gone", program="Master of History")

    diffs = DiffEngine().compute_diff([kept, dropped], [kept])

    deleted = [diff for diff in diffs if diff.is_deleted]
    assert len(deleted) == 1
    assert deleted[0].record_id == "gone"
    assert deleted[0].requires_review is True
    assert deleted[0].field_diffs == []


def test_summarize_counts(make_record) -> None:
    engine = DiffEngine()
    previous = [make_record(tuition_fee="$10,000"), make_record(record_id="gone")]
    current = [
        make_record(tuition_fee="$20,000"),
        make_record(record_id="fresh", program="Master of Arts"),
    ]

    result = engine.summarize("job_1", "example-university", engine.compute_diff(previous, current))

    assert result.job_id == "job_1"
    assert result.summary.total == 2
    assert result.summary.changed == 1
    assert result.summary.new == 1
    assert result.summary.deleted == 1
    assert result.summary.unchanged == 0
    assert result.summary.requires_review == 2
