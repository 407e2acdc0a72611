from __future__ import annotations

from unidata_engine.engine.publisher import (
    ACCEPTED_COLLECTION,
    AUDIT_COLLECTION,
    SUBJECTS_COLLECTION,
    VERSIONS_COLLECTION,
    PublishOptions,
    Publisher,
)
from unidata_engine.errors import StorageError
from unidata_engine.infra import MemoryDocumentStore


class CountingStore(MemoryDocumentStore):
    def __init__(self, max_batch_size: int = 500, fail_collections: set[str] | None = None) -> None:
        super().__init__(max_batch_size=max_batch_size)
        self.batches: list[int] = []
        self.fail_collections = fail_collections or set()

    def batch_commit(self, writes) -> None:
        self.batches.append(len(writes))
        super().batch_commit(writes)

    def set(self, collection, doc_id, doc, merge=False) -> None:
        if collection in self.fail_collections:
            raise StorageError(f"{collection} unavailable")
        super().set(collection, doc_id, doc, merge)


def test_publish_writes_versioned_documents(make_record, fixed_now) -> None:
    store = CountingStore()
    publisher = Publisher(store, clock=lambda: fixed_now)
    record = make_record(tuition_fee="$25,000")

    first = publisher.publish([record], PublishOptions(approved_by="alice"))
    second = publisher.publish([record], PublishOptions(approved_by="bob"))

    assert first.versions == {record.id: 1}
    assert second.versions == {record.id: 2}
    doc = store.get(ACCEPTED_COLLECTION, record.id)
    assert doc["version"] == 2
    assert doc["published_by"] == "bob"
    assert doc["published_at"] == fixed_now.isoformat()
    assert doc["record"]["tuition_fee"]["value"] == "$25,000"
    assert store.get(VERSIONS_COLLECTION, f"{record.id}@v1")["version"] == 1
    assert store.get(VERSIONS_COLLECTION, f"{record.id}@v2")["version"] == 2
    audit = store.list(AUDIT_COLLECTION)
    assert len(audit) == 2
    assert {entry["actor_id"] for entry in audit} == {"alice", "bob"}
    assert all(entry["action"] == "data_published" for entry in audit)
    index = store.get(SUBJECTS_COLLECTION, record.subject_id)
    assert index["record_ids"] == [record.id]
    assert index["version"] == 2


def test_publish_chunks_to_store_batch_limit(make_record) -> None:
    store = CountingStore(max_batch_size=2)
    records = [make_record(record_id=f"r{i}", program=f"Program {i}") for i in range(5)]

    report = Publisher(store).publish(records)

    assert store.batches == [2, 2, 1]
    assert report.batches == 3
    assert len(report.published) == 5


def test_history_and_audit_are_best_effort(make_record) -> None:
    store = CountingStore(fail_collections={VERSIONS_COLLECTION, AUDIT_COLLECTION})
    record = make_record()

    report = Publisher(store).publish([record])

    assert store.get(ACCEPTED_COLLECTION, record.id)["version"] == 1
    assert report.history_failures == 1
    assert report.audit_failures == 1


def test_options_can_skip_history_and_audit(make_record) -> None:
    store = CountingStore()

    Publisher(store).publish(
        [make_record()], PublishOptions(create_version_history=False, update_audit_log=False)
    )

    assert store.list(VERSIONS_COLLECTION) == []
    assert store.list(AUDIT_COLLECTION) == []


def test_snapshot_round_trip_and_retirement(make_record) -> None:
    store = CountingStore()
    publisher = Publisher(store)
    kept = make_record(tuition_fee="$25,000")
    dropped = make_record(record_id="gone", program="Master of History")

    assert publisher.load_snapshot(kept.subject_id) == []
    publisher.publish([kept, dropped])
    snapshot = publisher.load_snapshot(kept.subject_id)
    assert {record.id for record in snapshot} == {kept.id, "gone"}
    assert [r for r in snapshot if r.id == kept.id][0] == kept

    publisher.publish([kept], PublishOptions(retire_ids=["gone"]))

    assert [record.id for record in publisher.load_snapshot(kept.subject_id)] == [kept.id]
    assert store.get(ACCEPTED_COLLECTION, "gone")["retired_at"] is not None
