"""Publisher: the only writer of the accepted-record store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Sequence

import structlog

from ..infra.storage import DocumentStore, WriteOp
from ..models import ProgramRecord, utcnow

ACCEPTED_COLLECTION = "university_programs"
VERSIONS_COLLECTION = "program_versions"
AUDIT_COLLECTION = "audit_logs"
SUBJECTS_COLLECTION = "subjects"


@dataclass(slots=True)
class PublishOptions:
    create_version_history: bool = True
    update_audit_log: bool = True
    approved_by: str = "system"
    retire_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PublishReport:
    published: list[str] = field(default_factory=list)
    versions: dict[str, int] = field(default_factory=dict)
    retired: list[str] = field(default_factory=list)
    batches: int = 0
    history_failures: int = 0
    audit_failures: int = 0


def _audit_id() -> str:
    return f"audit_{int(utcnow().timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


class Publisher:
    """Write records with version and audit metadata, in store-sized batches."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.logger = logger or structlog.get_logger("unidata_engine.publisher")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def load_snapshot(self, subject_id: str) -> list[ProgramRecord]:
        """Currently accepted records for a subject (empty when never published)."""

        index = self.store.get(SUBJECTS_COLLECTION, subject_id) or {}
        records = []
        for record_id in index.get("record_ids", []):
            doc = self.store.get(ACCEPTED_COLLECTION, record_id)
            if not doc or doc.get("retired_at") or "record" not in doc:
                continue
            records.append(ProgramRecord.model_validate(doc["record"]))
        return records

    def current_version(self, record_id: str) -> int:
        doc = self.store.get(ACCEPTED_COLLECTION, record_id) or {}
        return int(doc.get("version", 0))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def publish(self, records: Sequence[ProgramRecord], options: PublishOptions | None = None) -> PublishReport:
        options = options or PublishOptions()
        report = PublishReport()
        now = self.clock()

        writes: list[WriteOp] = []
        for record in records:
            version = self.current_version(record.id) + 1
            report.versions[record.id] = version
            writes.append(
                WriteOp(
                    ACCEPTED_COLLECTION,
                    record.id,
                    self.to_document(record, version, now, options.approved_by),
                    merge=True,
                )
            )
        for record_id in options.retire_ids:
            writes.append(
                WriteOp(
                    ACCEPTED_COLLECTION,
                    record_id,
                    {"retired_at": now.isoformat(), "retired_by": options.approved_by},
                    merge=True,
                )
            )

        batch_size = max(1, self.store.max_batch_size)
        for start in range(0, len(writes), batch_size):
            chunk = writes[start : start + batch_size]
            self.store.batch_commit(chunk)
            report.batches += 1
            self.logger.info(
                "published_batch",
                batch_start=start,
                batch_size=len(chunk),
                total_writes=len(writes),
            )
        report.published = [record.id for record in records]
        report.retired = list(options.retire_ids)

        self._update_subject_indexes(records, options.retire_ids, now)

        for record in records:
            version = report.versions[record.id]
            if options.create_version_history and not self._write_version(record, version, now):
                report.history_failures += 1
            if options.update_audit_log and not self._write_audit(record, version, now, options.approved_by):
                report.audit_failures += 1

        self.logger.info(
            "publish_complete",
            published=len(report.published),
            retired=len(report.retired),
            batches=report.batches,
            approved_by=options.approved_by,
        )
        return report

    @staticmethod
    def to_document(
        record: ProgramRecord, version: int, published_at: datetime, published_by: str
    ) -> dict[str, Any]:
        return {
            "id": record.id,
            "subject_id": record.subject_id,
            "program_name": record.program_name.value,
            "university_name": record.university_name.value,
            "record": record.model_dump(mode="json"),
            "version": version,
            "published_at": published_at.isoformat(),
            "published_by": published_by,
            "retired_at": None,
        }

    def _update_subject_indexes(
        self, records: Sequence[ProgramRecord], retire_ids: Sequence[str], now: datetime
    ) -> None:
        by_subject: dict[str, list[str]] = {}
        for record in records:
            by_subject.setdefault(record.subject_id, []).append(record.id)
        retired = set(retire_ids)
        for subject_id, record_ids in by_subject.items():
            index = self.store.get(SUBJECTS_COLLECTION, subject_id) or {}
            known = [rid for rid in index.get("record_ids", []) if rid not in retired]
            for record_id in record_ids:
                if record_id not in known:
                    known.append(record_id)
            self.store.set(
                SUBJECTS_COLLECTION,
                subject_id,
                {
                    "subject_id": subject_id,
                    "record_ids": known,
                    "version": int(index.get("version", 0)) + 1,
                    "last_published_at": now.isoformat(),
                },
                merge=True,
            )

    def _write_version(self, record: ProgramRecord, version: int, now: datetime) -> bool:
        try:
            self.store.set(
                VERSIONS_COLLECTION,
                f"{record.id}@v{version}",
                {
                    "record_id": record.id,
                    "version": version,
                    "data": record.model_dump(mode="json"),
                    "created_at": now.isoformat(),
                },
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "version_history_failed", record_id=record.id, version=version, error=str(exc)
            )
            return False
        return True

    def _write_audit(self, record: ProgramRecord, version: int, now: datetime, approved_by: str) -> bool:
        entry_id = _audit_id()
        try:
            self.store.set(
                AUDIT_COLLECTION,
                entry_id,
                {
                    "id": entry_id,
                    "action": "data_published",
                    "entity_type": "program",
                    "entity_id": record.id,
                    "actor": "system" if approved_by == "system" else "user",
                    "actor_id": approved_by,
                    "details": {
                        "program_name": record.program_name.value,
                        "university_name": record.university_name.value,
                        "version": version,
                    },
                    "timestamp": now.isoformat(),
                    "severity": "info",
                },
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.error("audit_log_failed", record_id=record.id, error=str(exc))
            return False
        return True


__all__ = [
    "ACCEPTED_COLLECTION",
    "AUDIT_COLLECTION",
    "PublishOptions",
    "PublishReport",
    "Publisher",
    "SUBJECTS_COLLECTION",
    "VERSIONS_COLLECTION",
]
