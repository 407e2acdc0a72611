"""Keyed document store backends (in-memory and SQLite)."""

from __future__ import annotations

import copy
import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Protocol, Sequence, runtime_checkable

from ..errors import StorageError

DEFAULT_BATCH_SIZE = 500


@dataclass(slots=True)
class WriteOp:
    """A single write inside a batch commit."""

    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = True


@runtime_checkable
class DocumentStore(Protocol):
    max_batch_size: int

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    def set(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool = False) -> None: ...

    def batch_commit(self, writes: Sequence[WriteOp]) -> None: ...

    def list(self, collection: str) -> list[dict[str, Any]]: ...


def _check_batch(writes: Sequence[WriteOp], limit: int) -> None:
    if len(writes) > limit:
        raise StorageError(f"Batch of {len(writes)} writes exceeds limit {limit}")


class MemoryDocumentStore:
    """Process-local store; documents are copied on every read and write."""

    def __init__(self, max_batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.max_batch_size = max_batch_size
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = Lock()

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            self._write(collection, doc_id, doc, merge)

    def batch_commit(self, writes: Sequence[WriteOp]) -> None:
        _check_batch(writes, self.max_batch_size)
        with self._lock:
            for op in writes:
                self._write(op.collection, op.doc_id, op.data, op.merge)

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]

    def _write(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool) -> None:
        bucket = self._collections.setdefault(collection, {})
        payload = copy.deepcopy(doc)
        if merge and doc_id in bucket:
            bucket[doc_id].update(payload)
        else:
            bucket[doc_id] = payload


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            )
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class SQLiteDocumentStore:
    """Documents serialised as JSON rows keyed by ``(collection, doc_id)``."""

    def __init__(
        self,
        path: Path,
        manager: SQLiteManager | None = None,
        max_batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()
        self.max_batch_size = max_batch_size
        self._conn = self.manager.connect(path)
        self._lock = Lock()

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._read(collection, doc_id)

    def set(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool = False) -> None:
        with self._lock, self._conn:
            self._write(collection, doc_id, doc, merge)

    def batch_commit(self, writes: Sequence[WriteOp]) -> None:
        _check_batch(writes, self.max_batch_size)
        with self._lock, self._conn:
            for op in writes:
                self._write(op.collection, op.doc_id, op.data, op.merge)

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT data FROM documents WHERE collection = ? ORDER BY doc_id",
                (collection,),
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def close(self) -> None:
        self.manager.close_all()

    def _read(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def _write(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool) -> None:
        payload = dict(doc)
        if merge:
            existing = self._read(collection, doc_id)
            if existing is not None:
                existing.update(payload)
                payload = existing
        self._conn.execute(
            """
            INSERT INTO documents(collection, doc_id, data, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(collection, doc_id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            (
                collection,
                doc_id,
                json.dumps(payload, ensure_ascii=False, default=str),
                datetime.now(timezone.utc).isoformat(),
            ),
        )


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DocumentStore",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "SQLiteManager",
    "WriteOp",
]
