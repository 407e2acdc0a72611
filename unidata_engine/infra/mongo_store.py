"""MongoDB-backed document store."""

from __future__ import annotations

from typing import Any, Sequence

from ..errors import StorageError
from .storage import DEFAULT_BATCH_SIZE, WriteOp, _check_batch

try:  # noqa: SIM105
    from pymongo import MongoClient, UpdateOne
except Exception as exc:  # noqa: BLE001
    MongoClient = None  # type: ignore[assignment]
    UpdateOne = None  # type: ignore[assignment]
    _IMPORT_ERROR = exc
else:
    _IMPORT_ERROR = None


class MongoDocumentStore:
    """One Mongo collection per document collection, keyed by ``_id``."""

    def __init__(
        self,
        uri: str,
        database: str,
        max_batch_size: int = DEFAULT_BATCH_SIZE,
        client: Any = None,
    ) -> None:
        if client is None:
            if MongoClient is None:  # pragma: no cover - import guard
                raise StorageError(f"pymongo is required for MongoDocumentStore: {_IMPORT_ERROR}")
            client = MongoClient(uri)
        self.client = client
        self.db = client[database]
        self.max_batch_size = max_batch_size

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self.db[collection].find_one({"_id": doc_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc

    def set(self, collection: str, doc_id: str, doc: dict[str, Any], merge: bool = False) -> None:
        if merge:
            self.db[collection].update_one({"_id": doc_id}, {"$set": dict(doc)}, upsert=True)
        else:
            self.db[collection].replace_one({"_id": doc_id}, dict(doc), upsert=True)

    def batch_commit(self, writes: Sequence[WriteOp]) -> None:
        _check_batch(writes, self.max_batch_size)
        grouped: dict[str, list] = {}
        for op in writes:
            if not op.merge:
                # bulk path only supports $set; replace is applied directly
                self.set(op.collection, op.doc_id, op.data, merge=False)
                continue
            grouped.setdefault(op.collection, []).append(
                UpdateOne({"_id": op.doc_id}, {"$set": dict(op.data)}, upsert=True)
            )
        for collection, requests in grouped.items():
            self.db[collection].bulk_write(requests, ordered=True)

    def list(self, collection: str) -> list[dict[str, Any]]:
        docs = []
        for doc in self.db[collection].find({}):
            doc.pop("_id", None)
            docs.append(doc)
        return docs

    def close(self) -> None:
        self.client.close()


__all__ = ["MongoDocumentStore"]
