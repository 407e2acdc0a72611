from __future__ import annotations

from collections import defaultdict

import pytest

from unidata_engine.errors import StorageError
from unidata_engine.infra import WriteOp
from unidata_engine.infra.mongo_store import MongoDocumentStore


class FakeCollection:
    def __init__(self) -> None:
        self.docs: dict[str, dict] = {}

    def find_one(self, query):
        doc = self.docs.get(query["_id"])
        return None if doc is None else {"_id": query["_id"], **doc}

    def update_one(self, query, update, upsert=False):
        self.docs.setdefault(query["_id"], {}).update(update["$set"])

    def replace_one(self, query, doc, upsert=False):
        self.docs[query["_id"]] = dict(doc)

    def find(self, query):
        return [{"_id": doc_id, **doc} for doc_id, doc in self.docs.items()]


class FakeClient:
    def __init__(self) -> None:
        self.databases: dict[str, defaultdict] = defaultdict(lambda: defaultdict(FakeCollection))
        self.closed = False

    def __getitem__(self, name):
        return self.databases[name]

    def close(self) -> None:
        self.closed = True


def test_mongo_store_maps_ids_and_merges() -> None:
    client = FakeClient()
    store = MongoDocumentStore("mongodb://unused", "unidata", client=client)

    store.set("subjects", "ubc", {"record_ids": ["a"], "version": 1})
    store.set("subjects", "ubc", {"version": 2}, merge=True)

    assert store.get("subjects", "ubc") == {"record_ids": ["a"], "version": 2}
    assert store.get("subjects", "missing") is None
    assert store.list("subjects") == [{"record_ids": ["a"], "version": 2}]
    store.close()
    assert client.closed is True


def test_mongo_store_batches() -> None:
    store = MongoDocumentStore("mongodb://unused", "unidata", max_batch_size=2, client=FakeClient())

    with pytest.raises(StorageError):
        store.batch_commit([WriteOp("programs", str(i), {}) for i in range(3)])

    store.batch_commit([WriteOp("programs", "a", {"v": 1}, merge=False)])
    assert store.get("programs", "a") == {"v": 1}
