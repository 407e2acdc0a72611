"""Infra layer utilities (document stores, identity pool, pacing)."""

from .pacing import backoff_delay, jittered_delay, real_sleep
from .storage import (
    DocumentStore,
    MemoryDocumentStore,
    SQLiteDocumentStore,
    SQLiteManager,
    WriteOp,
)
from .ua_pool import UserAgentPool

__all__ = [
    "DocumentStore",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "SQLiteManager",
    "UserAgentPool",
    "WriteOp",
    "backoff_delay",
    "jittered_delay",
    "real_sleep",
]
