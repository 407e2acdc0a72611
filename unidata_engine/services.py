"""Wire settings into a ready-to-use set of pipeline components."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from .config import EngineSettings
from .engine import (
    ConfidenceVerifier,
    DiffEngine,
    Fetcher,
    HttpFieldVerifier,
    Parser,
    Publisher,
    Validator,
)
from .engine.verifier import FieldVerifier
from .infra import MemoryDocumentStore, SQLiteDocumentStore, UserAgentPool
from .infra.mongo_store import MongoDocumentStore
from .infra.pacing import Sleeper, real_sleep
from .infra.storage import DocumentStore
from .jobs import JobManager, JobQueue
from .logging_conf import subject_logger


@dataclass(slots=True)
class EngineServices:
    settings: EngineSettings
    store: DocumentStore
    fetcher: Fetcher
    publisher: Publisher
    manager: JobManager
    queue: JobQueue

    def close(self) -> None:
        self.queue.stop(timeout=5)
        self.fetcher.close()
        close = getattr(self.store, "close", None)
        if callable(close):
            close()


def build_store(settings: EngineSettings, base_dir: Path | None = None) -> DocumentStore:
    storage = settings.storage
    if storage.backend == "memory":
        return MemoryDocumentStore()
    if storage.backend == "mongodb":
        return MongoDocumentStore(storage.mongo_uri or "", storage.mongo_database)
    path = storage.resolved_path(base_dir or Path.cwd())
    path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteDocumentStore(path)


def build_field_verifier(settings: EngineSettings) -> FieldVerifier | None:
    ai = settings.ai
    if not ai.enabled or not ai.endpoint:
        return None
    return HttpFieldVerifier(ai.endpoint, api_key=ai.api_key, timeout=ai.timeout)


def build_services(
    settings: EngineSettings,
    store: DocumentStore | None = None,
    base_dir: Path | None = None,
    client: httpx.Client | None = None,
    field_verifier: FieldVerifier | None = None,
    sleep: Sleeper = real_sleep,
    subject_logs: bool = False,
) -> EngineServices:
    """Assemble the job manager and queue from settings.

    ``store``, ``client``, ``field_verifier`` and ``sleep`` are injectable so
    tests can run the whole pipeline offline. ``subject_logs`` routes job
    events into per-subject log files.
    """

    logger = structlog.get_logger("unidata_engine.services")
    store = store if store is not None else build_store(settings, base_dir)
    fetcher = Fetcher(
        settings,
        ua_pool=UserAgentPool(settings.fetch.user_agents),
        client=client,
        sleep=sleep,
    )
    publisher = Publisher(store)
    verifier = ConfidenceVerifier(
        verifier=field_verifier or build_field_verifier(settings),
        threshold=settings.ai.threshold,
        enabled=settings.ai.enabled,
    )
    manager = JobManager(
        store=store,
        fetcher=fetcher,
        parser=Parser(),
        validator=Validator(),
        diff_engine=DiffEngine(
            threshold=settings.review.threshold,
            significant_monetary_change=settings.review.significant_monetary_change,
        ),
        verifier=verifier,
        publisher=publisher,
        settings=settings,
        subject_logger=subject_logger if subject_logs else None,
    )
    queue = JobQueue(manager, subject_delay=settings.rate_limit.subject_delay, sleep=sleep)
    logger.debug(
        "services_built",
        backend=settings.storage.backend,
        ai_available=verifier.available,
    )
    return EngineServices(
        settings=settings,
        store=store,
        fetcher=fetcher,
        publisher=publisher,
        manager=manager,
        queue=queue,
    )


__all__ = ["EngineServices", "build_field_verifier", "build_services", "build_store"]
