"""Shared fixtures: settings, record builders, offline HTTP and stores."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest

from unidata_engine.config import (
    AIConfig,
    ConfigLocator,
    ConfigRepository,
    EngineSettings,
    RateLimitConfig,
    StorageConfig,
)
from unidata_engine.infra import MemoryDocumentStore
from unidata_engine.models import (
    Deadline,
    DeadlineType,
    ExtractionMethod,
    FieldValue,
    Intake,
    IntakeTerm,
    ProgramRecord,
    SourceMeta,
)

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
SOURCE_URL = "https://uni.example.edu/programs/cs"


class SleepRecorder:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        rate_limit=RateLimitConfig(request_delay=1.0, subject_delay=0.0, max_retries=3),
        ai=AIConfig(enabled=False),
        storage=StorageConfig(backend="memory"),
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def make_field() -> Callable[..., FieldValue]:
    def _builder(
        value: Any,
        confidence: float = 90.0,
        method: ExtractionMethod = ExtractionMethod.DIRECT,
        url: str = SOURCE_URL,
        fetched_at: datetime = FIXED_NOW,
    ) -> FieldValue:
        return FieldValue(
            value=value,
            source=SourceMeta(
                source_url=url, fetched_at=fetched_at, confidence=confidence, method=method
            ),
        )

    return _builder


@pytest.fixture
def make_record(make_field) -> Callable[..., ProgramRecord]:
    def _builder(
        record_id: str = "example-university-master-of-computer-science",
        program: str = "Master of Computer Science",
        university: str = "Example University",
        **fields: Any,
    ) -> ProgramRecord:
        payload: dict[str, Any] = {
            "id": record_id,
            "subject_id": "example-university",
            "university_name": make_field(university),
            "program_name": make_field(program),
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
        }
        for name, value in fields.items():
            if value is None or isinstance(value, (FieldValue, tuple)):
                payload[name] = value
            else:
                payload[name] = make_field(value)
        return ProgramRecord(**payload)

    return _builder


@pytest.fixture
def make_intake(make_field) -> Callable[..., Intake]:
    def _builder(
        term: IntakeTerm = IntakeTerm.FALL,
        year: int = 2026,
        deadline: str = "2026-01-15",
        deadline_type: DeadlineType = DeadlineType.APPLICATION,
    ) -> Intake:
        return Intake(
            term=term,
            year=year,
            deadlines=(Deadline(date=make_field(deadline), type=deadline_type),),
        )

    return _builder


@pytest.fixture
def program_page() -> Callable[..., str]:
    def _builder(
        title: str = "Master of Computer Science",
        tuition: str | None = "$25,000",
        application_fee: str | None = "$100",
        ielts: str | None = "6.5",
        toefl: str | None = "90",
        extra: Iterable[str] = (),
    ) -> str:
        lines = []
        if tuition is not None:
            lines.append(f"<p>Tuition fee: {tuition} per year</p>")
        if application_fee is not None:
            lines.append(f"<p>Application fee: {application_fee} non-refundable</p>")
        if ielts is not None:
            lines.append(f"<p>IELTS: {ielts} overall</p>")
        if toefl is not None:
            lines.append(f"<p>TOEFL: {toefl} iBT</p>")
        lines.extend(f"<p>{line}</p>" for line in extra)
        body = "\n".join(lines)
        return (
            f"<html><head><title>{title} | Example</title></head>"
            f"<body><script>var fee = 'Tuition fee: $1';</script>"
            f"<h1>{title}</h1>{body}</body></html>"
        )

    return _builder


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]:
    clients: list[httpx.Client] = []

    def _builder(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _builder
    for client in clients:
        client.close()


@pytest.fixture
def temp_config_repository(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("UNIDATA_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository
