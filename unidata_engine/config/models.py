"""Pydantic models for engine settings and subject definitions."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENTS: list[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.1 Safari/605.1.15",
]

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

MIN_REQUEST_DELAY = 1.0


class ScheduleType(str, Enum):
    """Scheduler modes for recurring subject runs."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """When a subject should be re-ingested."""

    type: ScheduleType = Field(default=ScheduleType.ONCE)
    value: Any = Field(
        default=None,
        description="Cron expression, interval seconds or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class RateLimitConfig(BaseModel):
    """Politeness controls, expressed in seconds."""

    request_delay: float = 7.5
    subject_delay: float = 10.0
    max_retries: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    @field_validator("request_delay")
    @classmethod
    def _check_request_delay(cls, value: float) -> float:
        if value < MIN_REQUEST_DELAY:
            raise ValueError(f"request_delay must be at least {MIN_REQUEST_DELAY} seconds")
        return value

    @field_validator("subject_delay")
    @classmethod
    def _check_subject_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("subject_delay must be >= 0")
        return value


class FetchConfig(BaseModel):
    timeout: float = Field(default=30.0, gt=0)
    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    headers: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_HEADERS))

    @field_validator("user_agents")
    @classmethod
    def _non_empty_pool(cls, value: list[str]) -> list[str]:
        cleaned = [ua.strip() for ua in value if ua and ua.strip()]
        if not cleaned:
            raise ValueError("user_agents must contain at least one identity string")
        return cleaned


class AIConfig(BaseModel):
    enabled: bool = True
    api_key: str | None = None
    endpoint: str | None = None
    threshold: float = Field(default=70.0, ge=0, le=100)
    timeout: float = Field(default=20.0, gt=0)


class JobConfig(BaseModel):
    max_concurrent_jobs: int = 1
    timeout: float = Field(default=600.0, gt=0)

    @field_validator("max_concurrent_jobs")
    @classmethod
    def _single_worker(cls, value: int) -> int:
        if value != 1:
            raise ValueError("max_concurrent_jobs must be 1; jobs are processed serially")
        return value


class ReviewConfig(BaseModel):
    threshold: float = Field(default=70.0, ge=0, le=100)
    significant_monetary_change: float = Field(default=0.20, gt=0)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class StorageConfig(BaseModel):
    backend: Literal["memory", "sqlite", "mongodb"] = "sqlite"
    path: Path = Field(default=Path("data/store.db"))
    mongo_uri: str | None = None
    mongo_database: str = "unidata"

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _mongo_requires_uri(self) -> "StorageConfig":
        if self.backend == "mongodb" and not self.mongo_uri:
            raise ValueError("mongodb backend requires mongo_uri")
        return self

    def resolved_path(self, base_dir: Path) -> Path:
        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class EngineSettings(BaseModel):
    """Global settings shared by every job."""

    env: str = "development"
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    job: JobConfig = Field(default_factory=JobConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


class SubjectConfig(BaseModel):
    """A university whose program pages are ingested."""

    name: str
    country: Literal["Canada", "UK", "USA", "Australia", "Other"] = "Other"
    locations: list[str] = Field(default_factory=list)
    auto_publish: bool = False
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name cannot be empty")
        return value

    @field_validator("locations")
    @classmethod
    def _http_locations(cls, value: list[str]) -> list[str]:
        for location in value:
            if not location.startswith(("http://", "https://")):
                raise ValueError(f"location must be an http(s) URL: {location}")
        return value


__all__ = [
    "AIConfig",
    "DEFAULT_HEADERS",
    "DEFAULT_USER_AGENTS",
    "EngineSettings",
    "FetchConfig",
    "JobConfig",
    "LoggingConfig",
    "MIN_REQUEST_DELAY",
    "RateLimitConfig",
    "ReviewConfig",
    "ScheduleConfig",
    "ScheduleType",
    "StorageConfig",
    "SubjectConfig",
]
