"""Error taxonomy shared by the ingestion pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any

from .models import JobError


class ErrorCode(str, Enum):
    """Canonical error codes persisted on failed jobs."""

    BLOCKED = "BLOCKED"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_LOCATIONS = "NO_LOCATIONS"
    INVALID_STATE = "INVALID_STATE"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    JOB_TIMEOUT = "JOB_TIMEOUT"
    STORAGE_ERROR = "STORAGE_ERROR"
    UNKNOWN = "UNKNOWN"


# (retryable, blocked)
_CODE_FLAGS: dict[ErrorCode, tuple[bool, bool]] = {
    ErrorCode.BLOCKED: (False, True),
    ErrorCode.SERVER_ERROR: (True, False),
    ErrorCode.TIMEOUT: (True, False),
    ErrorCode.NETWORK_ERROR: (True, False),
    ErrorCode.HTTP_ERROR: (False, False),
    ErrorCode.VALIDATION_ERROR: (False, False),
    ErrorCode.NO_LOCATIONS: (False, False),
    ErrorCode.INVALID_STATE: (False, False),
    ErrorCode.JOB_NOT_FOUND: (False, False),
    ErrorCode.JOB_TIMEOUT: (False, False),
    ErrorCode.STORAGE_ERROR: (False, False),
    ErrorCode.UNKNOWN: (False, False),
}


def code_flags(code: ErrorCode) -> tuple[bool, bool]:
    """Return ``(retryable, blocked)`` for an error code."""

    return _CODE_FLAGS[code]


class IngestError(Exception):
    """Base error carrying a closed error code and its derived flags."""

    default_code = ErrorCode.UNKNOWN

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @property
    def retryable(self) -> bool:
        return code_flags(self.code)[0]

    @property
    def blocked(self) -> bool:
        return code_flags(self.code)[1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
            "blocked": self.blocked,
        }

    def to_job_error(self) -> JobError:
        return JobError(
            message=self.message,
            code=self.code.value,
            retryable=self.retryable,
            blocked=self.blocked,
        )


class FetchError(IngestError):
    """Retrieval failure for a single location."""

    default_code = ErrorCode.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        location: str,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, code)
        self.location = location
        self.status_code = status_code
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["location"] = self.location
        payload["status_code"] = self.status_code
        return payload


class InvalidStateError(IngestError):
    default_code = ErrorCode.INVALID_STATE


class JobNotFoundError(IngestError):
    default_code = ErrorCode.JOB_NOT_FOUND

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class StorageError(IngestError):
    default_code = ErrorCode.STORAGE_ERROR


def classify_exception(exc: BaseException) -> IngestError:
    """Wrap arbitrary exceptions so callers can match on a single type."""

    if isinstance(exc, IngestError):
        return exc
    return IngestError(str(exc) or exc.__class__.__name__, ErrorCode.UNKNOWN)


__all__ = [
    "ErrorCode",
    "FetchError",
    "IngestError",
    "InvalidStateError",
    "JobNotFoundError",
    "StorageError",
    "classify_exception",
    "code_flags",
]
