"""Polite, sequential HTTP retrieval with retry and backoff."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Sequence
from urllib.parse import urlparse

import httpx
import structlog

from ..config import EngineSettings
from ..errors import ErrorCode, FetchError
from ..infra import UserAgentPool
from ..infra.pacing import Sleeper, backoff_delay, jittered_delay, real_sleep
from ..models import utcnow

BLOCKING_STATUSES = frozenset({403, 429})
DEFAULT_CONTENT_TYPE = "text/html"


@dataclass(slots=True)
class FetchResult:
    """A successfully retrieved document."""

    location: str
    status_code: int
    headers: Dict[str, str]
    body: str
    content_type: str = DEFAULT_CONTENT_TYPE
    blocked: bool = False
    fetched_at: datetime = field(default_factory=utcnow)
    attempts: int = 1


@dataclass(slots=True)
class FetchBatch:
    """Outcome of fetching a list of locations in order."""

    results: list[FetchResult] = field(default_factory=list)
    failures: list[FetchError] = field(default_factory=list)
    blocked: FetchError | None = None
    skipped: list[str] = field(default_factory=list)

    @property
    def retries(self) -> int:
        attempts = [r.attempts for r in self.results] + [f.attempts for f in self.failures]
        if self.blocked is not None:
            attempts.append(self.blocked.attempts)
        return sum(max(0, count - 1) for count in attempts)


def classify_status(status_code: int) -> ErrorCode | None:
    """Map a response status to an error code, ``None`` for success."""

    if status_code in BLOCKING_STATUSES:
        return ErrorCode.BLOCKED
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    if not 200 <= status_code < 300:
        return ErrorCode.HTTP_ERROR
    return None


def origin_of(location: str) -> str | None:
    parsed = urlparse(location)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


class Fetcher:
    """Fetch locations one at a time, honouring delays and the retry policy."""

    def __init__(
        self,
        settings: EngineSettings,
        ua_pool: UserAgentPool | None = None,
        client: httpx.Client | None = None,
        sleep: Sleeper = real_sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.rate_limit = settings.rate_limit
        self.fetch_config = settings.fetch
        self.ua_pool = ua_pool or UserAgentPool(settings.fetch.user_agents)
        self.sleep = sleep
        self.logger = logger or structlog.get_logger("unidata_engine.fetcher")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=settings.fetch.timeout,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    def fetch_many(self, locations: Sequence[str]) -> FetchBatch:
        batch = FetchBatch()
        for index, location in enumerate(locations):
            if index > 0:
                self.sleep(jittered_delay(self.rate_limit.request_delay))
            try:
                result = self.fetch_one(location)
            except FetchError as exc:
                if exc.blocked:
                    batch.blocked = exc
                    batch.skipped = list(locations[index + 1 :])
                    self.logger.error(
                        "fetch_blocked",
                        url=location,
                        status=exc.status_code,
                        skipped=len(batch.skipped),
                    )
                    break
                batch.failures.append(exc)
                self.logger.warning(
                    "fetch_failed",
                    url=location,
                    code=exc.code.value,
                    status=exc.status_code,
                    attempts=exc.attempts,
                )
                continue
            batch.results.append(result)
        return batch

    def fetch_one(self, location: str, attempt: int = 0) -> FetchResult:
        while True:
            try:
                result = self._request(location)
            except FetchError as exc:
                exc.attempts = attempt + 1
                if not exc.retryable or attempt >= self.rate_limit.max_retries:
                    raise
                attempt += 1
                delay = backoff_delay(
                    attempt, self.rate_limit.request_delay, self.rate_limit.backoff_multiplier
                )
                self.logger.warning(
                    "fetch_retry",
                    url=location,
                    code=exc.code.value,
                    attempt=attempt,
                    delay=delay,
                )
                self.sleep(delay)
                continue
            result.attempts = attempt + 1
            return result

    # ------------------------------------------------------------------
    def build_headers(self, location: str) -> dict[str, str]:
        headers = dict(self.fetch_config.headers)
        user_agent = self.ua_pool.get()
        if user_agent:
            headers["User-Agent"] = user_agent
        origin = origin_of(location)
        if origin:
            headers["Referer"] = origin
        return headers

    def _request(self, location: str) -> FetchResult:
        try:
            response = self._client.get(
                location,
                headers=self.build_headers(location),
                timeout=self.fetch_config.timeout,
            )
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timeout fetching {location}", ErrorCode.TIMEOUT, location) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(
                f"Network error fetching {location}: {exc}", ErrorCode.NETWORK_ERROR, location
            ) from exc

        code = classify_status(response.status_code)
        if code is not None:
            raise FetchError(
                f"HTTP {response.status_code} fetching {location}",
                code,
                location,
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        return FetchResult(
            location=location,
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            content_type=content_type,
        )


__all__ = ["FetchBatch", "FetchResult", "Fetcher", "classify_status", "origin_of"]
