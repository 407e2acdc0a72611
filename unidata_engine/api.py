"""HTTP surface for creating, inspecting and approving jobs."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Literal

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .errors import InvalidStateError, JobNotFoundError
from .jobs import JobOptions
from .models import WIRE_CONFIG, utcnow
from .services import EngineServices

logger = structlog.get_logger("unidata_engine.api")


class CreateJobRequest(BaseModel):
    """Request to ingest one university."""

    model_config = WIRE_CONFIG

    subject: str = Field(min_length=1)
    country: Literal["Canada", "UK", "USA", "Australia", "Other"] = "Other"
    locations: list[str] = Field(min_length=1)
    created_by: str = "system"
    auto_publish: bool = False


class ApproveRequest(BaseModel):
    model_config = WIRE_CONFIG

    approved_by: str = Field(min_length=1)
    record_ids: list[str] | None = None


class QueueStatus(BaseModel):
    model_config = WIRE_CONFIG

    queue_size: int
    is_processing: bool
    current_job_id: str | None = None
    processed: int = 0
    failed: int = 0


def build_router(services: EngineServices) -> APIRouter:
    router = APIRouter()
    manager = services.manager

    @router.post("/jobs/create", status_code=201)
    def create_job(request: CreateJobRequest) -> dict[str, Any]:
        job = manager.create_job(
            request.subject,
            request.country,
            request.locations,
            created_by=request.created_by,
            auto_publish=request.auto_publish,
        )
        services.queue.enqueue(job, request.locations, JobOptions(auto_publish=request.auto_publish))
        return {"job": job.model_dump(mode="json", by_alias=True)}

    @router.get("/jobs/{job_id}")
    def get_job(job_id: str) -> dict[str, Any]:
        try:
            job = manager.get_job(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        return {"job": job.model_dump(mode="json", by_alias=True)}

    @router.get("/jobs/{job_id}/diff")
    def get_diff(job_id: str) -> dict[str, Any]:
        diff = manager.get_diff(job_id)
        if diff is None:
            raise HTTPException(status_code=404, detail=f"No diff recorded for job {job_id}")
        return {"diff": diff.model_dump(mode="json", by_alias=True)}

    @router.post("/jobs/{job_id}/approve")
    def approve_job(job_id: str, request: ApproveRequest) -> dict[str, bool]:
        try:
            manager.approve_and_publish(job_id, request.approved_by, request.record_ids)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except InvalidStateError as exc:
            raise HTTPException(status_code=409, detail=exc.message) from exc
        return {"success": True}

    @router.get("/queue/status")
    def queue_status() -> dict[str, Any]:
        return QueueStatus(**services.queue.get_status()).model_dump(by_alias=True)

    return router


def create_app(services: EngineServices, start_queue: bool = True) -> FastAPI:
    """Factory function for creating the FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if start_queue:
            services.queue.start()
        yield
        if start_queue:
            services.queue.stop(timeout=5)

    app = FastAPI(
        title="UniData Engine",
        description="University program ingestion pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("api_bad_request", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "detail": jsonable_encoder(exc.errors())},
        )

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    app.include_router(build_router(services))
    return app


__all__ = ["ApproveRequest", "CreateJobRequest", "QueueStatus", "build_router", "create_app"]
