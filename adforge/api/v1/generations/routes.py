"""Generation submit, job polling, cancellation and performance history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response, status

from adforge.api.v1.dependencies import Orchestrator
from adforge.api.v1.errors import context_http_error, generation_http_error, not_found
from adforge.api.v1.generations.constants import JOB_NOT_FINISHED_DETAIL, JOB_NOT_FOUND_DETAIL
from adforge.core.exceptions import (
    ContextError,
    GenerationError,
    GenerationNotFoundError,
    JobFailed,
    JobNotFoundError,
    JobTimeout,
)
from adforge.schemas.generation import GenerationResult, JobStatus, RawGenerationInput, SubmitResponse
from adforge.schemas.performance import PerformanceRecord

router = APIRouter()


@router.post(
    "",
    response_model=SubmitResponse,
    summary="Submit a generation",
    responses={202: {"description": "Video job accepted; poll the returned job handle"}},
)
async def submit_generation(
    payload: RawGenerationInput,
    response: Response,
    orchestrator: Orchestrator,
) -> SubmitResponse:
    """Generate an image or copy, or start a long-running video job."""
    try:
        submitted = await orchestrator.submit(payload)
    except ContextError as exc:
        raise context_http_error(exc) from exc
    except GenerationError as exc:
        raise generation_http_error(exc) from exc

    if submitted.job is not None:
        response.status_code = status.HTTP_202_ACCEPTED
    return submitted


@router.get("/jobs/{job_id}", response_model=JobStatus, summary="Poll a generation job")
async def poll_generation_job(job_id: str, orchestrator: Orchestrator) -> JobStatus:
    """Return the stored state of a long-running generation."""
    try:
        return await orchestrator.poll_job(job_id)
    except JobNotFoundError as exc:
        raise not_found(JOB_NOT_FOUND_DETAIL) from exc


@router.get(
    "/jobs/{job_id}/result",
    response_model=GenerationResult,
    summary="Get a finished generation job result",
)
async def get_generation_job_result(job_id: str, orchestrator: Orchestrator) -> GenerationResult:
    try:
        result = await orchestrator.job_result(job_id)
    except JobNotFoundError as exc:
        raise not_found(JOB_NOT_FOUND_DETAIL) from exc
    except JobTimeout as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"kind": "job_timeout", "message": exc.message},
        ) from exc
    except JobFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"kind": "job_failed", "message": exc.message},
        ) from exc

    if result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=JOB_NOT_FINISHED_DETAIL)
    return result


@router.post("/jobs/{job_id}/cancel", response_model=JobStatus, summary="Cancel a generation job")
async def cancel_generation_job(job_id: str, orchestrator: Orchestrator) -> JobStatus:
    """Request cancellation; a finished job is returned unchanged."""
    try:
        return await orchestrator.cancel_job(job_id)
    except JobNotFoundError as exc:
        raise not_found(JOB_NOT_FOUND_DETAIL) from exc


@router.get(
    "/{generation_id}/performance",
    response_model=list[PerformanceRecord],
    summary="List engagement snapshots for a generation",
)
async def list_generation_performance(generation_id: str, orchestrator: Orchestrator) -> list[PerformanceRecord]:
    """Every webhook delivery is a separate snapshot; duplicates are not merged."""
    try:
        return await orchestrator.performance_history(generation_id)
    except GenerationNotFoundError as exc:
        raise not_found(exc.message) from exc
