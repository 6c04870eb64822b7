"""Publish endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from adforge.api.v1.dependencies import Orchestrator
from adforge.api.v1.errors import not_found
from adforge.core.exceptions import GenerationNotFoundError, PublishError
from adforge.schemas.publishing import PublishRequest, PublishResult

router = APIRouter()


@router.post(
    "/generations/{generation_id}",
    response_model=PublishResult,
    summary="Publish a generation to a connected account",
)
async def publish_generation(
    generation_id: str,
    payload: PublishRequest,
    orchestrator: Orchestrator,
) -> PublishResult:
    """Publish once. Platform failures are returned in the result body."""
    try:
        return await orchestrator.publish(generation_id, payload.account_id, text=payload.text)
    except GenerationNotFoundError as exc:
        raise not_found(exc.message) from exc
    except PublishError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error_code": exc.error_code,
                "message": exc.message,
                "is_retryable": exc.is_retryable,
            },
        ) from exc
