"""Inbound webhook endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from adforge.api.v1.dependencies import Orchestrator
from adforge.core.exceptions import (
    GenerationNotFoundError,
    WebhookSignatureError,
    WebhookValidationError,
)
from adforge.schemas.performance import WebhookAck

router = APIRouter()


@router.post(
    "/performance",
    response_model=WebhookAck,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest engagement metrics for a published generation",
)
async def ingest_performance_webhook(request: Request, orchestrator: Orchestrator) -> WebhookAck:
    """Verify the signed delivery and append one performance record."""
    raw_body = await request.body()
    try:
        return await orchestrator.ingest_performance_webhook(raw_body, request.headers)
    except WebhookSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"reason": exc.reason},
        ) from exc
    except WebhookValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"reason": exc.reason, **exc.details},
        ) from exc
    except GenerationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"reason": "generation_not_found", "generation_id": exc.generation_id},
        ) from exc
