"""Reference ad upload and learned pattern endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from adforge.api.v1.dependencies import PatternExtraction, Patterns
from adforge.api.v1.patterns.constants import (
    DEFAULT_RELEVANT_LIMIT,
    MAX_RELEVANT_LIMIT,
    PATTERN_ALREADY_RATED_DETAIL,
    PATTERN_APPLICATION_NOT_FOUND_DETAIL,
)
from adforge.core.exceptions import PatternNotFoundError, UploadRejectedError
from adforge.schemas.patterns import (
    LearnedPatternSummary,
    PatternCategory,
    PatternFeedbackRequest,
    PatternFeedbackResponse,
    PatternPlatform,
    PatternUploadRequest,
    PatternUploadResponse,
)

router = APIRouter()


@router.post(
    "/uploads",
    response_model=PatternUploadResponse,
    summary="Upload a reference ad for pattern extraction",
)
async def upload_reference_ad(
    payload: PatternUploadRequest,
    extraction: PatternExtraction,
) -> PatternUploadResponse:
    """Scan and extract a reusable pattern from a high-performing ad."""
    try:
        return await extraction.process_upload(payload)
    except UploadRejectedError as exc:
        status_code = (
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            if exc.reason == "file_too_large"
            else status.HTTP_422_UNPROCESSABLE_ENTITY
        )
        raise HTTPException(status_code=status_code, detail={"reason": exc.reason, **exc.details}) from exc


@router.get(
    "/relevant",
    response_model=list[LearnedPatternSummary],
    summary="List the most relevant learned patterns",
)
async def list_relevant_patterns(
    patterns: Patterns,
    user_id: str = Query(min_length=1),
    category: PatternCategory | None = None,
    platform: PatternPlatform | None = None,
    industry: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=DEFAULT_RELEVANT_LIMIT, ge=1, le=MAX_RELEVANT_LIMIT),
) -> list[LearnedPatternSummary]:
    selected = await patterns.get_relevant_patterns(
        user_id,
        category=category,
        platform=platform,
        industry=industry,
        limit=limit,
    )
    return [LearnedPatternSummary.model_validate(pattern) for pattern in selected]


@router.post(
    "/{pattern_id}/feedback",
    response_model=PatternFeedbackResponse,
    summary="Rate the latest application of a pattern",
)
async def rate_pattern_application(
    pattern_id: str,
    payload: PatternFeedbackRequest,
    patterns: Patterns,
) -> PatternFeedbackResponse:
    try:
        return await patterns.record_feedback(
            user_id=payload.user_id,
            pattern_id=pattern_id,
            rating=payload.rating,
            was_used=payload.was_used,
            feedback=payload.feedback,
        )
    except PatternNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=PATTERN_APPLICATION_NOT_FOUND_DETAIL,
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=PATTERN_ALREADY_RATED_DETAIL,
        ) from exc
