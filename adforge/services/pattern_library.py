"""Learned pattern selection, usage accounting, feedback and upload purge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from adforge.core.exceptions import PatternNotFoundError
from adforge.repositories.pattern_repository import PatternRepository
from adforge.schemas.patterns import PatternFeedbackResponse

logger = logging.getLogger(__name__)

CATEGORY_MATCH_SCORE = 25
INDUSTRY_MATCH_SCORE = 20
PLATFORM_MATCH_SCORE = 15
GENERAL_PLATFORM_SCORE = 5
TIER_SCORES = {"top-1": 15, "top-5": 12, "top-10": 8, "top-25": 4}


class ObjectDeleter(Protocol):
    def delete_object(self, object_key: str) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def score_pattern(
    pattern: Any,
    *,
    category: str | None,
    platform: str | None,
    industry: str | None,
    now: datetime | None = None,
) -> int:
    """Relevance score for one pattern against the request hints."""
    now = now or _utc_now()
    score = 0

    if category and pattern.category == category:
        score += CATEGORY_MATCH_SCORE
    if industry and pattern.industry and pattern.industry.lower() == industry.lower():
        score += INDUSTRY_MATCH_SCORE
    if platform and pattern.platform == platform:
        score += PLATFORM_MATCH_SCORE
    elif pattern.platform == "general":
        score += GENERAL_PLATFORM_SCORE

    score += TIER_SCORES.get(pattern.engagement_tier or "", 0)

    last_used = pattern.last_used_at
    if last_used is not None:
        if last_used.tzinfo is None:
            last_used = last_used.replace(tzinfo=timezone.utc)
        age = now - last_used
        if age < timedelta(days=7):
            score += 10
        elif age < timedelta(days=30):
            score += 5

    usage = pattern.usage_count or 0
    if usage > 10:
        score += 5
    elif usage > 5:
        score += 3
    elif usage > 0:
        score += 1
    return score


def select_relevant_patterns(
    patterns: Sequence[Any],
    *,
    category: str | None,
    platform: str | None,
    industry: str | None,
    limit: int,
    now: datetime | None = None,
) -> list[Any]:
    """Top `limit` active patterns by score; ties keep input order."""
    if limit <= 0:
        return []
    scored = [
        (score_pattern(p, category=category, platform=platform, industry=industry, now=now), index, p)
        for index, p in enumerate(patterns)
        if getattr(p, "is_active", True)
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [pattern for _, _, pattern in scored[:limit]]


class PatternLibrary:
    """Service facade over the learned pattern tables."""

    def __init__(
        self,
        repository: PatternRepository | None = None,
        object_store: ObjectDeleter | None = None,
    ) -> None:
        self.repository = repository or PatternRepository()
        self.object_store = object_store

    async def get_relevant_patterns(
        self,
        user_id: str,
        *,
        category: str | None,
        platform: str | None,
        industry: str | None,
        limit: int,
    ) -> list[Any]:
        candidates = await self.repository.list_active_patterns(user_id)
        return select_relevant_patterns(
            candidates,
            category=category,
            platform=platform,
            industry=industry,
            limit=limit,
        )

    async def record_usage(self, pattern_ids: Sequence[str]) -> None:
        if not pattern_ids:
            return
        updated = await self.repository.increment_usage(pattern_ids)
        logger.info(
            "Pattern usage recorded",
            extra={"pattern_ids": list(pattern_ids), "updated": updated},
        )

    async def record_applications(
        self,
        *,
        user_id: str,
        pattern_ids: Sequence[str],
        generation_id: str,
        prompt_used: str,
        product_id: str | None = None,
        target_platform: str | None = None,
    ) -> int:
        rows = await self.repository.record_applications(
            user_id=user_id,
            pattern_ids=pattern_ids,
            generation_id=generation_id,
            prompt_used=prompt_used,
            product_id=product_id,
            target_platform=target_platform,
        )
        return len(rows)

    async def record_feedback(
        self,
        *,
        user_id: str,
        pattern_id: str,
        rating: int,
        was_used: bool | None = None,
        feedback: str | None = None,
    ) -> PatternFeedbackResponse:
        """Attach a rating to the most recent application of a pattern."""
        application = await self.repository.latest_application(user_id, pattern_id)
        if application is None:
            raise PatternNotFoundError(pattern_id)

        feedback_at = await self.repository.attach_feedback(
            application.id,
            rating=rating,
            was_used=was_used,
            feedback=feedback,
        )
        if feedback_at is None:
            raise ValueError("Latest pattern application already has feedback")

        logger.info(
            "Pattern feedback recorded",
            extra={"pattern_id": pattern_id, "application_id": application.id, "rating": rating},
        )
        return PatternFeedbackResponse(
            application_id=str(application.id),
            pattern_id=str(pattern_id),
            generation_id=application.generation_id,
            user_rating=rating,
            feedback_at=feedback_at,
        )

    async def purge_expired_uploads(self, *, batch_size: int, now: datetime | None = None) -> int:
        """Delete one batch of expired uploads and their stored objects."""
        expired = await self.repository.list_expired_uploads(now=now or _utc_now(), limit=batch_size)
        if not expired:
            return 0

        if self.object_store is not None:
            for upload in expired:
                try:
                    await asyncio.to_thread(self.object_store.delete_object, upload.storage_key)
                except Exception:
                    logger.warning(
                        "Failed to delete stored upload object",
                        extra={"upload_id": upload.id, "storage_key": upload.storage_key},
                        exc_info=True,
                    )

        deleted = await self.repository.delete_uploads([upload.id for upload in expired])
        logger.info("Purged expired uploads", extra={"deleted": deleted})
        return deleted
