"""Persistence for learned patterns, upload intake records and application history."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update

from adforge.core.database import get_session_context
from adforge.models.pattern import (
    UPLOAD_STATUS_PENDING,
    UPLOAD_STATUS_PROCESSING,
    UPLOAD_TERMINAL_STATUSES,
    ApplicationHistory,
    LearnedPattern,
    UploadRecord,
)
from adforge.repositories.catalog_repository import SessionFactory

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PatternRepository:
    """Handles pattern-library writes via short-lived sessions."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    # Patterns

    async def list_active_patterns(self, user_id: str, *, limit: int = 200) -> list[LearnedPattern]:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(LearnedPattern)
                .where(LearnedPattern.user_id == user_id, LearnedPattern.is_active.is_(True))
                .order_by(LearnedPattern.updated_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_pattern_by_source_hash(self, user_id: str, source_hash: str) -> LearnedPattern | None:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(LearnedPattern).where(
                    LearnedPattern.user_id == user_id,
                    LearnedPattern.source_hash == source_hash,
                )
            )
            return result.scalar_one_or_none()

    async def create_pattern(self, **fields: Any) -> LearnedPattern:
        async with self._session_factory() as session:
            pattern = LearnedPattern(**fields)
            session.add(pattern)
            await session.flush()
            return pattern

    async def increment_usage(self, pattern_ids: Sequence[str]) -> int:
        """Atomically bump usage counters; returns the number of rows touched."""
        ids = list(dict.fromkeys(pattern_ids))
        if not ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                update(LearnedPattern)
                .where(LearnedPattern.id.in_(ids))
                .values(usage_count=LearnedPattern.usage_count + 1, last_used_at=_utc_now())
            )
            return int(result.rowcount or 0)

    # Uploads

    async def create_upload(self, **fields: Any) -> UploadRecord:
        async with self._session_factory() as session:
            upload = UploadRecord(status=UPLOAD_STATUS_PENDING, **fields)
            session.add(upload)
            await session.flush()
            return upload

    async def mark_upload_processing(self, upload_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(UploadRecord)
                .where(UploadRecord.id == upload_id, UploadRecord.status == UPLOAD_STATUS_PENDING)
                .values(status=UPLOAD_STATUS_PROCESSING, processing_started_at=_utc_now())
            )
            return bool(result.rowcount)

    async def finish_upload(self, upload_id: str, *, status: str, **fields: Any) -> bool:
        """Write the single terminal status; a second terminal write is ignored."""
        if status not in UPLOAD_TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal upload status: {status}")
        async with self._session_factory() as session:
            result = await session.execute(
                update(UploadRecord)
                .where(
                    UploadRecord.id == upload_id,
                    UploadRecord.status.notin_(list(UPLOAD_TERMINAL_STATUSES)),
                )
                .values(status=status, processing_completed_at=_utc_now(), **fields)
            )
            applied = bool(result.rowcount)
        if not applied:
            logger.warning(
                "Ignored second terminal write for upload",
                extra={"upload_id": upload_id, "status": status},
            )
        return applied

    async def list_expired_uploads(self, *, now: datetime, limit: int) -> list[UploadRecord]:
        """Expired uploads that never produced a pattern."""
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(UploadRecord)
                .where(
                    UploadRecord.expires_at <= now,
                    UploadRecord.extracted_pattern_id.is_(None),
                )
                .order_by(UploadRecord.expires_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def delete_uploads(self, upload_ids: Sequence[str]) -> int:
        if not upload_ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                delete(UploadRecord).where(UploadRecord.id.in_(list(upload_ids)))
            )
            return int(result.rowcount or 0)

    # Application history

    async def record_applications(
        self,
        *,
        user_id: str,
        pattern_ids: Sequence[str],
        generation_id: str,
        prompt_used: str,
        product_id: str | None,
        target_platform: str | None,
    ) -> list[ApplicationHistory]:
        rows = [
            ApplicationHistory(
                user_id=user_id,
                pattern_id=pattern_id,
                generation_id=generation_id,
                product_id=product_id,
                target_platform=target_platform,
                prompt_used=prompt_used,
            )
            for pattern_id in dict.fromkeys(pattern_ids)
        ]
        if not rows:
            return []
        async with self._session_factory() as session:
            session.add_all(rows)
            await session.flush()
        return rows

    async def latest_application(self, user_id: str, pattern_id: str) -> ApplicationHistory | None:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(ApplicationHistory)
                .where(
                    ApplicationHistory.user_id == user_id,
                    ApplicationHistory.pattern_id == pattern_id,
                )
                .order_by(ApplicationHistory.created_at.desc(), ApplicationHistory.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def attach_feedback(
        self,
        application_id: str,
        *,
        rating: int,
        was_used: bool | None,
        feedback: str | None,
    ) -> datetime | None:
        """Attach feedback once; returns the feedback timestamp or None if already rated."""
        feedback_at = _utc_now()
        async with self._session_factory() as session:
            result = await session.execute(
                update(ApplicationHistory)
                .where(
                    ApplicationHistory.id == application_id,
                    ApplicationHistory.feedback_at.is_(None),
                )
                .values(
                    user_rating=rating,
                    was_used=was_used,
                    feedback=feedback,
                    feedback_at=feedback_at,
                )
            )
            return feedback_at if result.rowcount else None

    async def pattern_ids_for_generation(self, generation_id: str) -> list[str]:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(ApplicationHistory.pattern_id).where(
                    ApplicationHistory.generation_id == generation_id
                )
            )
            return [str(pattern_id) for pattern_id in result.scalars().all()]
