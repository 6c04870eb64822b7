"""Persistence for generations, tracked jobs and performance snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update

from adforge.core.database import get_session_context
from adforge.models.generation import (
    GENERATION_STATUS_COMPLETED,
    GENERATION_STATUS_FAILED,
    GENERATION_STATUS_PROCESSING,
    JOB_STATE_PROCESSING,
    JOB_TERMINAL_STATES,
    Generation,
    GenerationJob,
    GenerationPerformance,
)
from adforge.repositories.catalog_repository import SessionFactory

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationRepository:
    """Generation and job state writes via short-lived sessions."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    async def create_generation(self, **fields: Any) -> Generation:
        async with self._session_factory() as session:
            generation = Generation(status=GENERATION_STATUS_PROCESSING, **fields)
            session.add(generation)
            await session.flush()
            return generation

    async def get_generation(self, generation_id: str) -> Generation | None:
        async with self._session_factory(commit_on_exit=False) as session:
            return await session.get(Generation, generation_id)

    async def generation_exists(self, generation_id: str) -> bool:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(func.count()).select_from(Generation).where(Generation.id == generation_id)
            )
            return bool(result.scalar_one())

    async def complete_generation(
        self,
        generation_id: str,
        *,
        result_locator: str | None,
        result_text: str | None = None,
        model: str | None = None,
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Generation)
                .where(Generation.id == generation_id)
                .values(
                    status=GENERATION_STATUS_COMPLETED,
                    result_locator=result_locator,
                    result_text=result_text,
                    model=model,
                    error_message=None,
                )
            )

    async def fail_generation(self, generation_id: str, *, error_message: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Generation)
                .where(Generation.id == generation_id)
                .values(status=GENERATION_STATUS_FAILED, error_message=error_message[:2000])
            )

    # Jobs

    async def create_job(
        self,
        *,
        generation_id: str,
        provider_job_id: str,
        poll_interval_seconds: float,
    ) -> GenerationJob:
        async with self._session_factory() as session:
            job = GenerationJob(
                generation_id=generation_id,
                provider_job_id=provider_job_id,
                state="queued",
                poll_attempts=0,
                poll_interval_seconds=poll_interval_seconds,
            )
            session.add(job)
            await session.flush()
            return job

    async def get_job(self, job_id: str) -> GenerationJob | None:
        async with self._session_factory(commit_on_exit=False) as session:
            return await session.get(GenerationJob, job_id)

    async def record_poll(self, job_id: str, *, attempts: int, poll_interval_seconds: float) -> None:
        """Persist poll bookkeeping; never touches a terminal job."""
        async with self._session_factory() as session:
            await session.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.state.notin_(sorted(JOB_TERMINAL_STATES)),
                )
                .values(
                    state=JOB_STATE_PROCESSING,
                    poll_attempts=attempts,
                    poll_interval_seconds=poll_interval_seconds,
                )
            )

    async def apply_terminal(
        self,
        job_id: str,
        state: str,
        *,
        result_locator: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Conditionally move a job to a terminal state.

        Returns False (and writes nothing) when the job is already terminal.
        The owning generation is updated in the same transaction.
        """
        if state not in JOB_TERMINAL_STATES:
            raise ValueError(f"Not a terminal job state: {state}")

        async with self._session_factory() as session:
            result = await session.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.state.notin_(sorted(JOB_TERMINAL_STATES)),
                )
                .values(
                    state=state,
                    result_locator=result_locator,
                    error_message=error_message,
                    terminal_at=_utc_now(),
                )
                .returning(GenerationJob.generation_id)
            )
            generation_id = result.scalar_one_or_none()
            if generation_id is None:
                return False

            if state == "complete":
                generation_values: dict[str, Any] = {
                    "status": GENERATION_STATUS_COMPLETED,
                    "result_locator": result_locator,
                }
            else:
                generation_values = {
                    "status": GENERATION_STATUS_FAILED,
                    "error_message": error_message or f"job_{state}",
                }
            await session.execute(
                update(Generation).where(Generation.id == generation_id).values(**generation_values)
            )
        return True

    # Performance

    async def append_performance(self, **fields: Any) -> GenerationPerformance:
        async with self._session_factory() as session:
            record = GenerationPerformance(fetched_at=_utc_now(), **fields)
            session.add(record)
            await session.flush()
            return record

    async def list_performance(self, generation_id: str) -> list[GenerationPerformance]:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(GenerationPerformance)
                .where(GenerationPerformance.generation_id == generation_id)
                .order_by(GenerationPerformance.fetched_at.asc())
            )
            return list(result.scalars().all())
