"""Background polling of long-running generation jobs.

Each job is owned by exactly one asyncio task in this process. That task is
the only writer of the job's terminal state, and the store's conditional
update discards any second terminal write, so terminal states are sticky.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from adforge.core.exceptions import JobNotFoundError
from adforge.models.generation import (
    JOB_STATE_CANCELLED,
    JOB_STATE_COMPLETE,
    JOB_STATE_FAILED,
    JOB_STATE_PROCESSING,
    JOB_STATE_QUEUED,
    JOB_STATE_TIMEOUT,
    JOB_TERMINAL_STATES,
)
from adforge.schemas.generation import JobHandle, JobStatus

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    QUEUED = JOB_STATE_QUEUED
    PROCESSING = JOB_STATE_PROCESSING
    COMPLETE = JOB_STATE_COMPLETE
    FAILED = JOB_STATE_FAILED
    TIMEOUT = JOB_STATE_TIMEOUT
    CANCELLED = JOB_STATE_CANCELLED


@dataclass(frozen=True, slots=True)
class ProviderPollResult:
    """One observation of the provider's job status."""

    done: bool
    result_locator: str | None = None
    error_message: str | None = None


class JobStore(Protocol):
    async def create_job(
        self,
        *,
        generation_id: str,
        provider_job_id: str,
        poll_interval_seconds: float,
    ) -> Any: ...

    async def get_job(self, job_id: str) -> Any | None: ...

    async def record_poll(self, job_id: str, *, attempts: int, poll_interval_seconds: float) -> None: ...

    async def apply_terminal(
        self,
        job_id: str,
        state: str,
        *,
        result_locator: str | None = None,
        error_message: str | None = None,
    ) -> bool: ...


FetchStatus = Callable[[str], Awaitable[ProviderPollResult]]
OnTerminal = Callable[[str, str, JobState, str | None], Awaitable[None]]


class JobTracker:
    """Owns one polling task per in-flight job."""

    def __init__(
        self,
        store: JobStore,
        fetch_status: FetchStatus,
        *,
        poll_interval: float,
        timeout: float,
        on_terminal: OnTerminal | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.fetch_status = fetch_status
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.on_terminal = on_terminal
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cancel_flags: dict[str, asyncio.Event] = {}

    @property
    def active_job_ids(self) -> list[str]:
        return list(self._tasks)

    async def start(self, *, generation_id: str, provider_job_id: str) -> JobHandle:
        job = await self.store.create_job(
            generation_id=generation_id,
            provider_job_id=provider_job_id,
            poll_interval_seconds=self.poll_interval,
        )
        job_id = str(job.id)
        self._cancel_flags[job_id] = asyncio.Event()
        self._tasks[job_id] = asyncio.create_task(
            self._run(job_id, generation_id, provider_job_id),
            name=f"generation-job-{job_id}",
        )
        logger.info(
            "Generation job started",
            extra={"job_id": job_id, "generation_id": generation_id, "provider_job_id": provider_job_id},
        )
        return JobHandle(
            job_id=job_id,
            generation_id=generation_id,
            state=JobState.QUEUED.value,
            poll_interval_seconds=self.poll_interval,
        )

    async def poll_job(self, job_id: str) -> JobStatus:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return JobStatus(
            job_id=str(job.id),
            generation_id=job.generation_id,
            state=job.state,
            result_locator=job.result_locator,
            error_message=job.error_message,
            poll_attempts=job.poll_attempts or 0,
            updated_at=getattr(job, "updated_at", None),
        )

    async def cancel_job(self, job_id: str) -> None:
        """Request cancellation; a terminal job ignores it."""
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.state in JOB_TERMINAL_STATES:
            logger.info("Cancel ignored for terminal job", extra={"job_id": job_id, "state": job.state})
            return

        flag = self._cancel_flags.get(job_id)
        if flag is not None:
            flag.set()
            logger.info("Generation job cancel requested", extra={"job_id": job_id})
            return

        # No polling task in this process owns the job.
        await self._finish(job_id, job.generation_id, JobState.CANCELLED, error_message="cancelled")

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._cancel_flags.clear()

    async def _run(self, job_id: str, generation_id: str, provider_job_id: str) -> None:
        deadline = self._clock() + self.timeout
        cancel_flag = self._cancel_flags[job_id]
        attempts = 0
        try:
            while True:
                if cancel_flag.is_set():
                    await self._finish(job_id, generation_id, JobState.CANCELLED, error_message="cancelled")
                    return

                remaining = deadline - self._clock()
                if remaining <= 0:
                    await self._timeout(job_id, generation_id)
                    return

                attempts += 1
                try:
                    result = await asyncio.wait_for(self.fetch_status(provider_job_id), timeout=remaining)
                except asyncio.TimeoutError:
                    await self._timeout(job_id, generation_id)
                    return
                except Exception as exc:
                    logger.warning(
                        "Job status poll failed",
                        extra={"job_id": job_id, "attempt": attempts, "error": str(exc)},
                    )
                    result = ProviderPollResult(done=False)

                if result.done:
                    await self._apply_done(job_id, generation_id, result)
                    return

                await self.store.record_poll(
                    job_id,
                    attempts=attempts,
                    poll_interval_seconds=self.poll_interval,
                )
                remaining = deadline - self._clock()
                if remaining > 0:
                    try:
                        await asyncio.wait_for(
                            cancel_flag.wait(),
                            timeout=min(self.poll_interval, remaining),
                        )
                    except asyncio.TimeoutError:
                        pass
        finally:
            self._tasks.pop(job_id, None)
            self._cancel_flags.pop(job_id, None)

    async def _timeout(self, job_id: str, generation_id: str) -> None:
        await self._finish(
            job_id,
            generation_id,
            JobState.TIMEOUT,
            error_message=f"Job exceeded {self.timeout:.0f}s wall-clock timeout",
        )

    async def _apply_done(self, job_id: str, generation_id: str, result: ProviderPollResult) -> None:
        if result.error_message or not result.result_locator:
            await self._finish(
                job_id,
                generation_id,
                JobState.FAILED,
                error_message=result.error_message or "Provider returned no result",
            )
            return
        await self._finish(
            job_id,
            generation_id,
            JobState.COMPLETE,
            result_locator=result.result_locator,
        )

    async def _finish(
        self,
        job_id: str,
        generation_id: str,
        state: JobState,
        *,
        result_locator: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        applied = await self.store.apply_terminal(
            job_id,
            state.value,
            result_locator=result_locator,
            error_message=error_message,
        )
        if not applied:
            logger.info(
                "Discarded terminal signal for already terminal job",
                extra={"job_id": job_id, "state": state.value},
            )
            return False

        logger.info(
            "Generation job finished",
            extra={"job_id": job_id, "generation_id": generation_id, "state": state.value},
        )
        if self.on_terminal is not None:
            try:
                await self.on_terminal(job_id, generation_id, state, result_locator)
            except Exception:
                logger.warning(
                    "Job terminal callback failed",
                    extra={"job_id": job_id, "state": state.value},
                    exc_info=True,
                )
        return True
