"""Unit tests for long-running generation job tracking."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from adforge.core.exceptions import JobNotFoundError
from adforge.services.job_tracker import JobState, JobTracker, ProviderPollResult

TERMINAL = {"complete", "failed", "timeout", "cancelled"}


class _InMemoryJobStore:
    """Mirrors the repository's conditional terminal update."""

    def __init__(self) -> None:
        self.jobs: dict[str, SimpleNamespace] = {}
        self.generations: dict[str, str] = {}
        self.terminal_writes: list[tuple[str, str]] = []

    async def create_job(self, *, generation_id: str, provider_job_id: str, poll_interval_seconds: float) -> Any:
        job = SimpleNamespace(
            id=f"job_{len(self.jobs) + 1}",
            generation_id=generation_id,
            provider_job_id=provider_job_id,
            state="queued",
            poll_attempts=0,
            poll_interval_seconds=poll_interval_seconds,
            result_locator=None,
            error_message=None,
            updated_at=datetime.now(timezone.utc),
        )
        self.jobs[job.id] = job
        self.generations[generation_id] = "processing"
        return job

    async def get_job(self, job_id: str) -> Any | None:
        return self.jobs.get(job_id)

    async def record_poll(self, job_id: str, *, attempts: int, poll_interval_seconds: float) -> None:
        job = self.jobs[job_id]
        if job.state not in TERMINAL:
            job.state = "processing"
            job.poll_attempts = attempts

    async def apply_terminal(
        self,
        job_id: str,
        state: str,
        *,
        result_locator: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        job = self.jobs[job_id]
        if job.state in TERMINAL:
            return False
        job.state = state
        job.result_locator = result_locator
        job.error_message = error_message
        self.generations[job.generation_id] = "completed" if state == "complete" else "failed"
        self.terminal_writes.append((job_id, state))
        return True


async def _wait_for_state(tracker: JobTracker, job_id: str, states: set[str]) -> Any:
    for _ in range(200):
        status = await tracker.poll_job(job_id)
        if status.state in states:
            return status
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} never reached {states}")


async def _wait_until_idle(tracker: JobTracker) -> None:
    for _ in range(200):
        if not tracker.active_job_ids:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("polling task never finished")


@pytest.mark.asyncio
async def test_completed_job_is_not_overwritten_by_a_later_cancel() -> None:
    store = _InMemoryJobStore()
    results = [
        ProviderPollResult(done=False),
        ProviderPollResult(done=True, result_locator="https://cdn.test/video.mp4"),
    ]
    terminal_events: list[JobState] = []

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return results.pop(0) if results else ProviderPollResult(done=False)

    async def on_terminal(job_id: str, generation_id: str, state: JobState, locator: str | None) -> None:
        terminal_events.append(state)

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=5.0, on_terminal=on_terminal)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    await _wait_for_state(tracker, handle.job_id, {"complete"})

    await tracker.cancel_job(handle.job_id)
    status = await tracker.poll_job(handle.job_id)

    assert status.state == "complete"
    assert status.result_locator == "https://cdn.test/video.mp4"
    assert store.generations["gen_1"] == "completed"
    assert store.terminal_writes == [(handle.job_id, "complete")]
    assert terminal_events == [JobState.COMPLETE]


@pytest.mark.asyncio
async def test_provider_result_after_another_terminal_write_is_discarded() -> None:
    store = _InMemoryJobStore()
    terminal_events: list[JobState] = []

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        # Another process cancels the job while this poll is in flight.
        job = next(iter(store.jobs.values()))
        await store.apply_terminal(job.id, "cancelled", error_message="cancelled")
        return ProviderPollResult(done=True, error_message="late provider failure")

    async def on_terminal(job_id: str, generation_id: str, state: JobState, locator: str | None) -> None:
        terminal_events.append(state)

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=5.0, on_terminal=on_terminal)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    await _wait_until_idle(tracker)
    status = await tracker.poll_job(handle.job_id)

    assert status.state == "cancelled"
    assert status.error_message == "cancelled"
    assert store.terminal_writes == [(handle.job_id, "cancelled")]
    assert terminal_events == []
    assert await store.apply_terminal(handle.job_id, "complete", result_locator="uri") is False


@pytest.mark.asyncio
async def test_hung_provider_times_out_regardless_of_poll_count() -> None:
    store = _InMemoryJobStore()
    calls = 0

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        nonlocal calls
        calls += 1
        await asyncio.sleep(60)
        return ProviderPollResult(done=False)

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=0.1)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    status = await _wait_for_state(tracker, handle.job_id, TERMINAL)

    assert status.state == "timeout"
    assert calls == 1
    assert store.generations["gen_1"] == "failed"
    assert tracker.active_job_ids == []


@pytest.mark.asyncio
async def test_pending_provider_times_out_after_many_polls() -> None:
    store = _InMemoryJobStore()

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return ProviderPollResult(done=False)

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=0.15)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    status = await _wait_for_state(tracker, handle.job_id, TERMINAL)

    assert status.state == "timeout"
    assert status.poll_attempts >= 2


@pytest.mark.asyncio
async def test_provider_error_maps_to_failed() -> None:
    store = _InMemoryJobStore()

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return ProviderPollResult(done=True, error_message="content rejected")

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=5.0)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    status = await _wait_for_state(tracker, handle.job_id, TERMINAL)

    assert status.state == "failed"
    assert status.error_message == "content rejected"


@pytest.mark.asyncio
async def test_poll_errors_do_not_terminate_the_job() -> None:
    store = _InMemoryJobStore()
    outcomes: list[Any] = [RuntimeError("provider 503"), ProviderPollResult(done=True, result_locator="uri")]

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    tracker = JobTracker(store, fetch_status, poll_interval=0.01, timeout=5.0)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")
    status = await _wait_for_state(tracker, handle.job_id, TERMINAL)

    assert status.state == "complete"


@pytest.mark.asyncio
async def test_cancel_stops_polling_and_is_idempotent_once_terminal() -> None:
    store = _InMemoryJobStore()

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return ProviderPollResult(done=False)

    tracker = JobTracker(store, fetch_status, poll_interval=0.05, timeout=5.0)
    handle = await tracker.start(generation_id="gen_1", provider_job_id="operations/op-1")

    await tracker.cancel_job(handle.job_id)
    status = await _wait_for_state(tracker, handle.job_id, TERMINAL)
    await tracker.cancel_job(handle.job_id)

    assert status.state == "cancelled"
    assert store.terminal_writes == [(handle.job_id, "cancelled")]
    assert tracker.active_job_ids == []


@pytest.mark.asyncio
async def test_cancel_without_owning_task_cancels_directly() -> None:
    store = _InMemoryJobStore()
    job = await store.create_job(generation_id="gen_9", provider_job_id="op", poll_interval_seconds=1.0)

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        raise AssertionError("must not poll")

    tracker = JobTracker(store, fetch_status, poll_interval=1.0, timeout=5.0)
    await tracker.cancel_job(job.id)

    assert store.jobs[job.id].state == "cancelled"
    assert store.generations["gen_9"] == "failed"


@pytest.mark.asyncio
async def test_unknown_job_raises_not_found() -> None:
    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return ProviderPollResult(done=False)

    tracker = JobTracker(_InMemoryJobStore(), fetch_status, poll_interval=1.0, timeout=5.0)

    with pytest.raises(JobNotFoundError):
        await tracker.poll_job("missing")
    with pytest.raises(JobNotFoundError):
        await tracker.cancel_job("missing")


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_tasks() -> None:
    store = _InMemoryJobStore()

    async def fetch_status(provider_job_id: str) -> ProviderPollResult:
        return ProviderPollResult(done=False)

    tracker = JobTracker(store, fetch_status, poll_interval=0.05, timeout=5.0)
    await tracker.start(generation_id="gen_1", provider_job_id="op-1")
    await tracker.start(generation_id="gen_2", provider_job_id="op-2")
    assert len(tracker.active_job_ids) == 2

    await tracker.shutdown()

    assert tracker.active_job_ids == []
    assert store.terminal_writes == []
