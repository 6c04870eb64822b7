"""Unit tests for the generation orchestrator wiring."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from adforge.config import Settings
from adforge.core.exceptions import GenerationPermanent, JobFailed, JobTimeout, QuotaExceeded
from adforge.integrations.generative_model import GeneratedMedia
from adforge.schemas.generation import RawGenerationInput
from adforge.services.context.context import (
    AssembledPrompt,
    GenerationContext,
    ImageDescriptor,
    ProductRef,
)
from adforge.services.generation_dispatcher import DispatchResult
from adforge.services.generation_orchestrator import GenerationOrchestrator
from adforge.services.job_tracker import ProviderPollResult

TERMINAL = {"complete", "failed", "timeout", "cancelled"}


class _FakeGenerations:
    """Generation rows plus the job store contract used by the tracker."""

    def __init__(self) -> None:
        self.rows: dict[str, SimpleNamespace] = {}
        self.jobs: dict[str, SimpleNamespace] = {}

    async def create_generation(self, **fields: Any) -> SimpleNamespace:
        row = SimpleNamespace(
            id=f"gen-{len(self.rows) + 1}",
            status="pending",
            model=None,
            result_locator=None,
            error_message=None,
            **fields,
        )
        self.rows[row.id] = row
        return row

    async def get_generation(self, generation_id: str) -> SimpleNamespace | None:
        return self.rows.get(generation_id)

    async def complete_generation(self, generation_id: str, *, result_locator, result_text=None, model=None) -> None:
        row = self.rows[generation_id]
        row.status = "completed"
        row.result_locator = result_locator
        row.result_text = result_text
        row.model = model

    async def fail_generation(self, generation_id: str, *, error_message: str) -> None:
        row = self.rows[generation_id]
        row.status = "failed"
        row.error_message = error_message

    async def create_job(self, *, generation_id: str, provider_job_id: str, poll_interval_seconds: float):
        job = SimpleNamespace(
            id=f"job-{len(self.jobs) + 1}",
            generation_id=generation_id,
            provider_job_id=provider_job_id,
            state="queued",
            poll_attempts=0,
            result_locator=None,
            error_message=None,
            updated_at=datetime.now(timezone.utc),
        )
        self.jobs[job.id] = job
        self.rows[generation_id].status = "processing"
        return job

    async def get_job(self, job_id: str) -> SimpleNamespace | None:
        return self.jobs.get(job_id)

    async def record_poll(self, job_id: str, *, attempts: int, poll_interval_seconds: float) -> None:
        job = self.jobs[job_id]
        if job.state not in TERMINAL:
            job.state = "processing"
            job.poll_attempts = attempts

    async def apply_terminal(self, job_id: str, state: str, *, result_locator=None, error_message=None) -> bool:
        job = self.jobs[job_id]
        if job.state in TERMINAL:
            return False
        job.state = state
        job.result_locator = result_locator
        job.error_message = error_message
        row = self.rows[job.generation_id]
        row.status = "completed" if state == "complete" else "failed"
        row.result_locator = result_locator
        return True


class _FakeAssembler:
    def __init__(self, context: GenerationContext) -> None:
        self.context = context

    async def assemble(self, raw: RawGenerationInput) -> AssembledPrompt:
        return AssembledPrompt(prompt="Rendered prompt", context=self.context)


class _FakeDispatcher:
    def __init__(
        self,
        result: DispatchResult | None = None,
        error: Exception | None = None,
        quota_error: Exception | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.quota_error = quota_error
        self.reservations: list[tuple[str, str]] = []
        self.calls: list[tuple[str, Any]] = []

    async def reserve_quota(self, user_id: str, tier: str) -> None:
        self.reservations.append((user_id, tier))
        if self.quota_error is not None:
            raise self.quota_error

    async def dispatch(self, prompt: str, params: Any, *, quota_reserved: bool = False) -> DispatchResult:
        assert quota_reserved is True
        self.calls.append((prompt, params))
        if self.error is not None:
            raise self.error
        return self.result


class _FakePatterns:
    def __init__(self) -> None:
        self.usage: list[list[str]] = []
        self.applications: list[dict[str, Any]] = []

    async def record_usage(self, pattern_ids) -> None:
        self.usage.append(list(pattern_ids))

    async def record_applications(self, **fields: Any) -> int:
        self.applications.append(fields)
        return len(fields["pattern_ids"])


class _FakeMediaStore:
    def __init__(self, *, fail_upload: bool = False) -> None:
        self.fail_upload = fail_upload
        self.uploads: list[dict[str, Any]] = []

    def upload_generated_media(self, *, user_id, generation_id, payload, mime_type) -> dict[str, Any]:
        if self.fail_upload:
            raise RuntimeError("bucket unavailable")
        self.uploads.append({"generation_id": generation_id, "payload": payload, "mime_type": mime_type})
        return {"object_key": f"generations/{user_id}/{generation_id}.png"}

    def read_object_bytes(self, *, object_key: str) -> tuple[bytes, str | None]:
        if object_key == "uploads/missing.png":
            raise FileNotFoundError(object_key)
        return b"reference-bytes", "image/jpeg"

    def create_signed_read_url(self, *, object_key: str, ttl_seconds: int | None = None) -> str:
        return f"https://media.test/{object_key}?sig=1"


def _context(**overrides: Any) -> GenerationContext:
    values = {
        "user_id": "user-1",
        "instruction": "Hero shot",
        "media_type": "image",
        "products": (ProductRef(id="prod-1", name="Trail Runner"),),
        "platform": "linkedin",
        "aspect_ratio": "1.91:1",
        "resolution": "1K",
        "applied_pattern_ids": ("pat-1", "pat-2"),
        "stages_skipped": ("brand_dna",),
    }
    values.update(overrides)
    return GenerationContext(**values)


def _orchestrator(
    *,
    context: GenerationContext,
    dispatcher: _FakeDispatcher,
    generations: _FakeGenerations | None = None,
    patterns: _FakePatterns | None = None,
    media_store: _FakeMediaStore | None = None,
    fetch_status=None,
) -> GenerationOrchestrator:
    async def never_done(operation_name: str) -> ProviderPollResult:
        return ProviderPollResult(done=False)

    return GenerationOrchestrator(
        assembler=_FakeAssembler(context),
        dispatcher=dispatcher,
        generations=generations or _FakeGenerations(),
        patterns=patterns or _FakePatterns(),
        media_store=media_store or _FakeMediaStore(),
        publishing=SimpleNamespace(),
        performance=SimpleNamespace(),
        fetch_status=fetch_status or never_done,
        app_settings=Settings(job_poll_interval_seconds=0.01, job_timeout_seconds=5.0),
    )


async def _wait_for_terminal(orchestrator: GenerationOrchestrator, job_id: str):
    for _ in range(200):
        status = await orchestrator.poll_job(job_id)
        if status.is_terminal:
            return status
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} never finished")


@pytest.mark.asyncio
async def test_image_submission_stores_media_and_records_history() -> None:
    generations = _FakeGenerations()
    patterns = _FakePatterns()
    media_store = _FakeMediaStore()
    dispatcher = _FakeDispatcher(
        DispatchResult(
            media_type="image",
            attempts=2,
            model="gemini-image",
            media=GeneratedMedia(data=b"png", mime_type="image/png", model="gemini-image"),
        )
    )
    context = _context(
        uploaded_images=(
            ImageDescriptor(storage_key="uploads/ok.png", mime_type="image/png"),
            ImageDescriptor(storage_key="uploads/missing.png", mime_type="image/png"),
        )
    )
    orchestrator = _orchestrator(
        context=context,
        dispatcher=dispatcher,
        generations=generations,
        patterns=patterns,
        media_store=media_store,
    )

    response = await orchestrator.submit(RawGenerationInput(user_id="user-1", prompt="Hero shot"))

    result = response.result
    assert response.job is None
    assert result.result_locator == "generations/user-1/gen-1.png"
    assert result.preview_url == "https://media.test/generations/user-1/gen-1.png?sig=1"
    assert result.applied_pattern_ids == ["pat-1", "pat-2"]
    assert result.stages_skipped == ["brand_dna"]
    assert result.attempts == 2
    assert generations.rows["gen-1"].status == "completed"
    assert generations.rows["gen-1"].prompt == "Rendered prompt"

    params = dispatcher.calls[0][1]
    assert [image.data for image in params.reference_images] == [b"reference-bytes"]
    assert params.applied_pattern_ids == ("pat-1", "pat-2")
    assert patterns.applications[0]["generation_id"] == "gen-1"
    assert patterns.applications[0]["product_id"] == "prod-1"


@pytest.mark.asyncio
async def test_dispatch_failure_marks_generation_failed() -> None:
    generations = _FakeGenerations()
    orchestrator = _orchestrator(
        context=_context(),
        dispatcher=_FakeDispatcher(error=GenerationPermanent("blocked", kind="policy_violation", attempts=1)),
        generations=generations,
    )

    with pytest.raises(GenerationPermanent):
        await orchestrator.submit(RawGenerationInput(user_id="user-1", prompt="Hero shot"))

    assert generations.rows["gen-1"].status == "failed"
    assert generations.rows["gen-1"].error_message == "policy_violation: blocked"


@pytest.mark.asyncio
async def test_unexpected_dispatch_error_fails_generation_with_taxonomy_tag() -> None:
    generations = _FakeGenerations()
    orchestrator = _orchestrator(
        context=_context(),
        dispatcher=_FakeDispatcher(error=ConnectionError("socket closed")),
        generations=generations,
    )

    with pytest.raises(GenerationPermanent) as exc_info:
        await orchestrator.submit(RawGenerationInput(user_id="user-1", prompt="Hero shot"))

    assert exc_info.value.kind == "permanent_unknown"
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert generations.rows["gen-1"].status == "failed"
    assert generations.rows["gen-1"].error_message == "permanent_unknown: socket closed"


@pytest.mark.asyncio
async def test_quota_refusal_creates_no_generation() -> None:
    generations = _FakeGenerations()
    dispatcher = _FakeDispatcher(quota_error=QuotaExceeded("user-1", tier="free", limit=10))
    orchestrator = _orchestrator(context=_context(), dispatcher=dispatcher, generations=generations)

    with pytest.raises(QuotaExceeded):
        await orchestrator.submit(RawGenerationInput(user_id="user-1", prompt="Hero shot"))

    assert dispatcher.reservations == [("user-1", "free")]
    assert dispatcher.calls == []
    assert generations.rows == {}


@pytest.mark.asyncio
async def test_media_store_failure_marks_generation_failed() -> None:
    generations = _FakeGenerations()
    patterns = _FakePatterns()
    orchestrator = _orchestrator(
        context=_context(),
        dispatcher=_FakeDispatcher(
            DispatchResult(
                media_type="image",
                attempts=1,
                media=GeneratedMedia(data=b"png", mime_type="image/png", model="m"),
            )
        ),
        generations=generations,
        patterns=patterns,
        media_store=_FakeMediaStore(fail_upload=True),
    )

    with pytest.raises(RuntimeError):
        await orchestrator.submit(RawGenerationInput(user_id="user-1", prompt="Hero shot"))

    assert generations.rows["gen-1"].error_message == "media_store_failed"
    assert patterns.applications == []


@pytest.mark.asyncio
async def test_copy_submission_returns_text_without_storage() -> None:
    media_store = _FakeMediaStore()
    orchestrator = _orchestrator(
        context=_context(media_type="text", applied_pattern_ids=()),
        dispatcher=_FakeDispatcher(DispatchResult(media_type="text", attempts=1, text="Run further.")),
        media_store=media_store,
    )

    response = await orchestrator.submit(
        RawGenerationInput(user_id="user-1", prompt="Write a caption", media_type="text")
    )

    assert response.result.result_text == "Run further."
    assert response.result.result_locator is None
    assert response.result.preview_url is None
    assert media_store.uploads == []


@pytest.mark.asyncio
async def test_video_job_records_usage_and_history_on_completion() -> None:
    generations = _FakeGenerations()
    patterns = _FakePatterns()
    results = [
        ProviderPollResult(done=False),
        ProviderPollResult(done=True, result_locator="https://provider.test/video.mp4"),
    ]

    async def fetch_status(operation_name: str) -> ProviderPollResult:
        return results.pop(0) if results else ProviderPollResult(done=False)

    orchestrator = _orchestrator(
        context=_context(media_type="video", aspect_ratio="16:9", resolution="720p"),
        dispatcher=_FakeDispatcher(
            DispatchResult(media_type="video", attempts=1, model="veo", operation_name="operations/op-9")
        ),
        generations=generations,
        patterns=patterns,
        fetch_status=fetch_status,
    )

    response = await orchestrator.submit(
        RawGenerationInput(user_id="user-1", prompt="Trail run", media_type="video")
    )
    assert response.result is None
    assert generations.jobs[response.job.job_id].provider_job_id == "operations/op-9"

    status = await _wait_for_terminal(orchestrator, response.job.job_id)
    result = await orchestrator.job_result(response.job.job_id)
    await orchestrator.shutdown()

    assert status.state == "complete"
    assert result.result_locator == "https://provider.test/video.mp4"
    assert result.mime_type == "video/mp4"
    assert patterns.usage == [["pat-1", "pat-2"]]
    assert patterns.applications[0]["generation_id"] == response.job.generation_id


@pytest.mark.asyncio
async def test_failed_video_job_records_nothing_and_raises_on_result() -> None:
    patterns = _FakePatterns()

    async def fetch_status(operation_name: str) -> ProviderPollResult:
        return ProviderPollResult(done=True, error_message="safety filter")

    orchestrator = _orchestrator(
        context=_context(media_type="video", aspect_ratio="16:9", resolution="720p"),
        dispatcher=_FakeDispatcher(
            DispatchResult(media_type="video", attempts=1, operation_name="operations/op-1")
        ),
        patterns=patterns,
        fetch_status=fetch_status,
    )

    response = await orchestrator.submit(
        RawGenerationInput(user_id="user-1", prompt="Trail run", media_type="video")
    )
    await _wait_for_terminal(orchestrator, response.job.job_id)

    with pytest.raises(JobFailed):
        await orchestrator.job_result(response.job.job_id)
    await orchestrator.shutdown()

    assert patterns.usage == []
    assert patterns.applications == []


@pytest.mark.asyncio
async def test_running_video_job_has_no_result_and_cancel_is_terminal() -> None:
    generations = _FakeGenerations()
    orchestrator = _orchestrator(
        context=_context(media_type="video", aspect_ratio="16:9", resolution="720p"),
        dispatcher=_FakeDispatcher(
            DispatchResult(media_type="video", attempts=1, operation_name="operations/op-2")
        ),
        generations=generations,
    )

    response = await orchestrator.submit(
        RawGenerationInput(user_id="user-1", prompt="Trail run", media_type="video")
    )
    job_id = response.job.job_id

    assert await orchestrator.job_result(job_id) is None

    await orchestrator.cancel_job(job_id)
    status = await _wait_for_terminal(orchestrator, job_id)
    await orchestrator.shutdown()

    assert status.state == "cancelled"
    with pytest.raises(JobFailed):
        await orchestrator.job_result(job_id)


@pytest.mark.asyncio
async def test_timed_out_job_result_raises_timeout() -> None:
    generations = _FakeGenerations()
    orchestrator = _orchestrator(
        context=_context(media_type="video", aspect_ratio="16:9", resolution="720p"),
        dispatcher=_FakeDispatcher(
            DispatchResult(media_type="video", attempts=1, operation_name="operations/op-3")
        ),
        generations=generations,
    )
    response = await orchestrator.submit(
        RawGenerationInput(user_id="user-1", prompt="Trail run", media_type="video")
    )
    await orchestrator.shutdown()
    generations.jobs[response.job.job_id].state = "timeout"

    with pytest.raises(JobTimeout):
        await orchestrator.job_result(response.job.job_id)
