"""Inbound entry point for ad generation, job polling, publishing and metrics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from adforge.config import Settings, settings
from adforge.core.exceptions import (
    ERROR_KIND_PERMANENT_UNKNOWN,
    GenerationError,
    GenerationPermanent,
    JobFailed,
    JobTimeout,
)
from adforge.integrations.generative_model import GenerativeModelClient, ReferenceImage
from adforge.integrations.media_store import MediaStore
from adforge.repositories.catalog_repository import CatalogRepository
from adforge.repositories.generation_repository import GenerationRepository
from adforge.schemas.generation import (
    GenerationResult,
    JobStatus,
    RawGenerationInput,
    SubmitResponse,
)
from adforge.schemas.performance import PerformanceRecord, WebhookAck
from adforge.schemas.publishing import PublishResult
from adforge.services.context.assembler import ContextAssembler
from adforge.services.context.context import GenerationContext
from adforge.services.context.sources import CatalogContextSources
from adforge.services.generation_dispatcher import DispatchParams, DispatchResult, GenerationDispatcher
from adforge.services.job_tracker import FetchStatus, JobState, JobTracker, ProviderPollResult
from adforge.services.pattern_library import PatternLibrary
from adforge.services.performance_feedback import PerformanceFeedbackService
from adforge.services.publishing import PublishingService
from adforge.services.quota import RedisQuotaStore

logger = logging.getLogger(__name__)


class GeneratedMediaStore(Protocol):
    def upload_generated_media(
        self,
        *,
        user_id: str,
        generation_id: str,
        payload: bytes,
        mime_type: str,
    ) -> dict[str, Any]: ...

    def read_object_bytes(self, *, object_key: str) -> tuple[bytes, str | None]: ...

    def create_signed_read_url(self, *, object_key: str, ttl_seconds: int | None = None) -> str: ...


@dataclass(frozen=True, slots=True)
class _PendingVideo:
    user_id: str
    prompt: str
    applied_pattern_ids: tuple[str, ...]
    product_id: str | None
    platform: str | None


async def fetch_video_status(operation_name: str) -> ProviderPollResult:
    """Read one long-running video operation from the model provider."""
    async with GenerativeModelClient() as client:
        operation = await client.get_video_operation(operation_name)
    return ProviderPollResult(
        done=operation.done,
        result_locator=operation.video_uri,
        error_message=operation.error_message,
    )


class GenerationOrchestrator:
    """Wires context assembly, dispatch, storage, job tracking and publishing."""

    def __init__(
        self,
        *,
        assembler: ContextAssembler,
        dispatcher: GenerationDispatcher,
        generations: GenerationRepository,
        patterns: PatternLibrary,
        media_store: GeneratedMediaStore,
        publishing: PublishingService,
        performance: PerformanceFeedbackService,
        tracker: JobTracker | None = None,
        fetch_status: FetchStatus = fetch_video_status,
        app_settings: Settings | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self.assembler = assembler
        self.dispatcher = dispatcher
        self.generations = generations
        self.patterns = patterns
        self.media_store = media_store
        self.publishing = publishing
        self.performance = performance
        self.tracker = tracker or JobTracker(
            generations,
            fetch_status,
            poll_interval=self.settings.job_poll_interval_seconds,
            timeout=self.settings.job_timeout_seconds,
            on_terminal=self._on_job_terminal,
        )
        self._pending_videos: dict[str, _PendingVideo] = {}

    async def submit(self, raw: RawGenerationInput) -> SubmitResponse:
        """Generate an image or copy synchronously, or start a video job."""
        assembled = await self.assembler.assemble(raw)
        ctx = assembled.context
        # A refused budget leaves no generation row behind.
        await self.dispatcher.reserve_quota(raw.user_id, raw.tier)
        generation = await self.generations.create_generation(
            user_id=raw.user_id,
            prompt=assembled.prompt,
            media_type=raw.media_type,
            platform=ctx.platform,
            aspect_ratio=ctx.aspect_ratio,
            resolution=ctx.resolution,
        )
        generation_id = str(generation.id)

        try:
            reference_images = await self._load_reference_images(ctx) if raw.media_type == "image" else ()
            dispatched = await self.dispatcher.dispatch(
                assembled.prompt,
                DispatchParams(
                    user_id=raw.user_id,
                    media_type=raw.media_type,
                    tier=raw.tier,
                    aspect_ratio=ctx.aspect_ratio,
                    resolution=ctx.resolution,
                    duration_seconds=raw.duration_seconds if raw.media_type == "video" else None,
                    reference_images=reference_images,
                    applied_pattern_ids=ctx.applied_pattern_ids,
                ),
                quota_reserved=True,
            )
        except GenerationError as exc:
            await self.generations.fail_generation(generation_id, error_message=f"{exc.kind}: {exc.message}")
            logger.warning(
                "Generation failed",
                extra={
                    "generation_id": generation_id,
                    "kind": exc.kind,
                    "retryable": exc.retryable,
                    "attempts": exc.attempts,
                },
            )
            raise
        except Exception as exc:
            await self.generations.fail_generation(
                generation_id,
                error_message=f"{ERROR_KIND_PERMANENT_UNKNOWN}: {exc}",
            )
            logger.exception("Unexpected generation failure", extra={"generation_id": generation_id})
            raise GenerationPermanent(
                "Unexpected generation failure",
                kind=ERROR_KIND_PERMANENT_UNKNOWN,
            ) from exc

        if dispatched.is_long_running:
            return await self._start_video_job(generation_id, assembled.prompt, ctx, dispatched)
        return SubmitResponse(result=await self._complete(generation_id, assembled.prompt, ctx, dispatched))

    async def poll_job(self, job_id: str) -> JobStatus:
        return await self.tracker.poll_job(job_id)

    async def job_result(self, job_id: str) -> GenerationResult | None:
        """Return the finished video, None while running; raise for unsuccessful terminal states."""
        status = await self.tracker.poll_job(job_id)
        if status.state == JobState.TIMEOUT.value:
            raise JobTimeout(job_id, self.tracker.timeout)
        if status.state in (JobState.FAILED.value, JobState.CANCELLED.value):
            raise JobFailed(job_id, status.error_message or status.state)
        if status.state != JobState.COMPLETE.value:
            return None

        generation = await self.generations.get_generation(status.generation_id or "")
        return GenerationResult(
            generation_id=str(status.generation_id),
            media_type="video",
            result_locator=status.result_locator,
            mime_type="video/mp4",
            model=getattr(generation, "model", None),
            aspect_ratio=getattr(generation, "aspect_ratio", None),
            resolution=getattr(generation, "resolution", None),
        )

    async def cancel_job(self, job_id: str) -> JobStatus:
        await self.tracker.cancel_job(job_id)
        return await self.tracker.poll_job(job_id)

    async def publish(self, generation_id: str, account_id: str, *, text: str | None = None) -> PublishResult:
        return await self.publishing.publish(generation_id, account_id, text=text)

    async def ingest_performance_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        return await self.performance.ingest(raw_body, headers)

    async def performance_history(self, generation_id: str) -> list[PerformanceRecord]:
        return await self.performance.history(generation_id)

    async def shutdown(self) -> None:
        await self.tracker.shutdown()
        self._pending_videos.clear()

    async def _start_video_job(
        self,
        generation_id: str,
        prompt: str,
        ctx: GenerationContext,
        dispatched: DispatchResult,
    ) -> SubmitResponse:
        self._pending_videos[generation_id] = _PendingVideo(
            user_id=ctx.user_id,
            prompt=prompt,
            applied_pattern_ids=ctx.applied_pattern_ids,
            product_id=ctx.primary_product.id if ctx.primary_product else None,
            platform=ctx.platform,
        )
        try:
            handle = await self.tracker.start(
                generation_id=generation_id,
                provider_job_id=str(dispatched.operation_name),
            )
        except Exception:
            self._pending_videos.pop(generation_id, None)
            await self.generations.fail_generation(generation_id, error_message="job_start_failed")
            raise
        return SubmitResponse(job=handle)

    async def _complete(
        self,
        generation_id: str,
        prompt: str,
        ctx: GenerationContext,
        dispatched: DispatchResult,
    ) -> GenerationResult:
        result_locator: str | None = None
        mime_type: str | None = None
        if dispatched.media is not None:
            mime_type = dispatched.media.mime_type
            try:
                stored = await asyncio.to_thread(
                    self.media_store.upload_generated_media,
                    user_id=ctx.user_id,
                    generation_id=generation_id,
                    payload=dispatched.media.data,
                    mime_type=mime_type,
                )
            except Exception:
                await self.generations.fail_generation(generation_id, error_message="media_store_failed")
                raise
            result_locator = str(stored["object_key"])

        await self.generations.complete_generation(
            generation_id,
            result_locator=result_locator,
            result_text=dispatched.text,
            model=dispatched.model,
        )
        await self._record_history(
            generation_id,
            user_id=ctx.user_id,
            prompt=prompt,
            pattern_ids=ctx.applied_pattern_ids,
            product_id=ctx.primary_product.id if ctx.primary_product else None,
            platform=ctx.platform,
        )

        logger.info(
            "Generation completed",
            extra={
                "generation_id": generation_id,
                "media_type": dispatched.media_type,
                "attempts": dispatched.attempts,
                "patterns": len(ctx.applied_pattern_ids),
            },
        )
        return GenerationResult(
            generation_id=generation_id,
            media_type=dispatched.media_type,
            result_locator=result_locator,
            preview_url=await self._preview_url(result_locator),
            result_text=dispatched.text,
            mime_type=mime_type,
            model=dispatched.model,
            aspect_ratio=ctx.aspect_ratio,
            resolution=ctx.resolution,
            applied_pattern_ids=list(ctx.applied_pattern_ids),
            stages_skipped=list(ctx.stages_skipped),
            attempts=dispatched.attempts,
        )

    async def _on_job_terminal(
        self,
        job_id: str,
        generation_id: str,
        state: JobState,
        result_locator: str | None,
    ) -> None:
        pending = self._pending_videos.pop(generation_id, None)
        if state != JobState.COMPLETE or pending is None:
            return
        if pending.applied_pattern_ids:
            await self.patterns.record_usage(pending.applied_pattern_ids)
        await self._record_history(
            generation_id,
            user_id=pending.user_id,
            prompt=pending.prompt,
            pattern_ids=pending.applied_pattern_ids,
            product_id=pending.product_id,
            platform=pending.platform,
        )

    async def _record_history(
        self,
        generation_id: str,
        *,
        user_id: str,
        prompt: str,
        pattern_ids: Sequence[str],
        product_id: str | None,
        platform: str | None,
    ) -> None:
        if not pattern_ids:
            return
        try:
            await self.patterns.record_applications(
                user_id=user_id,
                pattern_ids=pattern_ids,
                generation_id=generation_id,
                prompt_used=prompt,
                product_id=product_id,
                target_platform=platform,
            )
        except Exception:
            logger.warning(
                "Failed to record pattern applications",
                extra={"generation_id": generation_id, "pattern_ids": list(pattern_ids)},
                exc_info=True,
            )

    async def _load_reference_images(self, ctx: GenerationContext) -> tuple[ReferenceImage, ...]:
        images: list[ReferenceImage] = []
        for descriptor in ctx.uploaded_images:
            try:
                data, stored_mime = await asyncio.to_thread(
                    self.media_store.read_object_bytes,
                    object_key=descriptor.storage_key,
                )
            except Exception as exc:
                logger.warning(
                    "Reference image unavailable, continuing without it",
                    extra={"storage_key": descriptor.storage_key, "error": str(exc)},
                )
                continue
            images.append(ReferenceImage(data=data, mime_type=stored_mime or descriptor.mime_type))
        return tuple(images)

    async def _preview_url(self, object_key: str | None) -> str | None:
        if not object_key:
            return None
        try:
            return await asyncio.to_thread(self.media_store.create_signed_read_url, object_key=object_key)
        except Exception as exc:
            logger.warning(
                "Failed to sign preview URL",
                extra={"object_key": object_key, "error": str(exc)},
            )
            return None


_generation_orchestrator: GenerationOrchestrator | None = None


def build_generation_orchestrator(app_settings: Settings | None = None) -> GenerationOrchestrator:
    """Assemble the orchestrator over the database, Redis, R2 and provider clients."""
    app_settings = app_settings or settings
    catalog = CatalogRepository()
    generations = GenerationRepository()
    media_store = MediaStore(app_settings)
    patterns = PatternLibrary(object_store=media_store)
    return GenerationOrchestrator(
        assembler=ContextAssembler(CatalogContextSources(catalog, patterns)),
        dispatcher=GenerationDispatcher(
            quota_store=RedisQuotaStore(app_settings=app_settings),
            usage_recorder=patterns,
            app_settings=app_settings,
        ),
        generations=generations,
        patterns=patterns,
        media_store=media_store,
        publishing=PublishingService(generations=generations, catalog=catalog, media_store=media_store),
        performance=PerformanceFeedbackService(
            store=generations,
            patterns=patterns.repository,
            app_settings=app_settings,
        ),
        app_settings=app_settings,
    )


def get_generation_orchestrator() -> GenerationOrchestrator:
    """Get singleton generation orchestrator."""
    global _generation_orchestrator
    if _generation_orchestrator is None:
        _generation_orchestrator = build_generation_orchestrator()
    return _generation_orchestrator


async def shutdown_generation_orchestrator() -> None:
    global _generation_orchestrator
    if _generation_orchestrator is not None:
        await _generation_orchestrator.shutdown()
        _generation_orchestrator = None
