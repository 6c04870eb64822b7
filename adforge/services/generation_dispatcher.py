"""Quota-gated, bounded-retry dispatch of an assembled prompt to the model.

One dispatch consumes one unit of quota before any external call, unless the
caller already reserved it with `reserve_quota`, then makes up to
`max_attempts` calls. Only transient failures are retried; auth, policy
and malformed-request failures surface on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol

from adforge.config import Settings, settings
from adforge.core.exceptions import (
    ERROR_KIND_AUTH,
    ERROR_KIND_TRANSIENT,
    APIKeyMissingError,
    GenerationPermanent,
    GenerationTransient,
    QuotaExceeded,
)
from adforge.integrations.generative_model import (
    GeneratedMedia,
    GenerativeModelClient,
    GenerativeModelError,
    ReferenceImage,
)

logger = logging.getLogger(__name__)

ModelClientFactory = Callable[[], AbstractAsyncContextManager[Any]]


class QuotaStore(Protocol):
    async def try_consume(self, user_id: str, tier: str) -> Any: ...


class PatternUsageRecorder(Protocol):
    async def record_usage(self, pattern_ids: Sequence[str]) -> None: ...


@dataclass(frozen=True, slots=True)
class DispatchParams:
    user_id: str
    media_type: str
    tier: str = "free"
    aspect_ratio: str | None = None
    resolution: str | None = None
    duration_seconds: int | None = None
    reference_images: tuple[ReferenceImage, ...] = ()
    applied_pattern_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Raw model output; exactly one of media/text/operation_name is set."""

    media_type: str
    attempts: int
    model: str | None = None
    media: GeneratedMedia | None = None
    text: str | None = None
    operation_name: str | None = None

    @property
    def is_long_running(self) -> bool:
        return self.operation_name is not None


def compute_backoff_delay(
    attempt: int,
    *,
    base: float,
    cap: float,
    jitter: float = 0.0,
    retry_after: float | None = None,
) -> float:
    """Exponential delay after failed `attempt` (1-based), capped, plus jitter."""
    delay = min(cap, base * (2 ** max(attempt - 1, 0)))
    if retry_after is not None:
        delay = max(delay, min(retry_after, cap))
    return delay + max(jitter, 0.0)


def _default_client_factory() -> AbstractAsyncContextManager[Any]:
    return GenerativeModelClient()


class GenerationDispatcher:
    """Dispatches assembled prompts to the generative model."""

    def __init__(
        self,
        *,
        quota_store: QuotaStore,
        usage_recorder: PatternUsageRecorder | None = None,
        client_factory: ModelClientFactory = _default_client_factory,
        app_settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self.quota_store = quota_store
        self.usage_recorder = usage_recorder
        self.client_factory = client_factory
        self._sleep = sleep
        self._jitter = jitter or (
            lambda: random.uniform(0, self.settings.generation_backoff_jitter_seconds)
        )

    async def reserve_quota(self, user_id: str, tier: str) -> None:
        """Consume one unit of the user's budget or raise `QuotaExceeded`."""
        decision = await self.quota_store.try_consume(user_id, tier)
        if not decision.allowed:
            raise QuotaExceeded(user_id, tier=tier, limit=decision.limit)

    async def dispatch(
        self,
        prompt: str,
        params: DispatchParams,
        *,
        quota_reserved: bool = False,
    ) -> DispatchResult:
        if not quota_reserved:
            await self.reserve_quota(params.user_id, params.tier)

        max_attempts = max(1, int(self.settings.generation_max_attempts))
        timeout = float(self.settings.generation_attempt_timeout_seconds)
        last_error: GenerativeModelError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                result = await asyncio.wait_for(self._attempt(prompt, params, attempt), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = GenerativeModelError(
                    f"Attempt timed out after {timeout:.0f}s",
                    kind=ERROR_KIND_TRANSIENT,
                )
            except APIKeyMissingError as exc:
                raise GenerationPermanent(exc.message, kind=ERROR_KIND_AUTH, attempts=attempt) from exc
            except GenerativeModelError as exc:
                if exc.kind != ERROR_KIND_TRANSIENT:
                    logger.warning(
                        "Generation failed permanently",
                        extra={
                            "user_id": params.user_id,
                            "kind": exc.kind,
                            "status_code": exc.status_code,
                            "attempt": attempt,
                        },
                    )
                    raise GenerationPermanent(
                        exc.message,
                        kind=exc.kind,
                        status_code=exc.status_code,
                        attempts=attempt,
                    ) from exc
                last_error = exc
            else:
                if not result.is_long_running:
                    await self._record_usage(params)
                logger.info(
                    "Generation dispatched",
                    extra={
                        "user_id": params.user_id,
                        "media_type": params.media_type,
                        "attempts": attempt,
                        "long_running": result.is_long_running,
                    },
                )
                return result

            if attempt < max_attempts:
                delay = compute_backoff_delay(
                    attempt,
                    base=self.settings.generation_backoff_base_seconds,
                    cap=self.settings.generation_backoff_max_seconds,
                    jitter=self._jitter(),
                    retry_after=last_error.retry_after,
                )
                logger.info(
                    "Transient generation failure, retrying",
                    extra={
                        "user_id": params.user_id,
                        "attempt": attempt,
                        "delay_s": round(delay, 2),
                        "error": last_error.message,
                    },
                )
                await self._sleep(delay)

        assert last_error is not None
        raise GenerationTransient(
            f"Generation failed after {max_attempts} attempts: {last_error.message}",
            status_code=last_error.status_code,
            attempts=max_attempts,
        )

    async def _attempt(self, prompt: str, params: DispatchParams, attempt: int) -> DispatchResult:
        async with self.client_factory() as client:
            if params.media_type == "video":
                operation = await client.start_video(
                    prompt,
                    aspect_ratio=params.aspect_ratio,
                    resolution=params.resolution,
                    duration_seconds=params.duration_seconds,
                )
                return DispatchResult(
                    media_type="video",
                    attempts=attempt,
                    model=self.settings.gemini_video_model,
                    operation_name=operation,
                )
            if params.media_type == "text":
                text = await client.generate_text(prompt)
                return DispatchResult(
                    media_type="text",
                    attempts=attempt,
                    model=self.settings.gemini_text_model,
                    text=text,
                )
            media = await client.generate_image(
                prompt,
                aspect_ratio=params.aspect_ratio,
                reference_images=params.reference_images,
            )
            return DispatchResult(media_type="image", attempts=attempt, model=media.model, media=media)

    async def _record_usage(self, params: DispatchParams) -> None:
        if self.usage_recorder is None or not params.applied_pattern_ids:
            return
        try:
            await self.usage_recorder.record_usage(params.applied_pattern_ids)
        except Exception:
            logger.warning(
                "Failed to record pattern usage",
                extra={"pattern_ids": list(params.applied_pattern_ids)},
                exc_info=True,
            )
