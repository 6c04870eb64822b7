"""Sequential context assembly: subject resolution then ordered enrichment."""

from __future__ import annotations

import logging
import time

from adforge.core.exceptions import ContextError
from adforge.schemas.generation import RawGenerationInput
from adforge.services.context.context import AssembledPrompt, GenerationContext, ImageDescriptor
from adforge.services.context.stages import ContextSources, ContextStage, default_stages
from adforge.services.platform_guidelines import get_platform_guideline

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_ASPECT_RATIO = "1:1"
DEFAULT_VIDEO_ASPECT_RATIO = "16:9"
DEFAULT_IMAGE_RESOLUTION = "1K"
DEFAULT_VIDEO_RESOLUTION = "720p"
REQUEST_STAGE = "request"

_MEDIA_LEADS = {
    "image": "Create a high-quality advertising image",
    "video": "Create a short advertising video",
    "text": "Write advertising copy",
}


class ContextAssembler:
    """Builds the assembled prompt for one generation request.

    Only a missing subject (product/template) is fatal. Every enrichment
    stage runs inside `_run_stage`, which logs and skips failures.
    """

    def __init__(
        self,
        sources: ContextSources,
        stages: list[ContextStage] | None = None,
    ) -> None:
        self.sources = sources
        self.stages = stages if stages is not None else default_stages(sources)

    async def assemble(self, raw: RawGenerationInput) -> AssembledPrompt:
        started = time.perf_counter()
        ctx = await self._resolve_subject(raw)

        for stage in self.stages:
            ctx = await self._run_stage(stage, ctx)

        prompt = ctx.render_prompt()
        logger.info(
            "Context assembled",
            extra={
                "user_id": ctx.user_id,
                "media_type": ctx.media_type,
                "fragments": len(ctx.fragments),
                "stages_skipped": list(ctx.stages_skipped),
                "prompt_length": len(prompt),
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return AssembledPrompt(prompt=prompt, context=ctx)

    async def _run_stage(self, stage: ContextStage, ctx: GenerationContext) -> GenerationContext:
        try:
            return await stage.build(ctx)
        except ContextError:
            raise
        except Exception as exc:
            logger.warning(
                "Context stage failed, continuing without it",
                extra={"stage": stage.name, "user_id": ctx.user_id, "error": str(exc)},
            )
            return ctx.skipped(stage.name)

    async def _resolve_subject(self, raw: RawGenerationInput) -> GenerationContext:
        products = []
        if raw.product_ids:
            products = await self.sources.get_products(raw.user_id, raw.product_ids)
            found = {product.id for product in products}
            missing = [product_id for product_id in raw.product_ids if product_id not in found]
            if missing:
                raise ContextError(
                    f"Product not found: {', '.join(missing)}",
                    reference=missing[0],
                )

        template = None
        if raw.template_id:
            template = await self.sources.get_template(raw.user_id, raw.template_id)
            if template is None:
                raise ContextError(
                    f"Template not found: {raw.template_id}",
                    reference=raw.template_id,
                )

        instruction = raw.prompt.strip()
        if not (products or template or raw.uploaded_images or instruction):
            raise ContextError("Generation request has no subject: provide a product, template or prompt")

        ctx = GenerationContext(
            user_id=raw.user_id,
            instruction=instruction,
            media_type=raw.media_type,
            products=tuple(products),
            uploaded_images=tuple(
                ImageDescriptor(
                    storage_key=image.storage_key,
                    mime_type=image.mime_type,
                    description=image.description,
                )
                for image in raw.uploaded_images
            ),
            template=template,
            template_mode=raw.template_mode,
            platform=raw.platform.strip().lower() if raw.platform else None,
            aspect_ratio=resolve_aspect_ratio(raw.media_type, raw.aspect_ratio, raw.platform),
            resolution=raw.resolution or (
                DEFAULT_VIDEO_RESOLUTION if raw.media_type == "video" else DEFAULT_IMAGE_RESOLUTION
            ),
            style_reference_ids=tuple(raw.style_reference_ids),
            use_learned_patterns=raw.use_learned_patterns,
            pattern_category=raw.pattern_category,
            pattern_industry=raw.pattern_industry,
            max_patterns=raw.max_patterns,
        )
        return ctx.with_fragment(REQUEST_STAGE, _request_fragment(ctx))


def resolve_aspect_ratio(media_type: str, requested: str | None, platform: str | None) -> str | None:
    """Explicit ratio wins, then the platform's preference, then the media default."""
    if media_type == "text":
        return None
    if requested:
        return requested
    guideline = get_platform_guideline(platform)
    if media_type == "video":
        return guideline.video_aspect_ratio if guideline else DEFAULT_VIDEO_ASPECT_RATIO
    return guideline.aspect_ratio if guideline else DEFAULT_IMAGE_ASPECT_RATIO


def _request_fragment(ctx: GenerationContext) -> str:
    lead = _MEDIA_LEADS.get(ctx.media_type, _MEDIA_LEADS["image"])
    subject = ctx.primary_product.name if ctx.primary_product else None
    if subject is None and ctx.template is not None:
        subject = ctx.template.title
    lines = [f"{lead}{f' featuring {subject}' if subject else ''}."]
    if ctx.instruction:
        lines.append(f"User Instructions: {ctx.instruction}")
    if ctx.aspect_ratio:
        lines.append(f"Aspect ratio: {ctx.aspect_ratio}.")
    return "\n".join(lines)
