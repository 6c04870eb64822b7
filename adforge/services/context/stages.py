"""Context assembly stages.

Each stage reads one enrichment source and appends at most one fragment.
Stages never raise for a missing source; the assembler treats any exception
as a soft failure and moves on.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol

from adforge.services.brand_dna import format_brand_dna_context
from adforge.services.context.context import (
    BrandSnapshot,
    GenerationContext,
    ProductRef,
    StyleRef,
    TemplateBlueprint,
)
from adforge.services.pattern_sanitizer import MAX_PROMPT_PATTERNS, format_for_prompt
from adforge.services.platform_guidelines import get_platform_guideline

logger = logging.getLogger(__name__)

MAX_STYLE_DESCRIPTION_CHARS = 200
MAX_PRODUCT_DESCRIPTION_CHARS = 300


class ContextSources(Protocol):
    """Read-only lookups the stages depend on."""

    async def get_products(self, user_id: str, product_ids: Sequence[str]) -> list[ProductRef]: ...

    async def get_template(self, user_id: str, template_id: str) -> TemplateBlueprint | None: ...

    async def get_brand_profile(self, user_id: str) -> BrandSnapshot | None: ...

    async def get_brand_dna(self, user_id: str) -> Any | None: ...

    async def get_relevant_patterns(
        self,
        user_id: str,
        *,
        category: str | None,
        platform: str | None,
        industry: str | None,
        limit: int,
    ) -> list[Any]: ...

    async def get_style_references(
        self,
        user_id: str,
        reference_ids: Sequence[str],
    ) -> list[StyleRef]: ...


class ContextStage(ABC):
    """One ordered enrichment step of context assembly."""

    name: str

    def __init__(self, sources: ContextSources) -> None:
        self.sources = sources

    @abstractmethod
    async def build(self, ctx: GenerationContext) -> GenerationContext:
        """Return `ctx` with this stage's fragment appended (or unchanged)."""


class BrandProfileStage(ContextStage):
    name = "brand_profile"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        brand = await self.sources.get_brand_profile(ctx.user_id)
        if brand is None:
            return ctx.completed_without_fragment(self.name)

        text = (
            f"BRAND GUIDELINES ({brand.name}):\n"
            f"- Visual Style: {', '.join(brand.styles) or 'Professional'}\n"
            f"- Brand Values: {', '.join(brand.values) or 'Reliability'}\n"
            f"- Brand Colors: {', '.join(brand.colors) or 'Standard'}\n"
            f"- Voice Principles: {', '.join(brand.voice_principles) or 'Professional'}\n\n"
            "Ensure the result aligns with these brand guidelines where possible."
        )
        return ctx.with_fragment(self.name, text, brand_context=text)


class BrandDNAStage(ContextStage):
    name = "brand_dna"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        dna = await self.sources.get_brand_dna(ctx.user_id)
        text = format_brand_dna_context(dna)
        if not text:
            return ctx.completed_without_fragment(self.name)
        return ctx.with_fragment(self.name, text, brand_dna_insight=text)


class LearnedPatternStage(ContextStage):
    name = "learned_patterns"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        if not ctx.use_learned_patterns:
            return ctx.completed_without_fragment(self.name)

        patterns = await self.sources.get_relevant_patterns(
            ctx.user_id,
            category=ctx.pattern_category,
            platform=ctx.platform,
            industry=ctx.pattern_industry,
            limit=min(ctx.max_patterns, MAX_PROMPT_PATTERNS),
        )
        # Only patterns that reach the prompt count as applied.
        patterns = list(patterns)[:MAX_PROMPT_PATTERNS]
        directives = format_for_prompt(patterns)
        if not directives:
            return ctx.completed_without_fragment(self.name)

        logger.info(
            "Learned patterns applied to prompt",
            extra={"user_id": ctx.user_id, "pattern_count": len(patterns)},
        )
        text = (
            f"{directives}\n\n"
            "Apply relevant patterns from successful ads when composing the result."
        )
        return ctx.with_fragment(
            self.name,
            text,
            pattern_directives=directives,
            applied_pattern_ids=tuple(str(pattern.id) for pattern in patterns),
        )


class StyleReferenceStage(ContextStage):
    name = "style_references"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        if not ctx.style_reference_ids:
            return ctx.completed_without_fragment(self.name)

        references = await self.sources.get_style_references(ctx.user_id, ctx.style_reference_ids)
        lines = []
        for reference in references:
            description = (reference.description or "").strip()
            if len(description) > MAX_STYLE_DESCRIPTION_CHARS:
                description = description[:MAX_STYLE_DESCRIPTION_CHARS].rstrip() + "..."
            suffix = f": {description}" if description else ""
            lines.append(f"- {reference.name} ({reference.category}){suffix}")
        if not lines:
            return ctx.completed_without_fragment(self.name)

        text = "STYLE REFERENCE DIRECTIVES:\n" + "\n".join(lines) + (
            "\n\nMatch the visual style of these references without copying their content."
        )
        return ctx.with_fragment(self.name, text, style_directives=text)


class PlatformGuidelineStage(ContextStage):
    name = "platform_guidelines"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        guideline = get_platform_guideline(ctx.platform)
        if guideline is None or ctx.platform is None:
            return ctx.completed_without_fragment(self.name)
        text = guideline.render(ctx.platform)
        return ctx.with_fragment(self.name, text, platform_guidelines=text)


class TemplateProductStage(ContextStage):
    """Insertion directives for the chosen template and/or products."""

    name = "template_product"

    async def build(self, ctx: GenerationContext) -> GenerationContext:
        has_images = bool(ctx.uploaded_images) or any(p.image_url for p in ctx.products)
        sections: list[str] = []
        if ctx.template is not None:
            if ctx.template_mode == "exact_insert":
                sections.append(_exact_insert_directive(ctx.template, has_images))
            else:
                sections.append(_inspiration_directive(ctx.template, has_images))
        if ctx.products:
            sections.append(_product_directive(ctx.products))
        if ctx.uploaded_images:
            described = [image.description for image in ctx.uploaded_images if image.description]
            line = f"REFERENCE IMAGES: {len(ctx.uploaded_images)} provided"
            if described:
                line += " (" + "; ".join(described) + ")"
            sections.append(line)
        if not sections:
            return ctx.completed_without_fragment(self.name)
        return ctx.with_fragment(self.name, "\n\n".join(sections))


def _exact_insert_directive(template: TemplateBlueprint, has_images: bool) -> str:
    placement = json.dumps(template.placement_hints or {}, sort_keys=True)
    if has_images:
        return (
            "TEMPLATE INSERTION (exact):\n"
            f"Template Scene: {template.blueprint}\n"
            "- Product must be clearly visible and recognizable as the main subject\n"
            "- Product lighting must match the template scene's lighting exactly\n"
            f"- Follow the template's placement hints: {placement}\n"
            f"- Scene environment must match: {template.environment or 'as described'}\n"
            f"- Overall mood must match: {template.mood or 'as described'}\n"
            "- Product must look naturally integrated, not pasted on\n"
            "- Do not add text or watermarks"
        )
    return (
        "TEMPLATE INSERTION (exact):\n"
        f"Template Scene: {template.blueprint}\n"
        f"- Match lighting style: {template.lighting_style or 'as described in template'}\n"
        f"- Match environment: {template.environment or 'as described'}\n"
        f"- Match mood: {template.mood or 'as described'}\n"
        "- Do not add text or watermarks"
    )


def _inspiration_directive(template: TemplateBlueprint, has_images: bool) -> str:
    subject = "Keep the product as the hero and create a new unique scene" if has_images else (
        "Create a unique scene"
    )
    return (
        "TEMPLATE INSPIRATION:\n"
        f"- Category: {template.category}\n"
        f"- Mood: {template.mood or 'not specified'}\n"
        f"- Lighting Style: {template.lighting_style or 'not specified'}\n"
        f"- Environment: {template.environment or 'not specified'}\n"
        f"- General Vibe: {template.blueprint[:200]}\n"
        f"- {subject}; capture the template's aesthetic without copying it\n"
        "- Do not add text or watermarks"
    )


def _product_directive(products: Sequence[ProductRef]) -> str:
    lines = ["PRODUCT CONTEXT:"]
    for product in products:
        line = f"- {product.name}"
        if product.category:
            line += f" ({product.category})"
        if product.description:
            line += f": {product.description[:MAX_PRODUCT_DESCRIPTION_CHARS]}"
        lines.append(line)
        if product.benefits:
            lines.append(f"  Benefits: {', '.join(product.benefits[:5])}")
    if len(products) > 1:
        lines.append("Arrange all products in one cohesive scene; keep each clearly recognizable.")
    else:
        lines.append("Keep the product as the hero and clearly recognizable.")
    return "\n".join(lines)


def default_stages(sources: ContextSources) -> list[ContextStage]:
    """Stages in their fixed order."""
    return [
        BrandProfileStage(sources),
        BrandDNAStage(sources),
        LearnedPatternStage(sources),
        StyleReferenceStage(sources),
        PlatformGuidelineStage(sources),
        TemplateProductStage(sources),
    ]
