"""Immutable generation context threaded through the assembly stages."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True, slots=True)
class PromptFragment:
    """One stage's contribution to the final prompt."""

    stage: str
    text: str


@dataclass(frozen=True, slots=True)
class ProductRef:
    id: str
    name: str
    category: str | None = None
    description: str | None = None
    image_url: str | None = None
    benefits: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TemplateBlueprint:
    id: str
    title: str
    category: str
    blueprint: str
    placement_hints: dict[str, Any] | None = None
    lighting_style: str | None = None
    environment: str | None = None
    mood: str | None = None


@dataclass(frozen=True, slots=True)
class BrandSnapshot:
    name: str
    industry: str | None = None
    styles: tuple[str, ...] = ()
    values: tuple[str, ...] = ()
    colors: tuple[str, ...] = ()
    voice_principles: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StyleRef:
    id: str
    name: str
    category: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ImageDescriptor:
    storage_key: str
    mime_type: str
    description: str | None = None


@dataclass(frozen=True)
class GenerationContext:
    """Per-request accumulator.

    Fragments are append-only: `with_fragment` returns a new context whose
    fragment tuple extends the previous one. No stage can reach back and edit
    an earlier fragment.
    """

    user_id: str
    instruction: str
    media_type: str
    products: tuple[ProductRef, ...] = ()
    uploaded_images: tuple[ImageDescriptor, ...] = ()
    template: TemplateBlueprint | None = None
    template_mode: str = "inspiration"
    platform: str | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    fragments: tuple[PromptFragment, ...] = ()
    brand_context: str = ""
    brand_dna_insight: str = ""
    pattern_directives: str = ""
    applied_pattern_ids: tuple[str, ...] = ()
    style_directives: str = ""
    platform_guidelines: str = ""
    stages_completed: tuple[str, ...] = ()
    stages_skipped: tuple[str, ...] = ()
    style_reference_ids: tuple[str, ...] = ()
    use_learned_patterns: bool = True
    pattern_category: str | None = None
    pattern_industry: str | None = None
    max_patterns: int = 5

    def with_fragment(self, stage: str, text: str, **updates: Any) -> GenerationContext:
        """Append one fragment and mark `stage` completed."""
        return replace(
            self,
            fragments=(*self.fragments, PromptFragment(stage=stage, text=text)),
            stages_completed=(*self.stages_completed, stage),
            **updates,
        )

    def completed_without_fragment(self, stage: str) -> GenerationContext:
        return replace(self, stages_completed=(*self.stages_completed, stage))

    def skipped(self, stage: str) -> GenerationContext:
        return replace(self, stages_skipped=(*self.stages_skipped, stage))

    def render_prompt(self) -> str:
        return "\n\n".join(fragment.text for fragment in self.fragments if fragment.text)

    @property
    def primary_product(self) -> ProductRef | None:
        return self.products[0] if self.products else None


@dataclass(frozen=True, slots=True)
class AssembledPrompt:
    """Terminal output of the stage chain."""

    prompt: str
    context: GenerationContext
