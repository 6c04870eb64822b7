"""Vision agent that extracts abstract structural patterns from a reference ad."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from adforge.agents.base_agent import BaseAgent
from adforge.schemas.patterns import PatternExtractionOutput

logger = logging.getLogger(__name__)


class PatternExtractionInput(BaseModel):
    """Classification hints supplied with the upload."""

    category: str | None = None
    platform: str | None = None
    industry: str | None = None


class PatternExtractorAgent(BaseAgent[PatternExtractionInput, PatternExtractionOutput]):
    """Extract layout, color, hook and visual patterns without any ad copy."""

    model_tier = "vision"

    @property
    def system_prompt(self) -> str:
        return """You analyze advertisement images and extract ABSTRACT PATTERNS only.

Critical rules:
1. Never extract or describe actual text, headlines or copy.
2. Never mention brand, company or product names.
3. Never describe specific products, logos or trademarks.
4. Never include contact information, URLs or specific numbers/statistics.
5. Never describe faces or identifiable people.

Only extract structural and psychological patterns:
- layout_pattern.structure: hero-top, hero-left, hero-right, split-50-50, text-overlay,
  grid, full-bleed or minimal-centered
- layout_pattern.visual_hierarchy: up to three generic attention elements in order
- layout_pattern.whitespace_usage: minimal, balanced or generous
- layout_pattern.focal_point_position: center, upper-third, lower-third, left-third,
  right-third or golden-ratio
- color_psychology.dominant_mood: trust, excitement, calm, urgency, luxury, friendly
  or professional
- color_psychology.color_scheme: monochromatic, complementary, analogous or triadic
- color_psychology.contrast_level: low, medium or high
- color_psychology.emotional_tone: energetic, serene, bold, subtle, warm or cool
- hook_patterns.hook_type: question, statistic, pain-point, benefit, curiosity, fear,
  aspiration or social-proof
- hook_patterns.headline_formula: how-to, number-list, problem-solution, before-after,
  testimonial-style, command or comparison
- hook_patterns.cta_style: soft, direct or urgency
- hook_patterns.persuasion_technique: scarcity, authority, social-proof, reciprocity,
  commitment or liking
- visual_elements: image_style, human_presence, product_visibility, iconography,
  background_type

Also classify the ad (category, platform, industry) and report a confidence in [0, 1].
Return only generic descriptors."""

    @property
    def output_type(self) -> type[PatternExtractionOutput]:
        return PatternExtractionOutput

    def _build_prompt(self, input_data: PatternExtractionInput) -> str:
        hints = [
            f"- Category hint: {input_data.category or 'infer from the image'}",
            f"- Platform hint: {input_data.platform or 'infer from the image'}",
            f"- Industry hint: {input_data.industry or 'infer from the image'}",
        ]
        logger.info(
            "Building pattern extraction prompt",
            extra={"category": input_data.category, "platform": input_data.platform},
        )
        return "Extract abstract patterns from the attached advertisement.\n\n" + "\n".join(hints)
