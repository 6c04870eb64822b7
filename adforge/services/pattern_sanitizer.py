"""Redaction of literal ad copy from learned patterns and prompt formatting.

A learned pattern describes *how* a winning ad was built, never *what it
said*. Free-text leaves that look like copy (prices, percentages, urgency
phrases, shouted text) are replaced wholesale with a sentinel; partial
redaction would leak the words around the match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from adforge.schemas.patterns import (
    ColorPsychology,
    ExtractedPatternData,
    HookPatterns,
    LayoutPattern,
    VisualElements,
)

logger = logging.getLogger(__name__)

REDACTION_SENTINEL = "[content redacted - pattern only]"
MAX_PROMPT_PATTERNS = 5
MAX_FIELD_CHARS = 120
PROMPT_HEADER = "LEARNED SUCCESS PATTERNS FROM HIGH-PERFORMING ADS:"

CURRENCY_DETECTORS = (
    re.compile(r"[$€£¥]\s?\d"),
    re.compile(r"\d\s?[$€£¥]"),
    re.compile(r"\b\d+(?:[.,]\d+)?\s?(?:usd|eur|gbp|dollars?|euros?|bucks)\b", re.IGNORECASE),
)
PERCENTAGE_DETECTORS = (
    re.compile(r"\d\s?%"),
    re.compile(r"\b\d+(?:\.\d+)?\s?(?:percent|pct)\b", re.IGNORECASE),
)
URGENCY_PHRASES = (
    "today only",
    "limited time",
    "act now",
    "while supplies last",
    "last chance",
    "ends tonight",
    "ends soon",
    "don't miss",
    "dont miss",
    "order now",
    "buy now",
    "shop now",
    "hurry",
    "free shipping",
)
_URGENCY_DETECTOR = re.compile(
    r"\b(?:" + "|".join(re.escape(phrase) for phrase in URGENCY_PHRASES) + r")\b",
    re.IGNORECASE,
)
_SHOUTING_DETECTOR = re.compile(r"\b[A-Z]{2,}(?:[\s\-]+[A-Z]{2,})+\b")
_QUOTED_COPY_DETECTOR = re.compile(r"[\"“”][^\"“”]{2,}[\"“”]")

TIER_PHRASES = {
    "top-1": "top 1 percentile",
    "top-5": "top 5 percentile",
    "top-10": "top 10 percentile",
    "top-25": "top 25 percentile",
}


def is_likely_ad_copy(text: str | None) -> bool:
    """Return True when free text looks like literal ad copy."""
    if not text:
        return False
    if any(detector.search(text) for detector in CURRENCY_DETECTORS):
        return True
    if any(detector.search(text) for detector in PERCENTAGE_DETECTORS):
        return True
    if _URGENCY_DETECTOR.search(text):
        return True
    if "!" in text:
        return True
    if _SHOUTING_DETECTOR.search(text):
        return True
    return bool(_QUOTED_COPY_DETECTOR.search(text))


def _scrub(text: str | None) -> str | None:
    if text is None or not text.strip():
        return text
    if is_likely_ad_copy(text):
        return REDACTION_SENTINEL
    return text


def sanitize(pattern: ExtractedPatternData) -> ExtractedPatternData:
    """Return a copy of `pattern` with every copy-like free-text leaf redacted.

    Enum-like and boolean leaves carry no literal copy and pass through.
    """
    layout = pattern.layout_pattern
    color = pattern.color_psychology
    hook = pattern.hook_patterns

    sanitized = ExtractedPatternData(
        layout_pattern=(
            layout.model_copy(
                update={
                    "structure": _scrub(layout.structure),
                    "visual_hierarchy": (
                        [_scrub(item) for item in layout.visual_hierarchy if item]
                        if layout.visual_hierarchy is not None
                        else None
                    ),
                    "focal_point_position": _scrub(layout.focal_point_position),
                }
            )
            if layout is not None
            else None
        ),
        color_psychology=(
            color.model_copy(
                update={
                    "dominant_mood": _scrub(color.dominant_mood),
                    "emotional_tone": _scrub(color.emotional_tone),
                }
            )
            if color is not None
            else None
        ),
        hook_patterns=(
            hook.model_copy(
                update={
                    "hook_type": _scrub(hook.hook_type),
                    "headline_formula": _scrub(hook.headline_formula),
                    "persuasion_technique": _scrub(hook.persuasion_technique),
                }
            )
            if hook is not None
            else None
        ),
        visual_elements=pattern.visual_elements,
    )
    if sanitized != pattern:
        logger.info("Redacted ad copy from extracted pattern")
    return sanitized


def pattern_data_from_record(record: Any) -> ExtractedPatternData:
    """Rebuild structured pattern data from a stored pattern row."""

    def _section(value: Any, model: type) -> Any:
        if not isinstance(value, Mapping):
            return None
        known = {key: val for key, val in value.items() if key in model.model_fields}
        try:
            return model.model_validate(known)
        except ValueError:
            logger.warning(
                "Dropping malformed pattern section",
                extra={"section": model.__name__, "pattern_id": getattr(record, "id", None)},
            )
            return None

    return ExtractedPatternData(
        layout_pattern=_section(getattr(record, "layout_pattern", None), LayoutPattern),
        color_psychology=_section(getattr(record, "color_psychology", None), ColorPsychology),
        hook_patterns=_section(getattr(record, "hook_patterns", None), HookPatterns),
        visual_elements=_section(getattr(record, "visual_elements", None), VisualElements),
    )


def _clip(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= MAX_FIELD_CHARS:
        return text
    return text[: MAX_FIELD_CHARS - 3].rstrip() + "..."


def _label(value: str | None) -> str:
    return (value or "general").replace("_", " ")


def _pattern_lines(data: ExtractedPatternData) -> list[str]:
    lines: list[str] = []
    layout = data.layout_pattern
    if layout is not None:
        parts = [
            part
            for part in (
                layout.structure,
                f"{layout.whitespace_usage} whitespace" if layout.whitespace_usage else None,
                f"focal point {layout.focal_point_position}" if layout.focal_point_position else None,
            )
            if part and part != REDACTION_SENTINEL
        ]
        if parts:
            lines.append(f"Layout: {_clip(', '.join(parts))}")
        hierarchy = [
            item for item in (layout.visual_hierarchy or []) if item and item != REDACTION_SENTINEL
        ]
        if hierarchy:
            lines.append(f"Visual hierarchy: {_clip(' > '.join(hierarchy))}")

    color = data.color_psychology
    if color is not None:
        parts = [
            part
            for part in (
                color.dominant_mood,
                f"{color.color_scheme} scheme" if color.color_scheme else None,
                f"{color.contrast_level} contrast" if color.contrast_level else None,
                color.emotional_tone,
            )
            if part and part != REDACTION_SENTINEL
        ]
        if parts:
            lines.append(f"Color mood: {_clip(', '.join(parts))}")

    hook = data.hook_patterns
    if hook is not None:
        parts = [
            part
            for part in (
                hook.hook_type,
                hook.headline_formula,
                f"{hook.cta_style} CTA" if hook.cta_style else None,
                hook.persuasion_technique,
            )
            if part and part != REDACTION_SENTINEL
        ]
        if parts:
            lines.append(f"Hook: {_clip(', '.join(parts))}")

    visual = data.visual_elements
    if visual is not None:
        presence = None
        if visual.human_presence is not None:
            presence = "people present" if visual.human_presence else "no people"
        parts = [
            part
            for part in (
                visual.image_style,
                presence,
                f"{visual.product_visibility} product" if visual.product_visibility else None,
                "icons" if visual.iconography else None,
                f"{visual.background_type} background" if visual.background_type else None,
            )
            if part
        ]
        if parts:
            lines.append(f"Visuals: {_clip(', '.join(parts))}")
    return lines


def format_for_prompt(patterns: Iterable[Any]) -> str:
    """Render learned patterns as a bounded, numbered prompt block.

    Returns "" for no patterns. Every field is re-sanitized here, so rows
    written before a detector change still cannot leak copy into prompts.
    Pattern names (user free text) and numeric engagement data are never
    emitted; only the tier phrase is.
    """
    selected = list(patterns)[:MAX_PROMPT_PATTERNS]
    if not selected:
        return ""

    blocks: list[str] = []
    for index, record in enumerate(selected, start=1):
        data = sanitize(pattern_data_from_record(record))
        header = (
            f"Pattern {index}: {_label(getattr(record, 'category', None))} ad "
            f"for {_label(getattr(record, 'platform', None))}"
        )
        lines = [header, *(f"  - {line}" for line in _pattern_lines(data))]
        tier_phrase = TIER_PHRASES.get(getattr(record, "engagement_tier", None) or "")
        if tier_phrase:
            lines.append(f"  - Performance: {tier_phrase}")
        blocks.append("\n".join(lines))

    return f"{PROMPT_HEADER}\n\n" + "\n\n".join(blocks)
