"""Brand-DNA insight rendering for generation prompts."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

MAX_RULES_PER_LIST = 8

_VISUAL_FIELDS = (
    ("dominant_colors", "Dominant Colors"),
    ("composition_style", "Composition Style"),
    ("lighting_preference", "Lighting"),
    ("typography", "Typography"),
)
_TONE_FIELDS = (
    ("formality", "Formality"),
    ("humor_level", "Humor"),
    ("technical_depth", "Technical Depth"),
    ("emotional_register", "Emotional Register"),
)


def _lookup(section: Mapping[str, Any], key: str) -> Any:
    # Analyses written by the workflow use camelCase keys.
    if key in section:
        return section[key]
    head, *rest = key.split("_")
    return section.get(head + "".join(part.title() for part in rest))


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def _render_section(
    title: str,
    section: Any,
    fields: tuple[tuple[str, str], ...],
) -> str | None:
    if not isinstance(section, Mapping):
        return None
    parts = [
        f"{label}: {_format_value(value)}"
        for key, label in fields
        if (value := _lookup(section, key))
    ]
    if not parts:
        return None
    return title + ":\n" + "\n".join(f"  - {part}" for part in parts)


def format_brand_dna_context(dna: Any | None) -> str:
    """Render a Brand-DNA row as prompt text; "" when there is nothing to say."""
    if dna is None:
        return ""

    sections: list[str] = []
    visual = _render_section("Visual Signature", getattr(dna, "visual_signature", None), _VISUAL_FIELDS)
    if visual:
        sections.append(visual)
    tone = _render_section("Brand Tone", getattr(dna, "tone_analysis", None), _TONE_FIELDS)
    if tone:
        sections.append(tone)

    rules = getattr(dna, "content_rules", None)
    if isinstance(rules, Mapping):
        rule_parts: list[str] = []
        do_list = _lookup(rules, "do_list")
        dont_list = _lookup(rules, "dont_list")
        if isinstance(do_list, list) and do_list:
            rule_parts.append("DO: " + ", ".join(map(str, do_list[:MAX_RULES_PER_LIST])))
        if isinstance(dont_list, list) and dont_list:
            rule_parts.append("DON'T: " + ", ".join(map(str, dont_list[:MAX_RULES_PER_LIST])))
        if rule_parts:
            sections.append("Content Rules:\n" + "\n".join(f"  - {part}" for part in rule_parts))

    if not sections:
        return ""

    version = getattr(dna, "version", None) or 1
    return (
        f"BRAND DNA INSIGHTS (v{version}):\n"
        + "\n".join(sections)
        + "\n\nApply these brand DNA insights so the result matches the brand's proven patterns."
    )
