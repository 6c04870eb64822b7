"""Unit tests for learned pattern redaction and prompt formatting."""

from __future__ import annotations

import re
from types import SimpleNamespace

import pytest

from adforge.schemas.patterns import (
    ColorPsychology,
    ExtractedPatternData,
    HookPatterns,
    LayoutPattern,
    VisualElements,
)
from adforge.services.pattern_sanitizer import (
    CURRENCY_DETECTORS,
    MAX_PROMPT_PATTERNS,
    PERCENTAGE_DETECTORS,
    PROMPT_HEADER,
    REDACTION_SENTINEL,
    format_for_prompt,
    is_likely_ad_copy,
    sanitize,
)

COPY_SAMPLES = [
    "Save $20 on every order",
    "Only 19.99 USD this week",
    "Get 50% off everything",
    "Now 30 percent cheaper",
    "€5 shipping",
    "Prices from 99€",
]


def _pattern_with_copy(text: str) -> ExtractedPatternData:
    return ExtractedPatternData(
        layout_pattern=LayoutPattern(
            structure=text,
            visual_hierarchy=["headline", text, "cta button"],
            whitespace_usage="balanced",
            focal_point_position=text,
        ),
        color_psychology=ColorPsychology(
            dominant_mood=text,
            color_scheme="complementary",
            contrast_level="high",
            emotional_tone=text,
        ),
        hook_patterns=HookPatterns(
            hook_type=text,
            headline_formula=text,
            cta_style="direct",
            persuasion_technique=text,
        ),
        visual_elements=VisualElements(image_style="photography", human_presence=False),
    )


def _assert_no_currency_or_percentage(text: str) -> None:
    for detector in (*CURRENCY_DETECTORS, *PERCENTAGE_DETECTORS):
        assert detector.search(text) is None, detector.pattern


@pytest.mark.parametrize("copy_text", COPY_SAMPLES)
def test_sanitize_removes_currency_and_percentage_matches(copy_text: str) -> None:
    sanitized = sanitize(_pattern_with_copy(copy_text))

    _assert_no_currency_or_percentage(sanitized.model_dump_json())
    assert sanitized.hook_patterns is not None
    assert sanitized.hook_patterns.headline_formula == REDACTION_SENTINEL
    assert sanitized.layout_pattern is not None
    assert sanitized.layout_pattern.visual_hierarchy == ["headline", REDACTION_SENTINEL, "cta button"]


def test_sanitize_keeps_structural_descriptions() -> None:
    pattern = ExtractedPatternData(
        layout_pattern=LayoutPattern(structure="Z-pattern with 60/40 split", whitespace_usage="generous"),
        hook_patterns=HookPatterns(hook_type="question", headline_formula="problem then promise"),
    )

    assert sanitize(pattern) == pattern


@pytest.mark.parametrize(
    "text",
    ["Limited time offer", "BUY ONE GET ONE", "Amazing deal!", '"Best coffee in town"', "Shop now"],
)
def test_is_likely_ad_copy_flags_urgency_shouting_and_quotes(text: str) -> None:
    assert is_likely_ad_copy(text) is True


@pytest.mark.parametrize("text", [None, "", "bold hero image", "left aligned product shot", "CTA bottom"])
def test_is_likely_ad_copy_allows_structural_text(text: str | None) -> None:
    assert is_likely_ad_copy(text) is False


def test_format_for_prompt_empty_returns_empty_string() -> None:
    assert format_for_prompt([]) == ""


def test_format_for_prompt_single_pattern_has_one_entry_without_raw_text() -> None:
    raw_copy = "Save 50% today only"
    record = SimpleNamespace(
        id="pat_1",
        name="Spring sale SAVE 50%",
        category="promotional",
        platform="linkedin",
        engagement_tier="top-5",
        layout_pattern={"structure": raw_copy, "whitespace_usage": "balanced"},
        color_psychology={"dominant_mood": "warm", "contrast_level": "high"},
        hook_patterns={"hook_type": "question", "headline_formula": raw_copy},
        visual_elements={"image_style": "photography", "human_presence": True},
    )

    block = format_for_prompt([record])

    assert block.startswith(PROMPT_HEADER)
    assert len(re.findall(r"^Pattern \d+:", block, flags=re.MULTILINE)) == 1
    assert "Pattern 1: promotional ad for linkedin" in block
    assert raw_copy not in block
    assert record.name not in block
    assert REDACTION_SENTINEL not in block
    assert "Performance: top 5 percentile" in block
    _assert_no_currency_or_percentage(block)


def test_format_for_prompt_caps_number_of_patterns() -> None:
    records = [
        SimpleNamespace(
            category="educational",
            platform="general",
            engagement_tier=None,
            layout_pattern={"structure": "grid"},
            color_psychology=None,
            hook_patterns=None,
            visual_elements=None,
        )
        for _ in range(MAX_PROMPT_PATTERNS + 3)
    ]

    block = format_for_prompt(records)

    assert len(re.findall(r"^Pattern \d+:", block, flags=re.MULTILINE)) == MAX_PROMPT_PATTERNS


def test_format_for_prompt_drops_malformed_sections() -> None:
    record = SimpleNamespace(
        category="testimonial",
        platform="instagram",
        engagement_tier="unverified",
        layout_pattern={"whitespace_usage": "cramped"},
        color_psychology="not a mapping",
        hook_patterns={"hook_type": "social proof"},
        visual_elements=None,
    )

    block = format_for_prompt([record])

    assert "Hook: social proof" in block
    assert "Layout:" not in block
    assert "Performance:" not in block
