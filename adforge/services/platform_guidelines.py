"""Closed table of per-platform creative guidelines."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PlatformGuideline:
    """Composition bias for one platform."""

    platform: str
    aspect_ratio: str
    video_aspect_ratio: str
    tone: str
    text_density: str
    summary: str

    def render(self, label: str) -> str:
        return (
            f"PLATFORM GUIDELINES ({label.upper()}):\n"
            f"{self.summary}\n"
            f"- Preferred aspect ratio: {self.aspect_ratio}\n"
            f"- Tone: {self.tone}\n"
            f"- Text density: {self.text_density}\n\n"
            f"Optimize the composition and style for {label} best practices."
        )


_TWITTER = PlatformGuideline(
    platform="twitter",
    aspect_ratio="16:9",
    video_aspect_ratio="16:9",
    tone="clean, conversational",
    text_density="minimal",
    summary=(
        "Horizontal (16:9), clean composition, minimal text, works well cropped, "
        "stands out in timeline"
    ),
)

PLATFORM_GUIDELINES: dict[str, PlatformGuideline] = {
    "instagram": PlatformGuideline(
        platform="instagram",
        aspect_ratio="4:5",
        video_aspect_ratio="9:16",
        tone="vibrant, lifestyle-focused",
        text_density="low",
        summary=(
            "Square (1:1) or vertical (4:5), vibrant colors, lifestyle-focused, "
            "clean composition, high visual impact"
        ),
    ),
    "linkedin": PlatformGuideline(
        platform="linkedin",
        aspect_ratio="1.91:1",
        video_aspect_ratio="16:9",
        tone="professional, business-appropriate",
        text_density="minimal",
        summary=(
            "Horizontal (1.91:1), professional tone, data-driven visuals, "
            "minimal text overlay, business-appropriate"
        ),
    ),
    "tiktok": PlatformGuideline(
        platform="tiktok",
        aspect_ratio="9:16",
        video_aspect_ratio="9:16",
        tone="bold, energetic",
        text_density="high",
        summary=(
            "Vertical (9:16), bold text, high contrast, dynamic composition, "
            "eye-catching in first frame"
        ),
    ),
    "facebook": PlatformGuideline(
        platform="facebook",
        aspect_ratio="1:1",
        video_aspect_ratio="16:9",
        tone="engaging, storytelling",
        text_density="low",
        summary=(
            "Flexible (1.91:1 for ads, 1:1 for posts), engaging, storytelling-focused, "
            "works at small sizes in feed"
        ),
    ),
    "twitter": _TWITTER,
    "twitter/x": _TWITTER,
    "x": _TWITTER,
}


def get_platform_guideline(platform: str | None) -> PlatformGuideline | None:
    """Look up guidelines; unknown or empty platform yields None."""
    if not platform:
        return None
    return PLATFORM_GUIDELINES.get(platform.strip().lower())
