"""Learned pattern schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PatternCategory = Literal[
    "product_showcase",
    "testimonial",
    "comparison",
    "educational",
    "promotional",
    "brand_awareness",
]
PatternPlatform = Literal[
    "linkedin",
    "facebook",
    "instagram",
    "twitter",
    "tiktok",
    "youtube",
    "pinterest",
    "general",
]
EngagementTier = Literal["top-1", "top-5", "top-10", "top-25", "unverified"]


class LayoutPattern(BaseModel):
    """Spatial structure of an ad."""

    model_config = ConfigDict(frozen=True)

    structure: str | None = None
    visual_hierarchy: list[str] | None = None
    whitespace_usage: Literal["minimal", "balanced", "generous"] | None = None
    focal_point_position: str | None = None


class ColorPsychology(BaseModel):
    """Color treatment and the mood it conveys."""

    model_config = ConfigDict(frozen=True)

    dominant_mood: str | None = None
    color_scheme: Literal["monochromatic", "complementary", "analogous", "triadic"] | None = None
    contrast_level: Literal["low", "medium", "high"] | None = None
    emotional_tone: str | None = None


class HookPatterns(BaseModel):
    """Attention hook and persuasion approach."""

    model_config = ConfigDict(frozen=True)

    hook_type: str | None = None
    headline_formula: str | None = None
    cta_style: Literal["soft", "direct", "urgency"] | None = None
    persuasion_technique: str | None = None


class VisualElements(BaseModel):
    """Enum-like visual descriptors; no free text."""

    model_config = ConfigDict(frozen=True)

    image_style: Literal["photography", "illustration", "mixed", "3d-render", "abstract"] | None = None
    human_presence: bool | None = None
    product_visibility: Literal["prominent", "subtle", "none"] | None = None
    iconography: bool | None = None
    background_type: Literal["solid", "gradient", "image", "pattern"] | None = None


class ExtractedPatternData(BaseModel):
    """Structured pattern as produced by the extraction agent."""

    model_config = ConfigDict(frozen=True)

    layout_pattern: LayoutPattern | None = None
    color_psychology: ColorPsychology | None = None
    hook_patterns: HookPatterns | None = None
    visual_elements: VisualElements | None = None


class PatternExtractionOutput(BaseModel):
    """Extraction agent output: pattern plus classification."""

    category: PatternCategory = "product_showcase"
    platform: PatternPlatform = "general"
    industry: str | None = None
    pattern: ExtractedPatternData = Field(default_factory=ExtractedPatternData)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class PrivacyScanReport(BaseModel):
    """Raw privacy observations reported by the vision model."""

    text_density: float = Field(default=0.0, ge=0.0, le=100.0)
    detected_text: list[str] = Field(default_factory=list)
    has_logos: bool = False
    has_faces: bool = False
    face_count: int = 0
    has_contact_info: bool = False


class PrivacyScanResult(BaseModel):
    """Verdict derived from a privacy scan report."""

    text_density: float = 0.0
    detected_brands: list[str] = Field(default_factory=list)
    has_logos: bool = False
    has_faces: bool = False
    has_contact_info: bool = False
    is_safe_to_process: bool = False
    rejection_reason: str | None = None
    warnings: list[str] = Field(default_factory=list)


class PatternUploadRequest(BaseModel):
    """Reference ad upload (image bytes are base64 encoded)."""

    user_id: str = Field(min_length=1)
    filename: str | None = None
    mime_type: str
    image_base64: str = Field(min_length=1)
    name: str | None = Field(default=None, max_length=255)
    category: PatternCategory | None = None
    platform: PatternPlatform | None = None
    industry: str | None = Field(default=None, max_length=100)
    engagement_tier: EngagementTier = "unverified"


class PatternUploadResponse(BaseModel):
    """Result of processing one reference ad upload."""

    upload_id: str
    status: str
    pattern_id: str | None = None
    is_duplicate: bool = False
    error_message: str | None = None
    warnings: list[str] = Field(default_factory=list)


class PatternFeedbackRequest(BaseModel):
    """User rating for the latest application of a pattern."""

    user_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    was_used: bool | None = None
    feedback: str | None = Field(default=None, max_length=2000)


class PatternFeedbackResponse(BaseModel):
    """Application history row the rating was attached to."""

    application_id: str
    pattern_id: str
    generation_id: str | None = None
    user_rating: int
    feedback_at: datetime | None = None


class LearnedPatternSummary(BaseModel):
    """Sanitized pattern as returned to the owning user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category: str
    platform: str
    industry: str | None = None
    engagement_tier: str | None = None
    confidence_score: float
    usage_count: int = 0
    last_used_at: datetime | None = None
    layout_pattern: dict | None = None
    color_psychology: dict | None = None
    hook_patterns: dict | None = None
    visual_elements: dict | None = None
