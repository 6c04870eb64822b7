"""Generation request, result and job schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

MediaType = Literal["image", "video", "text"]
TemplateMode = Literal["exact_insert", "inspiration"]
JobStateValue = Literal["queued", "processing", "complete", "failed", "timeout", "cancelled"]

IMAGE_ASPECT_RATIOS = frozenset({"1:1", "4:5", "3:4", "4:3", "9:16", "16:9", "1.91:1", "2:3", "3:2"})
IMAGE_RESOLUTIONS = frozenset({"1K", "2K", "4K"})
VIDEO_ASPECT_RATIOS = frozenset({"16:9", "9:16"})
VIDEO_RESOLUTIONS = frozenset({"720p", "1080p", "4k"})
VIDEO_DURATIONS = frozenset({4, 6, 8})


class UploadedImage(BaseModel):
    """Reference image the caller already stored (product photo, sketch)."""

    storage_key: str = Field(min_length=1)
    mime_type: str = "image/png"
    description: str | None = Field(default=None, max_length=500)


class RawGenerationInput(BaseModel):
    """Inbound generation request before context assembly."""

    user_id: str = Field(min_length=1)
    prompt: str = Field(default="", max_length=4000)
    media_type: MediaType = "image"
    tier: str = "free"
    product_ids: list[str] = Field(default_factory=list, max_length=6)
    template_id: str | None = None
    template_mode: TemplateMode = "inspiration"
    uploaded_images: list[UploadedImage] = Field(default_factory=list, max_length=6)
    platform: str | None = Field(default=None, max_length=20)
    aspect_ratio: str | None = None
    resolution: str | None = None
    duration_seconds: int = 8
    style_reference_ids: list[str] = Field(default_factory=list, max_length=5)
    use_learned_patterns: bool = True
    pattern_category: str | None = None
    pattern_industry: str | None = None
    max_patterns: int = Field(default=5, ge=1, le=10)

    @model_validator(mode="after")
    def _validate_media_parameters(self) -> "RawGenerationInput":
        if self.media_type == "video":
            if self.aspect_ratio is not None and self.aspect_ratio not in VIDEO_ASPECT_RATIOS:
                raise ValueError(f"Unsupported video aspect ratio: {self.aspect_ratio}")
            if self.resolution is not None and self.resolution not in VIDEO_RESOLUTIONS:
                raise ValueError(f"Unsupported video resolution: {self.resolution}")
            if self.duration_seconds not in VIDEO_DURATIONS:
                raise ValueError(f"Unsupported video duration: {self.duration_seconds}s")
        elif self.media_type == "image":
            if self.aspect_ratio is not None and self.aspect_ratio not in IMAGE_ASPECT_RATIOS:
                raise ValueError(f"Unsupported image aspect ratio: {self.aspect_ratio}")
            if self.resolution is not None and self.resolution not in IMAGE_RESOLUTIONS:
                raise ValueError(f"Unsupported image resolution: {self.resolution}")
        return self


class GenerationResult(BaseModel):
    """Synchronous generation outcome (image or copy)."""

    generation_id: str
    media_type: MediaType
    status: str = "completed"
    result_locator: str | None = None
    preview_url: str | None = None
    result_text: str | None = None
    mime_type: str | None = None
    model: str | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    applied_pattern_ids: list[str] = Field(default_factory=list)
    stages_skipped: list[str] = Field(default_factory=list)
    attempts: int = 1


class JobHandle(BaseModel):
    """Handle for a long-running generation that must be polled."""

    job_id: str
    generation_id: str
    state: JobStateValue = "queued"
    poll_interval_seconds: float


class JobStatus(BaseModel):
    """Current state of a tracked generation job."""

    job_id: str
    generation_id: str | None = None
    state: JobStateValue
    result_locator: str | None = None
    error_message: str | None = None
    poll_attempts: int = 0
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in {"complete", "failed", "timeout", "cancelled"}


class SubmitResponse(BaseModel):
    """API envelope: exactly one of `result` or `job` is set."""

    result: GenerationResult | None = None
    job: JobHandle | None = None
