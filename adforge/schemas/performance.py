"""Performance webhook schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PerformancePlatform = Literal[
    "linkedin",
    "facebook",
    "instagram",
    "twitter",
    "tiktok",
    "youtube",
    "pinterest",
]

MAX_IMPRESSIONS = 10_000_000_000


class PerformanceWebhookPayload(BaseModel):
    """Engagement metrics for one published generation.

    Accepts both camelCase (as sent by the automation workflow) and
    snake_case keys. Missing metrics default to zero.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    generation_id: str = Field(alias="generationId", min_length=1, max_length=64)
    platform: PerformancePlatform
    impressions: int = Field(default=0, ge=0, le=MAX_IMPRESSIONS)
    engagement_rate: float = Field(default=0.0, alias="engagementRate", ge=0.0, le=100.0)
    clicks: int = Field(default=0, ge=0, le=MAX_IMPRESSIONS)
    conversions: int = Field(default=0, ge=0, le=MAX_IMPRESSIONS)


class WebhookAck(BaseModel):
    """Acknowledgement returned for an accepted webhook delivery."""

    received: bool = True
    record_id: str
    generation_id: str
    pattern_ids: list[str] = Field(default_factory=list)
    fetched_at: datetime | None = None


class PerformanceRecord(BaseModel):
    """One stored engagement snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    generation_id: str
    platform: str
    impressions: int
    engagement_rate: float
    clicks: int
    conversions: int
    fetched_at: datetime | None = None
