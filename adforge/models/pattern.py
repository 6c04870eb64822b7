"""Learned ad pattern models: patterns, intake uploads and application history."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from adforge.models.base import Base, CreatedAtMixin, StringUUID, TimestampMixin, UUIDMixin

UPLOAD_STATUS_PENDING = "pending"
UPLOAD_STATUS_PROCESSING = "processing"
UPLOAD_STATUS_COMPLETE = "complete"
UPLOAD_STATUS_FAILED = "failed"
UPLOAD_TERMINAL_STATUSES = frozenset({UPLOAD_STATUS_COMPLETE, UPLOAD_STATUS_FAILED})


class LearnedPattern(Base, UUIDMixin, TimestampMixin):
    """Privacy-filtered structural description of a high-performing ad.

    Sub-objects hold enum-like descriptors only. Free-text leaves are passed
    through the pattern sanitizer before they are written.
    """

    __tablename__ = "learned_ad_patterns"
    __table_args__ = (
        UniqueConstraint("user_id", "source_hash", name="uq_learned_ad_patterns_user_source_hash"),
        Index("ix_learned_ad_patterns_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    layout_pattern: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    color_psychology: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    hook_patterns: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    visual_elements: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    engagement_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    source_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<LearnedPattern {self.category}/{self.platform} uses={self.usage_count}>"


class UploadRecord(Base, UUIDMixin, CreatedAtMixin):
    """Ephemeral intake record for a reference ad awaiting pattern extraction."""

    __tablename__ = "ad_analysis_uploads"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    original_filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UPLOAD_STATUS_PENDING,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy_scan_result: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    extracted_pattern_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("learned_ad_patterns.id", ondelete="SET NULL"),
        nullable=True,
    )
    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processing_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processing_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UploadRecord {self.id} status={self.status}>"


class ApplicationHistory(Base, UUIDMixin, CreatedAtMixin):
    """Which pattern was applied to which generation, with the exact prompt."""

    __tablename__ = "pattern_application_history"
    __table_args__ = (
        UniqueConstraint(
            "pattern_id",
            "generation_id",
            name="uq_pattern_application_history_pattern_generation",
        ),
        Index("ix_pattern_application_history_user_pattern", "user_id", "pattern_id"),
        CheckConstraint(
            "user_rating IS NULL OR (user_rating BETWEEN 1 AND 5)",
            name="ck_pattern_application_history_rating_range",
        ),
    )

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False)
    pattern_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("learned_ad_patterns.id", ondelete="CASCADE"),
        nullable=False,
    )
    generation_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("generations.id", ondelete="CASCADE"),
        nullable=True,
    )
    product_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True)
    target_platform: Mapped[str | None] = mapped_column(String(50), nullable=True)
    prompt_used: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    was_used: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    feedback_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
