"""Generation, long-running job and performance snapshot models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from adforge.models.base import Base, StringUUID, TimestampMixin, UUIDMixin

GENERATION_STATUS_PENDING = "pending"
GENERATION_STATUS_PROCESSING = "processing"
GENERATION_STATUS_COMPLETED = "completed"
GENERATION_STATUS_FAILED = "failed"

JOB_STATE_QUEUED = "queued"
JOB_STATE_PROCESSING = "processing"
JOB_STATE_COMPLETE = "complete"
JOB_STATE_FAILED = "failed"
JOB_STATE_TIMEOUT = "timeout"
JOB_STATE_CANCELLED = "cancelled"
JOB_TERMINAL_STATES = frozenset(
    {JOB_STATE_COMPLETE, JOB_STATE_FAILED, JOB_STATE_TIMEOUT, JOB_STATE_CANCELLED}
)


class Generation(Base, UUIDMixin, TimestampMixin):
    """One generated ad artifact (image, copy or video)."""

    __tablename__ = "generations"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    media_type: Mapped[str] = mapped_column(String(10), nullable=False, default="image")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=GENERATION_STATUS_PENDING,
    )
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(20), nullable=True)
    aspect_ratio: Mapped[str | None] = mapped_column(String(10), nullable=True)
    resolution: Mapped[str | None] = mapped_column(String(10), nullable=True)
    result_locator: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    result_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Generation {self.id} {self.media_type} status={self.status}>"


class GenerationJob(Base, UUIDMixin, TimestampMixin):
    """Provider-side long-running job (video) tracked by the job poller."""

    __tablename__ = "generation_jobs"

    generation_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("generations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_job_id: Mapped[str] = mapped_column(String(512), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=JOB_STATE_QUEUED, index=True)
    poll_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    poll_interval_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    result_locator: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    terminal_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<GenerationJob {self.id} state={self.state} polls={self.poll_attempts}>"


class GenerationPerformance(Base, UUIDMixin):
    """Engagement snapshot delivered by the performance webhook (append-only)."""

    __tablename__ = "generation_performance"
    __table_args__ = (
        Index("ix_generation_performance_generation_platform", "generation_id", "platform"),
    )

    generation_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("generations.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    impressions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    engagement_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    clicks: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    conversions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
