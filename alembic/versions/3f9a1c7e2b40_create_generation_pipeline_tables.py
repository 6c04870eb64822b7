"""create generation pipeline and learned pattern tables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c7e2b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "generations",
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("media_type", sa.String(length=10), nullable=False, server_default="image"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("model", sa.String(length=100), nullable=True),
        sa.Column("platform", sa.String(length=20), nullable=True),
        sa.Column("aspect_ratio", sa.String(length=10), nullable=True),
        sa.Column("resolution", sa.String(length=10), nullable=True),
        sa.Column("result_locator", sa.String(length=2000), nullable=True),
        sa.Column("result_text", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("id", sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generations_user_id", "generations", ["user_id"], unique=False)

    op.create_table(
        "generation_jobs",
        sa.Column("generation_id", sa.String(length=32), nullable=False),
        sa.Column("provider_job_id", sa.String(length=512), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="queued"),
        sa.Column("poll_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("poll_interval_seconds", sa.Float(), nullable=False, server_default="10"),
        sa.Column("result_locator", sa.String(length=2000), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("terminal_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("id", sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_generation_jobs_generation_id", "generation_jobs", ["generation_id"], unique=False
    )
    op.create_index("ix_generation_jobs_state", "generation_jobs", ["state"], unique=False)

    op.create_table(
        "generation_performance",
        sa.Column("generation_id", sa.String(length=32), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("engagement_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("clicks", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("conversions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "fetched_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_generation_performance_generation_platform",
        "generation_performance",
        ["generation_id", "platform"],
        unique=False,
    )

    op.create_table(
        "learned_ad_patterns",
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("industry", sa.String(length=100), nullable=True),
        sa.Column("layout_pattern", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("color_psychology", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("hook_patterns", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("visual_elements", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("engagement_tier", sa.String(length=20), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=False, server_default="0.8"),
        sa.Column("source_hash", sa.String(length=64), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("id", sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "source_hash",
            name="uq_learned_ad_patterns_user_source_hash",
        ),
    )
    op.create_index("ix_learned_ad_patterns_user_id", "learned_ad_patterns", ["user_id"], unique=False)
    op.create_index("ix_learned_ad_patterns_category", "learned_ad_patterns", ["category"], unique=False)
    op.create_index("ix_learned_ad_patterns_platform", "learned_ad_patterns", ["platform"], unique=False)
    op.create_index(
        "ix_learned_ad_patterns_user_active",
        "learned_ad_patterns",
        ["user_id", "is_active"],
        unique=False,
    )

    op.create_table(
        "ad_analysis_uploads",
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("original_filename", sa.String(length=512), nullable=True),
        sa.Column("file_size_bytes", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("privacy_scan_result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("extracted_pattern_id", sa.String(length=32), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_duration_ms", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("id", sa.String(length=32), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(
            ["extracted_pattern_id"], ["learned_ad_patterns.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ad_analysis_uploads_user_id", "ad_analysis_uploads", ["user_id"], unique=False)
    op.create_index("ix_ad_analysis_uploads_status", "ad_analysis_uploads", ["status"], unique=False)
    op.create_index(
        "ix_ad_analysis_uploads_expires_at", "ad_analysis_uploads", ["expires_at"], unique=False
    )

    op.create_table(
        "pattern_application_history",
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("pattern_id", sa.String(length=32), nullable=False),
        sa.Column("generation_id", sa.String(length=32), nullable=True),
        sa.Column("product_id", sa.String(length=32), nullable=True),
        sa.Column("target_platform", sa.String(length=50), nullable=True),
        sa.Column("prompt_used", sa.Text(), nullable=True),
        sa.Column("user_rating", sa.Integer(), nullable=True),
        sa.Column("was_used", sa.Boolean(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("feedback_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("id", sa.String(length=32), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pattern_id"], ["learned_ad_patterns.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "pattern_id",
            "generation_id",
            name="uq_pattern_application_history_pattern_generation",
        ),
        sa.CheckConstraint(
            "user_rating IS NULL OR (user_rating BETWEEN 1 AND 5)",
            name="ck_pattern_application_history_rating_range",
        ),
    )
    op.create_index(
        "ix_pattern_application_history_user_pattern",
        "pattern_application_history",
        ["user_id", "pattern_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_pattern_application_history_user_pattern",
        table_name="pattern_application_history",
    )
    op.drop_table("pattern_application_history")

    op.drop_index("ix_ad_analysis_uploads_expires_at", table_name="ad_analysis_uploads")
    op.drop_index("ix_ad_analysis_uploads_status", table_name="ad_analysis_uploads")
    op.drop_index("ix_ad_analysis_uploads_user_id", table_name="ad_analysis_uploads")
    op.drop_table("ad_analysis_uploads")

    op.drop_index("ix_learned_ad_patterns_user_active", table_name="learned_ad_patterns")
    op.drop_index("ix_learned_ad_patterns_platform", table_name="learned_ad_patterns")
    op.drop_index("ix_learned_ad_patterns_category", table_name="learned_ad_patterns")
    op.drop_index("ix_learned_ad_patterns_user_id", table_name="learned_ad_patterns")
    op.drop_table("learned_ad_patterns")

    op.drop_index(
        "ix_generation_performance_generation_platform",
        table_name="generation_performance",
    )
    op.drop_table("generation_performance")

    op.drop_index("ix_generation_jobs_state", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_generation_id", table_name="generation_jobs")
    op.drop_table("generation_jobs")

    op.drop_index("ix_generations_user_id", table_name="generations")
    op.drop_table("generations")
