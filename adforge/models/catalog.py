"""Catalog collaborator models.

These tables are owned by the catalog/brand services; the generation pipeline
only reads them (the social connection's `is_active` flag is the one column
it writes, when a token is reported expired).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from adforge.models.base import Base, StringUUID, TimestampMixin, UUIDMixin


class Product(Base, UUIDMixin, TimestampMixin):
    """Product that can be placed into a generated ad."""

    __tablename__ = "products"

    user_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    features: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    benefits: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)

    def __repr__(self) -> str:
        return f"<Product {self.name}>"


class AdSceneTemplate(Base, UUIDMixin, TimestampMixin):
    """Scene template whose blueprint wraps the product in a composed scene."""

    __tablename__ = "ad_scene_templates"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    preview_image_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    prompt_blueprint: Mapped[str] = mapped_column(Text, nullable=False)
    placement_hints: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    lighting_style: Mapped[str | None] = mapped_column(String(50), nullable=True)
    environment: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mood: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(StringUUID(), nullable=True)

    def __repr__(self) -> str:
        return f"<AdSceneTemplate {self.title}>"


class BrandProfile(Base, UUIDMixin, TimestampMixin):
    """Brand identity and voice for one user."""

    __tablename__ = "brand_profiles"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, unique=True)
    brand_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand_values: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    target_audience: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    preferred_styles: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    color_preferences: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    voice: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<BrandProfile user={self.user_id} name={self.brand_name}>"


class BrandDNA(Base, UUIDMixin, TimestampMixin):
    """Versioned brand analysis derived from past generations and performance."""

    __tablename__ = "brand_dna"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, unique=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    visual_signature: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    tone_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    content_rules: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class StyleReference(Base, UUIDMixin, TimestampMixin):
    """Reference image with an analyzed style description."""

    __tablename__ = "style_references"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    style_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_elements: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class SocialConnection(Base, UUIDMixin, TimestampMixin):
    """OAuth connection to a social platform account."""

    __tablename__ = "social_connections"

    user_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    # Fernet ciphertext; decrypted only at publish time.
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    platform_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SocialConnection {self.platform} user={self.user_id} active={self.is_active}>"
