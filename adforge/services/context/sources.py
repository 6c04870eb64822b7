"""Repository-backed lookups for the context stages."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from adforge.models.catalog import AdSceneTemplate, BrandProfile, Product, StyleReference
from adforge.repositories.catalog_repository import CatalogRepository
from adforge.services.context.context import BrandSnapshot, ProductRef, StyleRef, TemplateBlueprint
from adforge.services.pattern_library import PatternLibrary


def product_ref(product: Product) -> ProductRef:
    return ProductRef(
        id=str(product.id),
        name=product.name,
        category=product.category,
        description=product.description,
        image_url=product.image_url,
        benefits=tuple(product.benefits or ()),
    )


def template_blueprint(template: AdSceneTemplate) -> TemplateBlueprint:
    return TemplateBlueprint(
        id=str(template.id),
        title=template.title,
        category=template.category,
        blueprint=template.prompt_blueprint,
        placement_hints=template.placement_hints,
        lighting_style=template.lighting_style,
        environment=template.environment,
        mood=template.mood,
    )


def brand_snapshot(profile: BrandProfile) -> BrandSnapshot:
    voice = profile.voice or {}
    principles = voice.get("principles") or voice.get("voice_principles") or []
    if isinstance(principles, str):
        principles = [principles]
    return BrandSnapshot(
        name=profile.brand_name or "Brand",
        industry=profile.industry,
        styles=tuple(profile.preferred_styles or ()),
        values=tuple(profile.brand_values or ()),
        colors=tuple(profile.color_preferences or ()),
        voice_principles=tuple(str(item) for item in principles),
    )


def style_ref(reference: StyleReference) -> StyleRef:
    return StyleRef(
        id=str(reference.id),
        name=reference.name,
        category=reference.category,
        description=reference.style_description,
    )


class CatalogContextSources:
    """`ContextSources` over the catalog repository and the pattern library."""

    def __init__(self, catalog: CatalogRepository, patterns: PatternLibrary) -> None:
        self.catalog = catalog
        self.patterns = patterns

    async def get_products(self, user_id: str, product_ids: Sequence[str]) -> list[ProductRef]:
        return [product_ref(row) for row in await self.catalog.get_products(user_id, product_ids)]

    async def get_template(self, user_id: str, template_id: str) -> TemplateBlueprint | None:
        row = await self.catalog.get_template(user_id, template_id)
        return template_blueprint(row) if row is not None else None

    async def get_brand_profile(self, user_id: str) -> BrandSnapshot | None:
        row = await self.catalog.get_brand_profile(user_id)
        return brand_snapshot(row) if row is not None else None

    async def get_brand_dna(self, user_id: str) -> Any | None:
        return await self.catalog.get_brand_dna(user_id)

    async def get_relevant_patterns(
        self,
        user_id: str,
        *,
        category: str | None,
        platform: str | None,
        industry: str | None,
        limit: int,
    ) -> list[Any]:
        return await self.patterns.get_relevant_patterns(
            user_id,
            category=category,
            platform=platform,
            industry=industry,
            limit=limit,
        )

    async def get_style_references(
        self,
        user_id: str,
        reference_ids: Sequence[str],
    ) -> list[StyleRef]:
        rows = await self.catalog.get_style_references(user_id, reference_ids)
        return [style_ref(row) for row in rows]
