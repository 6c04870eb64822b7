"""Read-only lookups against catalog collaborator tables."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adforge.core.database import get_session_context
from adforge.models.catalog import (
    AdSceneTemplate,
    BrandDNA,
    BrandProfile,
    Product,
    SocialConnection,
    StyleReference,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., AbstractAsyncContextManager[AsyncSession]]


class CatalogRepository:
    """Short-lived-session reads of products, templates, brand and connections."""

    def __init__(self, session_factory: SessionFactory = get_session_context) -> None:
        self._session_factory = session_factory

    async def get_products(self, user_id: str, product_ids: Sequence[str]) -> list[Product]:
        if not product_ids:
            return []
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(Product).where(
                    Product.id.in_(list(product_ids)),
                    or_(Product.user_id == user_id, Product.user_id.is_(None)),
                )
            )
            return list(result.scalars().all())

    async def get_template(self, user_id: str, template_id: str) -> AdSceneTemplate | None:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(AdSceneTemplate).where(
                    AdSceneTemplate.id == template_id,
                    or_(AdSceneTemplate.is_global.is_(True), AdSceneTemplate.created_by == user_id),
                )
            )
            return result.scalar_one_or_none()

    async def get_brand_profile(self, user_id: str) -> BrandProfile | None:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(select(BrandProfile).where(BrandProfile.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_brand_dna(self, user_id: str) -> BrandDNA | None:
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(select(BrandDNA).where(BrandDNA.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_style_references(
        self,
        user_id: str,
        reference_ids: Sequence[str],
    ) -> list[StyleReference]:
        if not reference_ids:
            return []
        async with self._session_factory(commit_on_exit=False) as session:
            result = await session.execute(
                select(StyleReference).where(
                    StyleReference.id.in_(list(reference_ids)),
                    StyleReference.user_id == user_id,
                    StyleReference.is_active.is_(True),
                )
            )
            by_id = {reference.id: reference for reference in result.scalars().all()}
        return [by_id[ref_id] for ref_id in reference_ids if ref_id in by_id]

    async def get_social_connection(self, connection_id: str) -> SocialConnection | None:
        async with self._session_factory(commit_on_exit=False) as session:
            return await session.get(SocialConnection, connection_id)

    async def record_connection_result(
        self,
        connection_id: str,
        *,
        error_message: str | None = None,
        deactivate: bool = False,
    ) -> None:
        """Stamp a connection after a publish attempt."""
        now = datetime.now(timezone.utc)
        values: dict[str, object] = {"last_used_at": now}
        if error_message is not None:
            values.update({"last_error_at": now, "last_error_message": error_message})
        if deactivate:
            values["is_active"] = False
        async with self._session_factory() as session:
            await session.execute(
                update(SocialConnection)
                .where(SocialConnection.id == connection_id)
                .values(**values)
            )
        if deactivate:
            logger.warning(
                "Social connection deactivated",
                extra={"connection_id": connection_id, "reason": error_message},
            )
