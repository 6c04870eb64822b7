"""Publish a completed generation to a connected social account."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any, Protocol

from adforge.core.exceptions import GenerationNotFoundError, PublishError
from adforge.core.field_encryption import TokenDecryptionError, decrypt_token
from adforge.integrations.linkedin import LinkedInPublisher
from adforge.integrations.social_publishing import PublishParams
from adforge.integrations.twitter import TwitterPublisher
from adforge.models.generation import GENERATION_STATUS_COMPLETED
from adforge.repositories.catalog_repository import CatalogRepository
from adforge.repositories.generation_repository import GenerationRepository
from adforge.schemas.publishing import PublishResult

logger = logging.getLogger(__name__)

PublisherFactory = Callable[[], AbstractAsyncContextManager[Any]]

DEFAULT_PUBLISHERS: dict[str, PublisherFactory] = {
    "linkedin": LinkedInPublisher,
    "twitter": TwitterPublisher,
}


class MediaReader(Protocol):
    def read_object_bytes(self, *, object_key: str) -> tuple[bytes, str | None]: ...


class PublishingService:
    """Resolves credentials and media, then hands off to the platform adapter."""

    def __init__(
        self,
        *,
        generations: GenerationRepository | None = None,
        catalog: CatalogRepository | None = None,
        media_store: MediaReader,
        publishers: dict[str, PublisherFactory] | None = None,
    ) -> None:
        self.generations = generations or GenerationRepository()
        self.catalog = catalog or CatalogRepository()
        self.media_store = media_store
        self.publishers = publishers if publishers is not None else dict(DEFAULT_PUBLISHERS)

    async def publish(
        self,
        generation_id: str,
        account_id: str,
        *,
        text: str | None = None,
    ) -> PublishResult:
        """Publish once; platform failures come back as an unsuccessful result.

        Raises for caller errors only: an unknown generation, or one that is not
        a completed image or copy generation.
        """
        generation = await self.generations.get_generation(generation_id)
        if generation is None:
            raise GenerationNotFoundError(generation_id)
        if generation.status != GENERATION_STATUS_COMPLETED:
            raise PublishError(
                "generation_not_ready",
                f"Generation {generation_id} is {generation.status}, not completed",
                is_retryable=False,
            )
        if generation.media_type == "video":
            raise PublishError(
                "unsupported_media",
                "Video generations cannot be published by this adapter",
                is_retryable=False,
            )

        connection = await self.catalog.get_social_connection(account_id)
        if connection is None or not connection.is_active or connection.user_id != generation.user_id:
            return PublishResult.failure(
                "account_disconnected",
                "Social account is not connected",
                is_retryable=False,
            )

        platform = (connection.platform or "").lower()
        factory = self.publishers.get(platform)
        if factory is None:
            return PublishResult.failure(
                "unsupported_platform",
                f"Publishing to {platform or 'unknown platform'} is not supported",
                is_retryable=False,
                platform=platform or None,
            )

        expires_at = connection.token_expires_at
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                await self.catalog.record_connection_result(
                    connection.id,
                    error_message="token_expired",
                    deactivate=True,
                )
                return PublishResult.failure(
                    "token_expired",
                    "Access token expired; reconnect the account",
                    is_retryable=False,
                    platform=platform,
                )

        try:
            access_token = decrypt_token(connection.access_token_encrypted)
        except TokenDecryptionError:
            logger.warning("Stored access token could not be decrypted", extra={"account_id": account_id})
            return PublishResult.failure(
                "invalid_credentials",
                "Stored credentials are invalid; reconnect the account",
                is_retryable=False,
                platform=platform,
            )

        image: bytes | None = None
        image_mime_type: str | None = None
        if generation.media_type == "image" and generation.result_locator:
            try:
                image, image_mime_type = await asyncio.to_thread(
                    self.media_store.read_object_bytes,
                    object_key=generation.result_locator,
                )
            except Exception as exc:
                logger.warning(
                    "Failed to read generated media for publishing",
                    extra={"generation_id": generation_id, "error": str(exc)},
                )
                return PublishResult.failure(
                    "media_upload_failed",
                    "Generated media could not be read",
                    is_retryable=True,
                    platform=platform,
                )

        caption = text if text is not None else (generation.result_text or "")
        params = PublishParams(
            access_token=access_token,
            platform_user_id=connection.platform_user_id or "",
            account_type=connection.account_type,
            caption=caption,
            image=image,
            image_mime_type=image_mime_type,
        )
        async with factory() as publisher:
            result = await publisher.publish(params)

        await self.catalog.record_connection_result(
            connection.id,
            error_message=None if result.success else result.error_code,
            deactivate=result.error_code == "token_expired",
        )
        logger.info(
            "Publish attempt finished",
            extra={
                "generation_id": generation_id,
                "platform": platform,
                "success": result.success,
                "error_code": result.error_code,
                "is_retryable": result.is_retryable,
            },
        )
        return result
