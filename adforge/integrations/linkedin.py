"""LinkedIn REST Posts API publisher (text and single-image posts).

Publishing never raises for platform failures: every outcome is returned as
a `PublishResult` from the shared closed error taxonomy.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import quote

import httpx

from adforge.config import settings
from adforge.integrations.social_publishing import (
    MediaUploadError,
    PublishParams,
    classify_transport_error,
    describe_error,
    failure,
    send_with_deadline,
)
from adforge.schemas.publishing import PublishErrorCode, PublishResult

logger = logging.getLogger(__name__)

PLATFORM = "linkedin"
POST_URL_TEMPLATE = "https://www.linkedin.com/feed/update/{post_id}"
RESTLI_PROTOCOL_VERSION = "2.0.0"
ORGANIZATION_ACCOUNT_TYPES = ("business", "organization", "company")


def owner_urn(params: PublishParams) -> str:
    if params.account_type in ORGANIZATION_ACCOUNT_TYPES:
        return f"urn:li:organization:{params.platform_user_id}"
    return f"urn:li:person:{params.platform_user_id}"


def map_http_error(status_code: int, body: str) -> PublishErrorCode:
    """Closed status-to-error-code table."""
    if status_code == 401:
        return "token_expired"
    if status_code == 403:
        return "insufficient_permissions"
    if status_code == 422:
        return "content_policy_violation" if "policy" in body.lower() else "platform_error"
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "platform_error"
    return "unknown"


def extract_post_id(headers: httpx.Headers) -> str | None:
    raw = headers.get("x-restli-id") or headers.get("location") or ""
    post_id = raw.rstrip("/").rsplit("/", 1)[-1]
    return post_id or None


class LinkedInPublisher:
    """Async LinkedIn client; use as an async context manager."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.linkedin_api_base_url).rstrip("/")
        self.api_version = api_version or settings.linkedin_api_version
        self.timeout = timeout or settings.linkedin_request_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LinkedInPublisher:
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    def _api_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "LinkedIn-Version": self.api_version,
            "X-Restli-Protocol-Version": RESTLI_PROTOCOL_VERSION,
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await send_with_deadline(self.client, method, url, deadline_seconds=self.timeout, **kwargs)

    async def publish(self, params: PublishParams) -> PublishResult:
        started = time.perf_counter()
        author = owner_urn(params)
        logger.info(
            "Publishing to LinkedIn",
            extra={"owner_urn": author, "has_image": params.image is not None},
        )

        image_urn: str | None = None
        if params.image is not None:
            try:
                image_urn = await self._upload_image(params.image, params.access_token, author)
            except (MediaUploadError, httpx.HTTPError, TimeoutError) as exc:
                logger.warning("LinkedIn image upload failed", extra={"error": describe_error(exc)})
                return failure(PLATFORM, "media_upload_failed", f"Image upload failed: {describe_error(exc)}")

        post_body: dict[str, Any] = {
            "author": author,
            "commentary": params.caption,
            "visibility": "PUBLIC",
            "distribution": {
                "feedDistribution": "MAIN_FEED",
                "targetEntities": [],
                "thirdPartyDistributionChannels": [],
            },
            "lifecycleState": "PUBLISHED",
        }
        if image_urn:
            post_body["content"] = {"media": {"title": "Image", "id": image_urn}}

        try:
            response = await self._send(
                "POST",
                f"{self.base_url}/posts",
                headers=self._api_headers(params.access_token),
                json=post_body,
            )
        except (httpx.HTTPError, TimeoutError) as exc:
            code = classify_transport_error(exc)
            logger.warning(
                "LinkedIn request failed",
                extra={"error_code": code, "error": describe_error(exc)},
            )
            return failure(PLATFORM, code, f"LinkedIn request failed: {describe_error(exc)}")

        duration_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 400:
            body = response.text
            code = map_http_error(response.status_code, body)
            logger.warning(
                "LinkedIn post creation failed",
                extra={"status": response.status_code, "error_code": code, "duration_ms": duration_ms},
            )
            return failure(PLATFORM, code, f"LinkedIn API error {response.status_code}: {body[:500]}")

        post_id = extract_post_id(response.headers)
        logger.info(
            "Published to LinkedIn",
            extra={"platform_post_id": post_id, "duration_ms": duration_ms},
        )
        return PublishResult(
            success=True,
            platform=PLATFORM,
            platform_post_id=post_id,
            platform_post_url=POST_URL_TEMPLATE.format(post_id=quote(post_id, safe="")) if post_id else None,
        )

    async def _upload_image(self, image: bytes, access_token: str, author: str) -> str:
        init = await self._send(
            "POST",
            f"{self.base_url}/images?action=initializeUpload",
            headers=self._api_headers(access_token),
            json={"initializeUploadRequest": {"owner": author}},
        )
        if init.status_code >= 400:
            raise MediaUploadError(f"upload init failed: {init.status_code} {init.text[:200]}")

        value = (init.json() or {}).get("value") or {}
        upload_url = value.get("uploadUrl")
        image_urn = value.get("image")
        if not upload_url or not image_urn:
            raise MediaUploadError("upload init response missing uploadUrl or image URN")

        put = await self._send(
            "PUT",
            upload_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/octet-stream",
            },
            content=image,
        )
        if put.status_code >= 400:
            raise MediaUploadError(f"binary upload failed: {put.status_code} {put.text[:200]}")

        logger.info("LinkedIn image uploaded", extra={"image_urn": image_urn, "bytes": len(image)})
        return str(image_urn)
