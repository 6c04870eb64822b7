"""Twitter/X API v2 publisher (text tweets and tweets with one image).

Images up to the chunked-upload threshold go up in a single form post;
larger ones use the INIT / APPEND / FINALIZE command sequence.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any

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

PLATFORM = "twitter"
POST_URL_TEMPLATE = "https://x.com/i/status/{post_id}"
UPLOAD_CHUNK_BYTES = 1024 * 1024
DEFAULT_MEDIA_TYPE = "image/jpeg"


def map_http_error(status_code: int) -> PublishErrorCode:
    if status_code == 401:
        return "token_expired"
    if status_code == 403:
        return "insufficient_permissions"
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "platform_error"
    return "unknown"


def extract_media_id(payload: Any) -> str | None:
    """v2 responses carry ``data.id``; v1.1 responses ``media_id_string``."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data") or {}
    media_id = data.get("id") if isinstance(data, dict) else None
    return media_id or payload.get("media_id_string")


class TwitterPublisher:
    """Async Twitter/X client; use as an async context manager."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        media_upload_url: str | None = None,
        timeout: float | None = None,
        chunked_threshold_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.twitter_api_base_url).rstrip("/")
        self.media_upload_url = media_upload_url or settings.twitter_media_upload_url
        self.timeout = timeout or settings.twitter_request_timeout_seconds
        self.chunked_threshold_bytes = (
            chunked_threshold_bytes
            if chunked_threshold_bytes is not None
            else settings.twitter_chunked_upload_threshold_bytes
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TwitterPublisher:
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

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await send_with_deadline(self.client, method, url, deadline_seconds=self.timeout, **kwargs)

    async def publish(self, params: PublishParams) -> PublishResult:
        started = time.perf_counter()
        logger.info("Publishing to Twitter/X", extra={"has_image": params.image is not None})

        media_id: str | None = None
        if params.image is not None:
            try:
                media_id = await self._upload_image(
                    params.image,
                    params.access_token,
                    params.image_mime_type or DEFAULT_MEDIA_TYPE,
                )
            except (MediaUploadError, httpx.HTTPError, TimeoutError, ValueError) as exc:
                logger.warning("Twitter image upload failed", extra={"error": describe_error(exc)})
                return failure(PLATFORM, "media_upload_failed", f"Image upload failed: {describe_error(exc)}")

        tweet: dict[str, Any] = {"text": params.caption}
        if media_id:
            tweet["media"] = {"media_ids": [media_id]}

        try:
            response = await self._send(
                "POST",
                f"{self.base_url}/tweets",
                headers={
                    "Authorization": f"Bearer {params.access_token}",
                    "Content-Type": "application/json",
                },
                json=tweet,
            )
        except (httpx.HTTPError, TimeoutError) as exc:
            code = classify_transport_error(exc)
            logger.warning(
                "Twitter request failed",
                extra={"error_code": code, "error": describe_error(exc)},
            )
            return failure(PLATFORM, code, f"Twitter request failed: {describe_error(exc)}")

        duration_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 400:
            code = map_http_error(response.status_code)
            logger.warning(
                "Twitter tweet creation failed",
                extra={"status": response.status_code, "error_code": code, "duration_ms": duration_ms},
            )
            return failure(PLATFORM, code, f"Twitter API error {response.status_code}: {response.text[:500]}")

        try:
            tweet_id = ((response.json() or {}).get("data") or {}).get("id")
        except ValueError:
            tweet_id = None
        logger.info(
            "Published to Twitter/X",
            extra={"platform_post_id": tweet_id, "duration_ms": duration_ms},
        )
        return PublishResult(
            success=True,
            platform=PLATFORM,
            platform_post_id=tweet_id,
            platform_post_url=POST_URL_TEMPLATE.format(post_id=tweet_id) if tweet_id else None,
        )

    async def _upload_image(self, image: bytes, access_token: str, mime_type: str) -> str:
        if len(image) > self.chunked_threshold_bytes:
            media_id = await self._upload_chunked(image, access_token, mime_type)
        else:
            response = await self._upload_command(access_token, {"media_data": _b64(image)})
            media_id = extract_media_id(response.json())
            if not media_id:
                raise MediaUploadError("media upload response missing media id")

        logger.info("Twitter image uploaded", extra={"media_id": media_id, "bytes": len(image)})
        return media_id

    async def _upload_chunked(self, image: bytes, access_token: str, mime_type: str) -> str:
        init = await self._upload_command(
            access_token,
            {"command": "INIT", "total_bytes": str(len(image)), "media_type": mime_type},
        )
        media_id = extract_media_id(init.json())
        if not media_id:
            raise MediaUploadError("chunked upload INIT response missing media id")

        for segment_index, offset in enumerate(range(0, len(image), UPLOAD_CHUNK_BYTES)):
            await self._upload_command(
                access_token,
                {
                    "command": "APPEND",
                    "media_id": media_id,
                    "segment_index": str(segment_index),
                    "media_data": _b64(image[offset : offset + UPLOAD_CHUNK_BYTES]),
                },
            )

        await self._upload_command(access_token, {"command": "FINALIZE", "media_id": media_id})
        return media_id

    async def _upload_command(self, access_token: str, form: dict[str, str]) -> httpx.Response:
        response = await self._send(
            "POST",
            self.media_upload_url,
            headers={"Authorization": f"Bearer {access_token}"},
            data=form,
        )
        if response.status_code >= 400:
            step = form.get("command", "upload")
            raise MediaUploadError(f"{step} failed: {response.status_code} {response.text[:200]}")
        return response


def _b64(chunk: bytes) -> str:
    return base64.b64encode(chunk).decode("ascii")
