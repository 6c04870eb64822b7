"""Shared pieces of the social platform publishers.

Every publisher returns a `PublishResult` whose `error_code` comes from the
closed `PublishErrorCode` set; retryability is a function of the code alone.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from adforge.schemas.publishing import PublishErrorCode, PublishResult

RETRYABLE_ERROR_CODES = frozenset(
    {"rate_limited", "platform_error", "media_upload_failed", "network_error"}
)


class MediaUploadError(RuntimeError):
    """A step of a platform media upload failed."""


@dataclass(frozen=True, slots=True)
class PublishParams:
    access_token: str
    platform_user_id: str
    caption: str
    account_type: str | None = None
    image: bytes | None = None
    image_mime_type: str | None = None


def is_retryable(error_code: str) -> bool:
    return error_code in RETRYABLE_ERROR_CODES


def classify_transport_error(exc: Exception) -> PublishErrorCode:
    """Request-level failures: timeouts are final unless the network itself failed."""
    if isinstance(exc, httpx.ConnectTimeout):
        return "network_error"
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return "timeout"
    if isinstance(exc, httpx.NetworkError):
        return "network_error"
    return "unknown"


def failure(platform: str, code: PublishErrorCode, message: str) -> PublishResult:
    return PublishResult.failure(code, message, is_retryable=is_retryable(code), platform=platform)


async def send_with_deadline(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    deadline_seconds: float,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request that must finish, body included, within the deadline.

    httpx timeouts bound each phase separately; this bounds the whole call
    and raises `TimeoutError` when it expires.
    """
    async with asyncio.timeout(deadline_seconds):
        return await client.request(method, url, **kwargs)


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
