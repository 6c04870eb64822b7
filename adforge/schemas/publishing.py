"""Publishing schemas."""

from typing import Literal

from pydantic import BaseModel, Field

PublishErrorCode = Literal[
    "token_expired",
    "insufficient_permissions",
    "content_policy_violation",
    "rate_limited",
    "platform_error",
    "media_upload_failed",
    "timeout",
    "network_error",
    "account_disconnected",
    "invalid_credentials",
    "unsupported_platform",
    "unknown",
]


class PublishRequest(BaseModel):
    """Publish one generation to a connected social account."""

    account_id: str = Field(min_length=1)
    text: str | None = Field(default=None, max_length=3000)


class PublishResult(BaseModel):
    """Outcome of one publish attempt; storage is the caller's concern."""

    success: bool
    platform: str | None = None
    platform_post_id: str | None = None
    platform_post_url: str | None = None
    error_code: PublishErrorCode | None = None
    error_message: str | None = None
    is_retryable: bool = False

    @classmethod
    def failure(
        cls,
        error_code: PublishErrorCode,
        error_message: str,
        *,
        is_retryable: bool,
        platform: str | None = None,
    ) -> "PublishResult":
        return cls(
            success=False,
            platform=platform,
            error_code=error_code,
            error_message=error_message,
            is_retryable=is_retryable,
        )
