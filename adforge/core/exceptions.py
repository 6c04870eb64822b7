"""Custom exception classes for the application.

Generation failures carry a taxonomy `kind` so callers can pick user messaging
and retry UX without inspecting provider responses.
"""

from typing import Any

ERROR_KIND_TRANSIENT = "transient"
ERROR_KIND_QUOTA = "quota"
ERROR_KIND_POLICY_VIOLATION = "policy_violation"
ERROR_KIND_AUTH = "auth"
ERROR_KIND_PERMANENT_UNKNOWN = "permanent_unknown"


class AdForgeError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Context assembly
class ContextError(AdForgeError):
    """Generation request has no usable subject (product/template)."""

    def __init__(self, message: str, *, reference: str | None = None) -> None:
        details = {"reference": reference} if reference else {}
        super().__init__(message, details)


# Generation dispatch
class GenerationError(AdForgeError):
    """Base class for dispatch failures with a taxonomy tag."""

    kind: str = ERROR_KIND_PERMANENT_UNKNOWN
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status_code: int | None = None,
        attempts: int = 0,
    ) -> None:
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(
            message,
            {"kind": self.kind, "status_code": status_code, "attempts": attempts},
        )


class QuotaExceeded(GenerationError):
    """User exhausted the generation budget for the current window."""

    kind = ERROR_KIND_QUOTA

    def __init__(self, user_id: str, *, tier: str, limit: int) -> None:
        self.user_id = user_id
        self.tier = tier
        self.limit = limit
        super().__init__(f"Generation quota exceeded for tier {tier} (limit {limit})")


class GenerationTransient(GenerationError):
    """Transient failure that survived every retry attempt."""

    kind = ERROR_KIND_TRANSIENT
    retryable = True


class GenerationPermanent(GenerationError):
    """Auth, policy or malformed-request failure; never retried."""


# Async jobs
class JobError(AdForgeError):
    """Base class for generation job errors."""

    pass


class JobNotFoundError(JobError):
    """Generation job not found."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Generation job not found: {job_id}")


class JobTimeout(JobError):
    """Job exceeded its wall-clock budget."""

    def __init__(self, job_id: str, timeout_seconds: float) -> None:
        super().__init__(f"Generation job {job_id} timed out after {timeout_seconds:.0f}s")


class JobFailed(JobError):
    """Provider reported the job as failed."""

    def __init__(self, job_id: str, reason: str | None = None) -> None:
        super().__init__(f"Generation job {job_id} failed: {reason or 'unknown error'}")


# Publishing
class PublishError(AdForgeError):
    """Publishing failed with a platform error code."""

    def __init__(self, error_code: str, message: str, *, is_retryable: bool) -> None:
        self.error_code = error_code
        self.is_retryable = is_retryable
        super().__init__(message, {"error_code": error_code, "is_retryable": is_retryable})


# Webhooks
class WebhookValidationError(AdForgeError):
    """Inbound webhook rejected; no state was changed."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        self.reason = reason
        super().__init__(f"Webhook rejected: {reason}", details)


class WebhookSignatureError(WebhookValidationError):
    """Webhook signature missing, stale or invalid."""

    def __init__(self, reason: str = "invalid_signature") -> None:
        super().__init__(reason)


class GenerationNotFoundError(AdForgeError):
    """Generation not found."""

    def __init__(self, generation_id: str) -> None:
        self.generation_id = generation_id
        super().__init__(f"Generation not found: {generation_id}")


# Pattern library
class PatternNotFoundError(AdForgeError):
    """Learned pattern not found."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Learned pattern not found: {pattern_id}")


class UploadRejectedError(AdForgeError):
    """Uploaded reference ad failed intake checks."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        self.reason = reason
        super().__init__(f"Upload rejected: {reason}", details)


# External API Errors
class ExternalAPIError(AdForgeError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        super().__init__(f"{api_name} API error: {message}")


class APIKeyMissingError(ExternalAPIError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")
