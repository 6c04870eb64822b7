"""Translate domain errors into HTTP responses, keeping the taxonomy tag."""

from __future__ import annotations

from fastapi import HTTPException, status

from adforge.core.exceptions import (
    ERROR_KIND_AUTH,
    ERROR_KIND_POLICY_VIOLATION,
    ContextError,
    GenerationError,
    QuotaExceeded,
)

_GENERATION_STATUS = {
    ERROR_KIND_POLICY_VIOLATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ERROR_KIND_AUTH: status.HTTP_502_BAD_GATEWAY,
}


def context_http_error(exc: ContextError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"kind": "context", "message": exc.message, **exc.details},
    )


def generation_http_error(exc: GenerationError) -> HTTPException:
    if isinstance(exc, QuotaExceeded):
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
    elif exc.retryable:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = _GENERATION_STATUS.get(exc.kind, status.HTTP_502_BAD_GATEWAY)
    return HTTPException(
        status_code=status_code,
        detail={
            "kind": exc.kind,
            "message": exc.message,
            "retryable": exc.retryable,
            "attempts": exc.attempts,
        },
    )


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
