"""Inbound engagement metrics webhook.

Deliveries are signed with HMAC-SHA256 over ``"{timestamp}.{raw_body}"`` and
carry the timestamp and ``sha256=<hex>`` signature in headers. A delivery is
appended as a new performance record; nothing is written when any check fails.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError

from adforge.config import Settings, settings
from adforge.core.exceptions import (
    GenerationNotFoundError,
    WebhookSignatureError,
    WebhookValidationError,
)
from adforge.schemas.performance import PerformanceRecord, PerformanceWebhookPayload, WebhookAck

logger = logging.getLogger(__name__)

TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


class PerformanceStore(Protocol):
    async def generation_exists(self, generation_id: str) -> bool: ...

    async def append_performance(self, **fields: Any) -> Any: ...

    async def list_performance(self, generation_id: str) -> list[Any]: ...


class PatternLookup(Protocol):
    async def pattern_ids_for_generation(self, generation_id: str) -> list[str]: ...


def sign_performance_webhook_payload(*, secret: str, timestamp: str, raw_body: bytes) -> str:
    """Create the signature header value for a webhook body."""
    message = timestamp.encode("utf-8") + b"." + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_performance_webhook_signature(
    *,
    secret: str | None,
    timestamp: str | None,
    raw_body: bytes,
    signature_header: str | None,
    tolerance_seconds: int,
    now: datetime | None = None,
) -> None:
    """Raise `WebhookSignatureError` unless the delivery is signed and fresh."""
    if not secret:
        raise WebhookSignatureError("webhook_secret_not_configured")
    if not timestamp or not signature_header:
        raise WebhookSignatureError("missing_signature")

    try:
        sent_at = int(timestamp)
    except ValueError as exc:
        raise WebhookSignatureError("invalid_timestamp") from exc

    current = int((now or datetime.now(timezone.utc)).timestamp())
    if abs(current - sent_at) > tolerance_seconds:
        raise WebhookSignatureError("stale_timestamp")

    expected = sign_performance_webhook_payload(secret=secret, timestamp=timestamp, raw_body=raw_body)
    if not hmac.compare_digest(expected, signature_header.strip()):
        raise WebhookSignatureError("invalid_signature")


def parse_performance_payload(raw_body: bytes) -> PerformanceWebhookPayload:
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WebhookValidationError("invalid_json", {"error": str(exc)}) from exc
    if not isinstance(data, dict):
        raise WebhookValidationError("invalid_payload", {"error": "Body must be a JSON object"})

    try:
        return PerformanceWebhookPayload.model_validate(data)
    except ValidationError as exc:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise WebhookValidationError("invalid_payload", {"errors": errors}) from exc


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


class PerformanceFeedbackService:
    """Verifies, validates and records engagement webhook deliveries."""

    def __init__(
        self,
        *,
        store: PerformanceStore,
        patterns: PatternLookup,
        app_settings: Settings | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self.store = store
        self.patterns = patterns

    async def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
        try:
            verify_performance_webhook_signature(
                secret=self.settings.performance_webhook_secret,
                timestamp=_header(headers, TIMESTAMP_HEADER),
                raw_body=raw_body,
                signature_header=_header(headers, SIGNATURE_HEADER),
                tolerance_seconds=self.settings.performance_webhook_tolerance_seconds,
            )
        except WebhookSignatureError as exc:
            logger.warning("Rejected performance webhook", extra={"reason": exc.reason})
            raise

        payload = parse_performance_payload(raw_body)
        if not await self.store.generation_exists(payload.generation_id):
            logger.warning(
                "Performance webhook for unknown generation",
                extra={"generation_id": payload.generation_id},
            )
            raise GenerationNotFoundError(payload.generation_id)

        record = await self.store.append_performance(
            generation_id=payload.generation_id,
            platform=payload.platform,
            impressions=payload.impressions,
            engagement_rate=payload.engagement_rate,
            clicks=payload.clicks,
            conversions=payload.conversions,
        )
        pattern_ids = await self.patterns.pattern_ids_for_generation(payload.generation_id)

        logger.info(
            "Performance metrics recorded",
            extra={
                "generation_id": payload.generation_id,
                "platform": payload.platform,
                "record_id": str(record.id),
                "pattern_count": len(pattern_ids),
            },
        )
        return WebhookAck(
            record_id=str(record.id),
            generation_id=payload.generation_id,
            pattern_ids=pattern_ids,
            fetched_at=getattr(record, "fetched_at", None),
        )

    async def history(self, generation_id: str) -> list[PerformanceRecord]:
        """All snapshots for a generation, oldest first, duplicates included."""
        if not await self.store.generation_exists(generation_id):
            raise GenerationNotFoundError(generation_id)
        records = await self.store.list_performance(generation_id)
        return [PerformanceRecord.model_validate(record) for record in records]
