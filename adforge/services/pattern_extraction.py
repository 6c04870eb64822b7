"""Reference-ad intake: privacy scan, pattern extraction and sanitized persistence."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from pydantic_ai import BinaryContent

from adforge.agents.pattern_extractor import PatternExtractionInput, PatternExtractorAgent
from adforge.agents.privacy_scanner import PrivacyScanInput, PrivacyScannerAgent
from adforge.config import Settings, settings
from adforge.core.exceptions import UploadRejectedError
from adforge.core.ids import content_hash
from adforge.models.pattern import UPLOAD_STATUS_COMPLETE, UPLOAD_STATUS_FAILED
from adforge.repositories.pattern_repository import PatternRepository
from adforge.schemas.patterns import (
    PatternUploadRequest,
    PatternUploadResponse,
    PrivacyScanReport,
    PrivacyScanResult,
)
from adforge.services.pattern_sanitizer import is_likely_ad_copy, sanitize

logger = logging.getLogger(__name__)

MAX_TEXT_DENSITY = 15.0

BRAND_BLOCKLIST = frozenset(
    {
        "apple", "google", "microsoft", "amazon", "meta", "facebook", "instagram",
        "twitter", "tiktok", "snapchat", "netflix", "spotify", "adobe", "salesforce",
        "oracle", "ibm", "intel", "nvidia", "amd", "dell", "lenovo", "samsung", "sony",
        "huawei", "nike", "adidas", "puma", "reebok", "coca-cola", "pepsi", "mcdonalds",
        "starbucks", "burger king", "kfc", "walmart", "costco", "ikea", "home depot",
        "tesla", "ford", "chevrolet", "toyota", "honda", "bmw", "mercedes", "audi",
        "porsche", "visa", "mastercard", "paypal", "american express", "disney",
        "warner", "paramount", "hbo",
    }
)


class ReferenceAdStore(Protocol):
    def upload_reference_ad(self, *, user_id: str, payload: bytes, mime_type: str) -> dict[str, Any]: ...

    def delete_object(self, object_key: str) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def detect_brands(detected_text: list[str]) -> list[str]:
    """Blocklisted brand names mentioned in the detected text."""
    haystack = " ".join(detected_text).lower()
    if not haystack:
        return []
    return [
        brand
        for brand in sorted(BRAND_BLOCKLIST)
        if re.search(rf"\b{re.escape(brand)}\b", haystack)
    ]


def evaluate_privacy_scan(report: PrivacyScanReport) -> PrivacyScanResult:
    """Turn raw scan observations into an accept/reject verdict."""
    brands = detect_brands(report.detected_text)
    rejection: str | None = None
    if report.has_faces or report.face_count > 0:
        rejection = "Image contains human faces - cannot process for privacy reasons"
    elif report.text_density > MAX_TEXT_DENSITY:
        rejection = (
            f"Image contains too much text ({report.text_density:.0f}% coverage) "
            "- patterns may leak copyrighted copy"
        )
    elif brands:
        rejection = f"Detected brand names: {', '.join(brands)}"

    warnings: list[str] = []
    if report.has_logos:
        warnings.append("Image contains logos - extracted patterns will be generic")
    if report.has_contact_info:
        warnings.append("Image contains contact information - it is excluded from patterns")

    return PrivacyScanResult(
        text_density=report.text_density,
        detected_brands=brands,
        has_logos=report.has_logos,
        has_faces=report.has_faces or report.face_count > 0,
        has_contact_info=report.has_contact_info,
        is_safe_to_process=rejection is None,
        rejection_reason=rejection,
        warnings=warnings,
    )


def decode_upload(request: PatternUploadRequest, app_settings: Settings) -> bytes:
    """Decode and validate the uploaded image payload."""
    mime_type = request.mime_type.strip().lower()
    if mime_type not in app_settings.upload_allowed_mime_types:
        raise UploadRejectedError("unsupported_mime_type", {"mime_type": mime_type})
    try:
        payload = base64.b64decode(request.image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UploadRejectedError("invalid_image_encoding") from exc
    if not payload:
        raise UploadRejectedError("empty_upload")
    if len(payload) > app_settings.upload_max_bytes:
        raise UploadRejectedError(
            "file_too_large",
            {"size": len(payload), "max_bytes": app_settings.upload_max_bytes},
        )
    return payload


class PatternExtractionService:
    """Runs one uploaded reference ad through intake and extraction."""

    def __init__(
        self,
        *,
        repository: PatternRepository | None = None,
        store: ReferenceAdStore,
        privacy_scanner: PrivacyScannerAgent | None = None,
        extractor: PatternExtractorAgent | None = None,
        app_settings: Settings | None = None,
    ) -> None:
        self.repository = repository or PatternRepository()
        self.store = store
        self.privacy_scanner = privacy_scanner or PrivacyScannerAgent()
        self.extractor = extractor or PatternExtractorAgent()
        self.settings = app_settings or settings

    async def process_upload(self, request: PatternUploadRequest) -> PatternUploadResponse:
        payload = decode_upload(request, self.settings)
        mime_type = request.mime_type.strip().lower()
        source_hash = content_hash(payload)

        stored = await asyncio.to_thread(
            self.store.upload_reference_ad,
            user_id=request.user_id,
            payload=payload,
            mime_type=mime_type,
        )
        upload = await self.repository.create_upload(
            user_id=request.user_id,
            storage_key=stored["object_key"],
            original_filename=request.filename,
            file_size_bytes=len(payload),
            mime_type=mime_type,
            expires_at=_utc_now() + timedelta(hours=self.settings.upload_expiry_hours),
        )
        await self.repository.mark_upload_processing(upload.id)
        started = time.perf_counter()

        def _duration_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        existing = await self.repository.get_pattern_by_source_hash(request.user_id, source_hash)
        if existing is not None:
            logger.info(
                "Duplicate reference ad detected",
                extra={"upload_id": upload.id, "pattern_id": existing.id},
            )
            await self.repository.finish_upload(
                upload.id,
                status=UPLOAD_STATUS_COMPLETE,
                extracted_pattern_id=existing.id,
                processing_duration_ms=_duration_ms(),
            )
            await self._discard_image(upload.id, upload.storage_key)
            return PatternUploadResponse(
                upload_id=upload.id,
                status=UPLOAD_STATUS_COMPLETE,
                pattern_id=existing.id,
                is_duplicate=True,
            )

        attachment = BinaryContent(data=payload, media_type=mime_type)
        try:
            report = await self.privacy_scanner.run(
                PrivacyScanInput(mime_type=mime_type, filename=request.filename),
                [attachment],
            )
        except Exception as exc:
            logger.warning(
                "Privacy scan failed",
                extra={"upload_id": upload.id, "error": str(exc)},
            )
            return await self._fail(upload.id, "Privacy scan failed - cannot verify image safety", _duration_ms())

        verdict = evaluate_privacy_scan(report)
        if not verdict.is_safe_to_process:
            await self.repository.finish_upload(
                upload.id,
                status=UPLOAD_STATUS_FAILED,
                error_message=verdict.rejection_reason,
                privacy_scan_result=verdict.model_dump(mode="json"),
                processing_duration_ms=_duration_ms(),
            )
            return PatternUploadResponse(
                upload_id=upload.id,
                status=UPLOAD_STATUS_FAILED,
                error_message=verdict.rejection_reason,
                warnings=verdict.warnings,
            )

        try:
            extraction = await self.extractor.run(
                PatternExtractionInput(
                    category=request.category,
                    platform=request.platform,
                    industry=request.industry,
                ),
                [attachment],
            )
        except Exception as exc:
            logger.warning(
                "Pattern extraction failed",
                extra={"upload_id": upload.id, "error": str(exc)},
            )
            return await self._fail(upload.id, "Pattern extraction failed", _duration_ms())

        cleaned = sanitize(extraction.pattern)
        category = request.category or extraction.category
        platform = request.platform or extraction.platform
        name = (request.name or "").strip()
        if not name or is_likely_ad_copy(name):
            name = f"{category.replace('_', ' ').title()} pattern"
        industry = (request.industry or extraction.industry or "").strip() or None
        if industry and is_likely_ad_copy(industry):
            industry = None

        pattern = await self.repository.create_pattern(
            user_id=request.user_id,
            name=name,
            category=category,
            platform=platform,
            industry=industry,
            engagement_tier=request.engagement_tier,
            confidence_score=extraction.confidence,
            source_hash=source_hash,
            usage_count=0,
            is_active=True,
            **cleaned.model_dump(mode="json", exclude_none=True),
        )
        await self.repository.finish_upload(
            upload.id,
            status=UPLOAD_STATUS_COMPLETE,
            extracted_pattern_id=pattern.id,
            privacy_scan_result=verdict.model_dump(mode="json"),
            processing_duration_ms=_duration_ms(),
        )
        await self._discard_image(upload.id, upload.storage_key)
        logger.info(
            "Learned pattern extracted",
            extra={"upload_id": upload.id, "pattern_id": pattern.id, "category": category},
        )
        return PatternUploadResponse(
            upload_id=upload.id,
            status=UPLOAD_STATUS_COMPLETE,
            pattern_id=pattern.id,
            warnings=verdict.warnings,
        )

    async def _fail(self, upload_id: str, reason: str, duration_ms: int) -> PatternUploadResponse:
        await self.repository.finish_upload(
            upload_id,
            status=UPLOAD_STATUS_FAILED,
            error_message=reason,
            processing_duration_ms=duration_ms,
        )
        return PatternUploadResponse(upload_id=upload_id, status=UPLOAD_STATUS_FAILED, error_message=reason)

    async def _discard_image(self, upload_id: str, storage_key: str) -> None:
        try:
            await asyncio.to_thread(self.store.delete_object, storage_key)
        except Exception:
            logger.warning(
                "Failed to delete processed reference ad",
                extra={"upload_id": upload_id, "storage_key": storage_key},
                exc_info=True,
            )
