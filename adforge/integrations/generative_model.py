"""Gemini REST client for image, text and long-running video generation.

Every failure is raised as `GenerativeModelError` tagged with a taxonomy
kind so the dispatcher can decide between retrying and failing fast.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from adforge.config import settings
from adforge.core.exceptions import (
    ERROR_KIND_AUTH,
    ERROR_KIND_PERMANENT_UNKNOWN,
    ERROR_KIND_POLICY_VIOLATION,
    ERROR_KIND_TRANSIENT,
    APIKeyMissingError,
    ExternalAPIError,
)

logger = logging.getLogger(__name__)

API_NAME = "Gemini"
SUPPORTED_IMAGE_ASPECT_RATIOS = frozenset(
    {"1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"}
)
# Ratios the provider does not accept, mapped to the closest supported one.
ASPECT_RATIO_FALLBACKS = {"1.91:1": "16:9"}
POLICY_MARKERS = ("safety", "policy", "blocked", "prohibited")
BLOCKING_FINISH_REASONS = frozenset(
    {"SAFETY", "PROHIBITED_CONTENT", "IMAGE_SAFETY", "BLOCKLIST", "SPII", "RECITATION"}
)


class GenerativeModelError(ExternalAPIError):
    """Model call failed; `kind` follows the generation error taxonomy."""

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(API_NAME, message)


@dataclass(frozen=True, slots=True)
class ReferenceImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True, slots=True)
class GeneratedMedia:
    data: bytes
    mime_type: str
    model: str


@dataclass(frozen=True, slots=True)
class VideoOperation:
    """Provider view of a long-running video generation."""

    name: str
    done: bool
    video_uri: str | None = None
    error_message: str | None = None


def classify_status(status_code: int, message: str = "") -> str:
    """Map an HTTP status (and provider message) to a taxonomy kind."""
    if status_code in (401, 403):
        return ERROR_KIND_AUTH
    if status_code in (408, 429) or status_code >= 500:
        return ERROR_KIND_TRANSIENT
    if status_code == 400 and any(marker in message.lower() for marker in POLICY_MARKERS):
        return ERROR_KIND_POLICY_VIOLATION
    return ERROR_KIND_PERMANENT_UNKNOWN


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def provider_aspect_ratio(aspect_ratio: str | None) -> str | None:
    if aspect_ratio is None:
        return None
    ratio = ASPECT_RATIO_FALLBACKS.get(aspect_ratio, aspect_ratio)
    return ratio if ratio in SUPPORTED_IMAGE_ASPECT_RATIOS else "1:1"


class GenerativeModelClient:
    """Async client for the Gemini generative REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_api_base_url).rstrip("/")
        self.timeout = timeout or settings.generation_attempt_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self.api_key:
            raise APIKeyMissingError(API_NAME)

    async def __aenter__(self) -> GenerativeModelClient:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def generate_image(
        self,
        prompt: str,
        *,
        aspect_ratio: str | None = None,
        reference_images: Sequence[ReferenceImage] = (),
        model: str | None = None,
    ) -> GeneratedMedia:
        model_name = model or settings.gemini_image_model
        parts: list[dict[str, Any]] = [{"text": prompt}]
        parts.extend(
            {
                "inlineData": {
                    "mimeType": image.mime_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                }
            }
            for image in reference_images
        )
        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE"]}
        ratio = provider_aspect_ratio(aspect_ratio)
        if ratio:
            generation_config["imageConfig"] = {"aspectRatio": ratio}

        data = await self._post(
            f"/models/{model_name}:generateContent",
            {"contents": [{"role": "user", "parts": parts}], "generationConfig": generation_config},
        )
        for part in self._candidate_parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                return GeneratedMedia(
                    data=base64.b64decode(inline["data"]),
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    model=model_name,
                )
        raise GenerativeModelError(
            "Model response contained no image",
            kind=ERROR_KIND_PERMANENT_UNKNOWN,
        )

    async def generate_text(self, prompt: str, *, model: str | None = None) -> str:
        model_name = model or settings.gemini_text_model
        data = await self._post(
            f"/models/{model_name}:generateContent",
            {"contents": [{"role": "user", "parts": [{"text": prompt}]}]},
        )
        text = "".join(part.get("text", "") for part in self._candidate_parts(data)).strip()
        if not text:
            raise GenerativeModelError(
                "Model response contained no text",
                kind=ERROR_KIND_PERMANENT_UNKNOWN,
            )
        return text

    async def start_video(
        self,
        prompt: str,
        *,
        aspect_ratio: str | None = None,
        resolution: str | None = None,
        duration_seconds: int | None = None,
        model: str | None = None,
    ) -> str:
        """Start a long-running video generation; returns the operation name."""
        model_name = model or settings.gemini_video_model
        parameters: dict[str, Any] = {}
        if aspect_ratio:
            parameters["aspectRatio"] = aspect_ratio
        if resolution:
            parameters["resolution"] = resolution
        if duration_seconds:
            parameters["durationSeconds"] = duration_seconds

        data = await self._post(
            f"/models/{model_name}:predictLongRunning",
            {"instances": [{"prompt": prompt}], "parameters": parameters},
        )
        name = data.get("name")
        if not name:
            raise GenerativeModelError(
                "Video operation response had no name",
                kind=ERROR_KIND_PERMANENT_UNKNOWN,
            )
        logger.info("Video generation started", extra={"operation": name, "model": model_name})
        return str(name)

    async def get_video_operation(self, name: str) -> VideoOperation:
        data = await self._request("GET", f"/{name.lstrip('/')}")
        if not data.get("done"):
            return VideoOperation(name=name, done=False)

        error = data.get("error")
        if error:
            return VideoOperation(
                name=name,
                done=True,
                error_message=str(error.get("message") or "Video generation failed"),
            )

        response = data.get("response") or {}
        samples = (response.get("generateVideoResponse") or {}).get("generatedSamples") or []
        uri = ((samples[0] if samples else {}).get("video") or {}).get("uri")
        if not uri:
            return VideoOperation(
                name=name,
                done=True,
                error_message="Video generation finished without a result",
            )
        return VideoOperation(name=name, done=True, video_uri=str(uri))

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", path, json=payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise GenerativeModelError(f"Request timed out: {exc}", kind=ERROR_KIND_TRANSIENT) from exc
        except httpx.HTTPError as exc:
            raise GenerativeModelError(f"Network error: {exc}", kind=ERROR_KIND_TRANSIENT) from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            kind = classify_status(response.status_code, message)
            logger.warning(
                "Generative model API error",
                extra={"status": response.status_code, "kind": kind, "path": path},
            )
            raise GenerativeModelError(
                f"{response.status_code} - {message}",
                kind=kind,
                status_code=response.status_code,
                retry_after=_retry_after(response),
            )
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
        except ValueError:
            return response.text[:500]
        status = error.get("status")
        message = error.get("message") or response.text[:500]
        return f"{status}: {message}" if status else str(message)

    @staticmethod
    def _candidate_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise GenerativeModelError(
                f"Prompt blocked: {block_reason}",
                kind=ERROR_KIND_POLICY_VIOLATION,
            )
        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerativeModelError(
                "Model response had no candidates",
                kind=ERROR_KIND_PERMANENT_UNKNOWN,
            )
        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in BLOCKING_FINISH_REASONS:
            raise GenerativeModelError(
                f"Generation blocked: {finish_reason}",
                kind=ERROR_KIND_POLICY_VIOLATION,
            )
        return list((candidate.get("content") or {}).get("parts") or [])
