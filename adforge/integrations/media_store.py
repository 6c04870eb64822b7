"""Private R2 storage for generated media and uploaded reference ads."""

from __future__ import annotations

import hashlib
from io import BytesIO
from typing import Any

from adforge.config import Settings, settings

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
}


class MediaStoreError(RuntimeError):
    """Base error for media storage operations."""


class MediaStoreConfigError(MediaStoreError):
    """Raised when required cloud storage settings are missing."""


class MediaStore:
    """Upload, read and delete media objects in private R2 storage."""

    def __init__(self, app_settings: Settings | None = None) -> None:
        self.settings = app_settings or settings
        self._client: Any | None = None

    def upload_generated_media(
        self,
        *,
        user_id: str,
        generation_id: str,
        payload: bytes,
        mime_type: str,
    ) -> dict[str, Any]:
        """Store a generated artifact and return its metadata."""
        sha256 = hashlib.sha256(payload).hexdigest()
        extension = _EXTENSIONS.get(mime_type, "bin")
        object_key = f"users/{user_id}/generations/{generation_id}/{sha256}.{extension}"
        return self._put(object_key, payload, mime_type, sha256=sha256, source="generation")

    def upload_reference_ad(
        self,
        *,
        user_id: str,
        payload: bytes,
        mime_type: str,
    ) -> dict[str, Any]:
        """Store an uploaded reference ad pending pattern extraction."""
        sha256 = hashlib.sha256(payload).hexdigest()
        extension = _EXTENSIONS.get(mime_type, "bin")
        object_key = f"users/{user_id}/ad-analysis/{sha256}.{extension}"
        return self._put(object_key, payload, mime_type, sha256=sha256, source="reference_ad")

    def create_signed_read_url(self, *, object_key: str, ttl_seconds: int | None = None) -> str:
        """Mint short-lived signed URL for GET access to an object."""
        self._validate_config()
        expires_in = int(ttl_seconds or self.settings.signed_url_ttl_seconds)
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.settings.cloudflare_r2_bucket, "Key": object_key},
            ExpiresIn=expires_in,
        )

    def read_object_bytes(self, *, object_key: str) -> tuple[bytes, str | None]:
        """Read object bytes and content-type from private storage."""
        self._validate_config()
        response = self._get_client().get_object(
            Bucket=self.settings.cloudflare_r2_bucket,
            Key=object_key,
        )
        payload = response["Body"].read()
        mime_type = response.get("ContentType")
        return payload, str(mime_type) if mime_type else None

    def delete_object(self, object_key: str) -> None:
        self._validate_config()
        self._get_client().delete_object(
            Bucket=self.settings.cloudflare_r2_bucket,
            Key=object_key,
        )

    def _put(
        self,
        object_key: str,
        payload: bytes,
        mime_type: str,
        *,
        sha256: str,
        source: str,
    ) -> dict[str, Any]:
        self._validate_config()
        width, height = (None, None)
        if mime_type.startswith("image/"):
            width, height = self._detect_dimensions(payload)

        self._get_client().put_object(
            Bucket=self.settings.cloudflare_r2_bucket,
            Key=object_key,
            Body=payload,
            ContentType=mime_type,
            Metadata={"sha256": sha256, "source": source},
        )
        return {
            "object_key": object_key,
            "mime_type": mime_type,
            "width": width,
            "height": height,
            "byte_size": len(payload),
            "sha256": sha256,
            "source": source,
        }

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        import boto3
        from botocore.config import Config

        endpoint_url = f"https://{self.settings.cloudflare_r2_account_id}.r2.cloudflarestorage.com"
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=self.settings.cloudflare_r2_region,
            aws_access_key_id=self.settings.cloudflare_r2_access_key_id,
            aws_secret_access_key=self.settings.cloudflare_r2_secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    def _validate_config(self) -> None:
        required = {
            "cloudflare_r2_account_id": self.settings.cloudflare_r2_account_id,
            "cloudflare_r2_access_key_id": self.settings.cloudflare_r2_access_key_id,
            "cloudflare_r2_secret_access_key": self.settings.cloudflare_r2_secret_access_key,
            "cloudflare_r2_bucket": self.settings.cloudflare_r2_bucket,
        }
        missing = [key for key, value in required.items() if not value]
        if missing:
            raise MediaStoreConfigError("Missing required R2 config: " + ", ".join(sorted(missing)))

    @staticmethod
    def _detect_dimensions(payload: bytes) -> tuple[int | None, int | None]:
        from PIL import Image, UnidentifiedImageError

        try:
            with Image.open(BytesIO(payload)) as image:
                width, height = image.size
                return int(width), int(height)
        except (UnidentifiedImageError, OSError):
            return None, None
