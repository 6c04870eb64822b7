"""Tests for private R2 media storage integration."""

from __future__ import annotations

import io
from types import SimpleNamespace
from typing import Any

import pytest
from PIL import Image

from adforge.integrations.media_store import MediaStore, MediaStoreConfigError


def _settings(**overrides: Any) -> SimpleNamespace:
    values = {
        "cloudflare_r2_account_id": "acct",
        "cloudflare_r2_access_key_id": "key",
        "cloudflare_r2_secret_access_key": "secret",
        "cloudflare_r2_bucket": "private-bucket",
        "cloudflare_r2_region": "auto",
        "signed_url_ttl_seconds": 90,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class _FakeClient:
    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.deleted: list[str] = []
        self.presign_calls: list[tuple[str, dict, int]] = []

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str, Metadata: dict) -> None:  # noqa: N803
        self.objects[Key] = {"Body": Body, "ContentType": ContentType, "Metadata": Metadata}

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803
        stored = self.objects[Key]
        return {"Body": io.BytesIO(stored["Body"]), "ContentType": stored["ContentType"]}

    def delete_object(self, *, Bucket: str, Key: str) -> None:  # noqa: N803
        self.deleted.append(Key)

    def generate_presigned_url(self, operation: str, Params: dict, ExpiresIn: int) -> str:  # noqa: N803
        self.presign_calls.append((operation, Params, ExpiresIn))
        return "https://signed.example/read"


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_generated_image_is_stored_under_user_generation_key() -> None:
    store = MediaStore(app_settings=_settings())
    client = _FakeClient()
    store._client = client

    stored = store.upload_generated_media(
        user_id="user-1",
        generation_id="gen-1",
        payload=_png(64, 32),
        mime_type="image/png",
    )

    assert stored["object_key"].startswith("users/user-1/generations/gen-1/")
    assert stored["object_key"].endswith(".png")
    assert (stored["width"], stored["height"]) == (64, 32)
    assert client.objects[stored["object_key"]]["Metadata"]["source"] == "generation"


def test_reference_ad_roundtrip_and_delete() -> None:
    store = MediaStore(app_settings=_settings())
    client = _FakeClient()
    store._client = client

    stored = store.upload_reference_ad(user_id="user-1", payload=b"not-an-image", mime_type="image/webp")
    payload, mime_type = store.read_object_bytes(object_key=stored["object_key"])
    store.delete_object(stored["object_key"])

    assert stored["object_key"].startswith("users/user-1/ad-analysis/")
    assert (stored["width"], stored["height"]) == (None, None)
    assert payload == b"not-an-image"
    assert mime_type == "image/webp"
    assert client.deleted == [stored["object_key"]]


def test_create_signed_read_url_uses_s3_presign() -> None:
    store = MediaStore(app_settings=_settings())
    client = _FakeClient()
    store._client = client

    signed_url = store.create_signed_read_url(object_key="users/u1/generations/g1/abc.png")

    assert signed_url == "https://signed.example/read"
    assert client.presign_calls == [
        (
            "get_object",
            {"Bucket": "private-bucket", "Key": "users/u1/generations/g1/abc.png"},
            90,
        )
    ]


def test_missing_config_is_reported() -> None:
    store = MediaStore(app_settings=_settings(cloudflare_r2_bucket=None, cloudflare_r2_access_key_id=""))

    with pytest.raises(MediaStoreConfigError) as exc_info:
        store.read_object_bytes(object_key="users/u1/x.png")

    assert "cloudflare_r2_access_key_id" in str(exc_info.value)
    assert "cloudflare_r2_bucket" in str(exc_info.value)
