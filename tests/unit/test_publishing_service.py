"""Unit tests for publish credential and media resolution."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from adforge.config import settings
from adforge.core.exceptions import GenerationNotFoundError, PublishError
from adforge.core.field_encryption import encrypt_token, reset_token_cipher_cache
from adforge.integrations.linkedin import LinkedInPublisher, owner_urn
from adforge.integrations.twitter import TwitterPublisher
from adforge.schemas.publishing import PublishResult
from adforge.services.publishing import DEFAULT_PUBLISHERS, PublishingService


@pytest.fixture(autouse=True)
def _token_key():
    original_key = settings.token_encryption_key
    settings.token_encryption_key = "publishing-test-key"
    reset_token_cipher_cache()
    yield
    settings.token_encryption_key = original_key
    reset_token_cipher_cache()


class _FakeGenerations:
    def __init__(self, generation: Any) -> None:
        self.generation = generation

    async def get_generation(self, generation_id: str) -> Any:
        if self.generation is not None and self.generation.id == generation_id:
            return self.generation
        return None


class _FakeCatalog:
    def __init__(self, connection: Any) -> None:
        self.connection = connection
        self.results: list[dict[str, Any]] = []

    async def get_social_connection(self, connection_id: str) -> Any:
        if self.connection is not None and self.connection.id == connection_id:
            return self.connection
        return None

    async def record_connection_result(self, connection_id: str, **fields: Any) -> None:
        self.results.append({"connection_id": connection_id, **fields})


class _FakeMediaStore:
    def __init__(self, payload: bytes = b"png-bytes", error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.reads: list[str] = []

    def read_object_bytes(self, *, object_key: str) -> tuple[bytes, str | None]:
        self.reads.append(object_key)
        if self.error is not None:
            raise self.error
        return self.payload, "image/png"


class _FakePublisher:
    def __init__(self, result: PublishResult) -> None:
        self.result = result
        self.calls: list[Any] = []

    async def __aenter__(self) -> _FakePublisher:
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def publish(self, params: Any) -> PublishResult:
        self.calls.append(params)
        return self.result


def _generation(**overrides: Any) -> SimpleNamespace:
    values = {
        "id": "gen-1",
        "user_id": "user-1",
        "status": "completed",
        "media_type": "image",
        "result_locator": "generations/user-1/gen-1.png",
        "result_text": "Lace up for the long run",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _connection(**overrides: Any) -> SimpleNamespace:
    values = {
        "id": "conn-1",
        "user_id": "user-1",
        "platform": "linkedin",
        "access_token_encrypted": encrypt_token("li-token"),
        "token_expires_at": datetime.now(timezone.utc) + timedelta(days=30),
        "platform_user_id": "person-9",
        "account_type": "personal",
        "is_active": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _service(
    *,
    generation: Any = None,
    connection: Any = None,
    media_store: _FakeMediaStore | None = None,
    publisher: _FakePublisher | None = None,
) -> tuple[PublishingService, _FakeCatalog, _FakePublisher]:
    catalog = _FakeCatalog(connection)
    publisher = publisher or _FakePublisher(
        PublishResult(success=True, platform="linkedin", platform_post_id="urn:li:share:1")
    )
    service = PublishingService(
        generations=_FakeGenerations(generation),
        catalog=catalog,
        media_store=media_store or _FakeMediaStore(),
        publishers={"linkedin": lambda: publisher, "twitter": lambda: publisher},
    )
    return service, catalog, publisher


@pytest.mark.asyncio
async def test_publish_decrypts_token_and_attaches_image() -> None:
    media_store = _FakeMediaStore(payload=b"image-data")
    service, catalog, publisher = _service(
        generation=_generation(),
        connection=_connection(),
        media_store=media_store,
    )

    result = await service.publish("gen-1", "conn-1", text="Custom caption")

    assert result.success is True
    params = publisher.calls[0]
    assert params.access_token == "li-token"
    assert params.image == b"image-data"
    assert params.caption == "Custom caption"
    assert params.image_mime_type == "image/png"
    assert owner_urn(params) == "urn:li:person:person-9"
    assert media_store.reads == ["generations/user-1/gen-1.png"]
    assert catalog.results == [{"connection_id": "conn-1", "error_message": None, "deactivate": False}]


@pytest.mark.asyncio
async def test_copy_generation_publishes_text_without_media() -> None:
    media_store = _FakeMediaStore()
    service, _, publisher = _service(
        generation=_generation(media_type="copy", result_locator=None),
        connection=_connection(),
        media_store=media_store,
    )

    await service.publish("gen-1", "conn-1")

    assert publisher.calls[0].image is None
    assert publisher.calls[0].caption == "Lace up for the long run"
    assert media_store.reads == []


@pytest.mark.asyncio
async def test_unknown_generation_raises_not_found() -> None:
    service, _, _ = _service(generation=None, connection=_connection())

    with pytest.raises(GenerationNotFoundError):
        await service.publish("gen-missing", "conn-1")


@pytest.mark.asyncio
async def test_unfinished_and_video_generations_are_refused() -> None:
    pending, _, _ = _service(generation=_generation(status="pending"), connection=_connection())
    video, _, _ = _service(generation=_generation(media_type="video"), connection=_connection())

    with pytest.raises(PublishError) as not_ready:
        await pending.publish("gen-1", "conn-1")
    with pytest.raises(PublishError) as unsupported:
        await video.publish("gen-1", "conn-1")

    assert not_ready.value.error_code == "generation_not_ready"
    assert unsupported.value.error_code == "unsupported_media"


@pytest.mark.asyncio
async def test_foreign_or_inactive_account_is_disconnected() -> None:
    foreign, _, foreign_publisher = _service(
        generation=_generation(),
        connection=_connection(user_id="user-2"),
    )
    inactive, _, _ = _service(generation=_generation(), connection=_connection(is_active=False))

    foreign_result = await foreign.publish("gen-1", "conn-1")
    inactive_result = await inactive.publish("gen-1", "conn-1")

    assert foreign_result.error_code == "account_disconnected"
    assert inactive_result.error_code == "account_disconnected"
    assert foreign_result.is_retryable is False
    assert foreign_publisher.calls == []


@pytest.mark.asyncio
async def test_expired_token_deactivates_connection_without_calling_platform() -> None:
    service, catalog, publisher = _service(
        generation=_generation(),
        connection=_connection(token_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)),
    )

    result = await service.publish("gen-1", "conn-1")

    assert result.error_code == "token_expired"
    assert result.is_retryable is False
    assert publisher.calls == []
    assert catalog.results == [
        {"connection_id": "conn-1", "error_message": "token_expired", "deactivate": True}
    ]


@pytest.mark.asyncio
async def test_undecryptable_token_is_invalid_credentials() -> None:
    service, _, publisher = _service(
        generation=_generation(),
        connection=_connection(access_token_encrypted="not-a-fernet-token"),
    )

    result = await service.publish("gen-1", "conn-1")

    assert result.error_code == "invalid_credentials"
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_unreadable_media_is_retryable_upload_failure() -> None:
    service, _, publisher = _service(
        generation=_generation(),
        connection=_connection(),
        media_store=_FakeMediaStore(error=RuntimeError("bucket unavailable")),
    )

    result = await service.publish("gen-1", "conn-1")

    assert result.error_code == "media_upload_failed"
    assert result.is_retryable is True
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_platform_token_rejection_deactivates_connection() -> None:
    rejected = _FakePublisher(
        PublishResult.failure("token_expired", "401", is_retryable=False, platform="linkedin")
    )
    service, catalog, _ = _service(
        generation=_generation(),
        connection=_connection(),
        publisher=rejected,
    )

    result = await service.publish("gen-1", "conn-1")

    assert result.success is False
    assert catalog.results[-1] == {
        "connection_id": "conn-1",
        "error_message": "token_expired",
        "deactivate": True,
    }


@pytest.mark.asyncio
async def test_unsupported_platform_is_reported() -> None:
    service, _, _ = _service(generation=_generation(), connection=_connection(platform="tiktok"))

    result = await service.publish("gen-1", "conn-1")

    assert result.error_code == "unsupported_platform"
    assert result.platform == "tiktok"


@pytest.mark.asyncio
async def test_twitter_connection_routes_to_twitter_publisher() -> None:
    publisher = _FakePublisher(
        PublishResult(success=True, platform="twitter", platform_post_id="1790000000000000000")
    )
    service, catalog, _ = _service(
        generation=_generation(),
        connection=_connection(platform="Twitter", platform_user_id=None),
        publisher=publisher,
    )

    result = await service.publish("gen-1", "conn-1")

    assert result.success is True
    assert result.platform == "twitter"
    params = publisher.calls[0]
    assert params.platform_user_id == ""
    assert params.image == b"png-bytes"
    assert catalog.results == [{"connection_id": "conn-1", "error_message": None, "deactivate": False}]


def test_default_publishers_cover_linkedin_and_twitter() -> None:
    assert DEFAULT_PUBLISHERS == {"linkedin": LinkedInPublisher, "twitter": TwitterPublisher}
