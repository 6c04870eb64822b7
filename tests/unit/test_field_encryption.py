"""Unit tests for social access-token encryption helpers."""

from __future__ import annotations

import pytest

from adforge.config import settings
from adforge.core.field_encryption import (
    TokenDecryptionError,
    decrypt_token,
    encrypt_token,
    reset_token_cipher_cache,
)


def test_access_token_encrypt_decrypt_roundtrip() -> None:
    original_key = settings.token_encryption_key
    settings.token_encryption_key = "unit-test-key"
    reset_token_cipher_cache()

    try:
        encrypted = encrypt_token("li-access-123")
        assert encrypted != "li-access-123"
        assert decrypt_token(encrypted) == "li-access-123"
    finally:
        settings.token_encryption_key = original_key
        reset_token_cipher_cache()


def test_ciphertext_from_another_key_is_rejected() -> None:
    original_key = settings.token_encryption_key
    settings.token_encryption_key = "first-key"
    reset_token_cipher_cache()

    try:
        encrypted = encrypt_token("li-access-123")
        settings.token_encryption_key = "rotated-key"
        reset_token_cipher_cache()
        with pytest.raises(TokenDecryptionError):
            decrypt_token(encrypted)
    finally:
        settings.token_encryption_key = original_key
        reset_token_cipher_cache()
