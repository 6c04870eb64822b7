"""Field-level encryption for social-platform access tokens stored in the database."""

from __future__ import annotations

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from adforge.config import settings


class TokenDecryptionError(ValueError):
    """Stored ciphertext could not be decrypted with the configured key."""


@lru_cache(maxsize=1)
def get_token_cipher() -> Fernet:
    """Return Fernet cipher used for access-token encryption/decryption."""
    return Fernet(settings.get_token_encryption_key())


def reset_token_cipher_cache() -> None:
    """Reset cached cipher (useful in tests after key changes)."""
    get_token_cipher.cache_clear()


def encrypt_token(value: str) -> str:
    """Encrypt an access token for persistent storage."""
    return get_token_cipher().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_token(value: str) -> str:
    """Decrypt a stored access-token ciphertext."""
    try:
        return get_token_cipher().decrypt(value.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise TokenDecryptionError("invalid_token_ciphertext") from exc
