"""API key token helpers.

Handles token generation, hashing and verification. Persistence lives in
the credential store (``gateway.managers.api_key``).
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

# Key format: sk-gw-{64 hex chars}
_KEY_PREFIX = "sk-gw-"
_KEY_DISPLAY_LEN = 12  # chars to store as key_prefix for identification


class ApiKeyService:
    """Stateless token crypto."""

    @staticmethod
    def generate_key() -> tuple[str, str, str]:
        """Generate a new API key.

        Returns:
            Tuple of (plaintext, key_hash, key_prefix)
        """
        random_part = secrets.token_hex(32)  # 64 hex chars
        plaintext = f"{_KEY_PREFIX}{random_part}"
        key_hash = ApiKeyService.hash_key(plaintext)
        key_prefix = ApiKeyService.display_prefix(plaintext)
        return plaintext, key_hash, key_prefix

    @staticmethod
    def hash_key(plaintext: str) -> str:
        """Hash a plaintext key using SHA-256."""
        return hashlib.sha256(plaintext.encode()).hexdigest()

    @staticmethod
    def verify_key(plaintext: str, key_hash: str) -> bool:
        """Verify a plaintext key against a stored hash in constant time."""
        return hmac.compare_digest(ApiKeyService.hash_key(plaintext), key_hash)

    @staticmethod
    def display_prefix(plaintext: str) -> str:
        return plaintext[:_KEY_DISPLAY_LEN]
