"""Credential store."""

from gateway.managers.api_key.api_key import ApiKeyManager, IssuedKey, KeyStats

__all__ = ["ApiKeyManager", "IssuedKey", "KeyStats"]
