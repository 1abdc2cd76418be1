"""Unit tests for ApiKeyService token helpers."""

from __future__ import annotations

import re

from gateway.services.api_key import ApiKeyService


class TestApiKeyService:
    def test_generate_format(self):
        plaintext, key_hash, key_prefix = ApiKeyService.generate_key()

        assert re.fullmatch(r"sk-gw-[0-9a-f]{64}", plaintext)
        assert re.fullmatch(r"[0-9a-f]{64}", key_hash)
        assert key_prefix == plaintext[:12]
        assert ApiKeyService.display_prefix(plaintext) == key_prefix

    def test_keys_are_unique(self):
        tokens = {ApiKeyService.generate_key()[0] for _ in range(20)}
        assert len(tokens) == 20

    def test_verify(self):
        plaintext, key_hash, _ = ApiKeyService.generate_key()

        assert ApiKeyService.verify_key(plaintext, key_hash)
        assert not ApiKeyService.verify_key(plaintext + "x", key_hash)
