"""Tests for visitor fingerprinting and IP hashing."""

import hashlib

import pytest

from linkpulse.config import get_settings
from linkpulse.core.fingerprint import (
    FINGERPRINT_LENGTH,
    IP_HASH_LENGTH,
    fingerprint,
    fingerprint_async,
    hash_ip,
)

UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


class TestFingerprint:
    def test_format(self):
        fp = fingerprint(UA, "203.0.113.7", "en-US")
        assert len(fp) == FINGERPRINT_LENGTH == 32
        assert all(c in "0123456789abcdef" for c in fp)

    def test_matches_sha256_of_joined_fields(self):
        expected = hashlib.sha256(f"{UA}|203.0.113.7|en-US".encode()).hexdigest()[:32]
        assert fingerprint(UA, "203.0.113.7", "en-US") == expected

    def test_deterministic(self):
        assert fingerprint(UA, "203.0.113.7", "en-US") == fingerprint(UA, "203.0.113.7", "en-US")

    @pytest.mark.parametrize("ua, ip, lang", [
        (UA + " extra", "203.0.113.7", "en-US"),
        (UA, "203.0.113.8", "en-US"),
        (UA, "203.0.113.7", "de-DE"),
    ])
    def test_sensitive_to_each_input(self, ua, ip, lang):
        assert fingerprint(ua, ip, lang) != fingerprint(UA, "203.0.113.7", "en-US")

    def test_missing_language_is_empty_string(self):
        assert fingerprint(UA, "203.0.113.7", None) == fingerprint(UA, "203.0.113.7", "")

    async def test_async_equals_sync(self):
        assert await fingerprint_async(UA, "198.51.100.1", "fr") == fingerprint(UA, "198.51.100.1", "fr")

    def test_custom_digest_provider(self):
        class Fixed:
            def hexdigest(self, data: bytes) -> str:
                return "f" * 64

        assert fingerprint(UA, "1.2.3.4", digest=Fixed()) == "f" * 32


class TestHashIp:
    def test_length(self):
        assert len(hash_ip("203.0.113.7")) == IP_HASH_LENGTH == 16

    def test_never_contains_raw_ip(self):
        assert "203.0.113.7" not in hash_ip("203.0.113.7")

    def test_distinct(self):
        assert hash_ip("203.0.113.7") != hash_ip("203.0.113.8")

    def test_keyed_with_secret(self):
        assert hash_ip("203.0.113.7", secret="a") != hash_ip("203.0.113.7", secret="b")
        assert hash_ip("203.0.113.7", secret="a") == hash_ip("203.0.113.7", secret="a")

    def test_not_a_plain_sha256(self):
        plain = hashlib.sha256(b"203.0.113.7").hexdigest()[:IP_HASH_LENGTH]
        assert hash_ip("203.0.113.7") != plain

    def test_defaults_to_configured_secret(self):
        assert hash_ip("203.0.113.7") == hash_ip("203.0.113.7", secret=get_settings().ip_hash_secret)
