"""
Visitor fingerprint + IP hashing.

Format: sha256("{user_agent}|{ip}|{accept_language}") hex, truncated to 32 chars.
IP hash:  HMAC-SHA256(LP_IP_HASH_SECRET, ip) hex, truncated to 16 chars.

The raw IP is never stored or logged — only these digests are.
Sync and async paths go through the same DigestProvider, so they agree
bit-for-bit for identical inputs.
"""

import asyncio
import hashlib
import hmac
from typing import Protocol

from linkpulse.config import get_settings

FINGERPRINT_LENGTH = 32
IP_HASH_LENGTH = 16


class DigestProvider(Protocol):
    def hexdigest(self, data: bytes) -> str: ...


class Sha256Digest:
    def hexdigest(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()


_default_digest: DigestProvider = Sha256Digest()


def _fingerprint_payload(user_agent: str, ip: str, accept_language: str | None) -> bytes:
    return f"{user_agent}|{ip}|{accept_language or ''}".encode("utf-8")


def fingerprint(
    user_agent: str,
    ip: str,
    accept_language: str | None = "",
    digest: DigestProvider = _default_digest,
) -> str:
    return digest.hexdigest(_fingerprint_payload(user_agent, ip, accept_language))[:FINGERPRINT_LENGTH]


async def fingerprint_async(
    user_agent: str,
    ip: str,
    accept_language: str | None = "",
    digest: DigestProvider = _default_digest,
) -> str:
    return await asyncio.to_thread(fingerprint, user_agent, ip, accept_language, digest)


def hash_ip(ip: str, secret: str | None = None) -> str:
    """Keyed digest of the client IP; ``secret`` defaults to LP_IP_HASH_SECRET."""
    key = secret if secret is not None else get_settings().ip_hash_secret
    sig = hmac.new(key.encode(), ip.encode("utf-8"), hashlib.sha256).hexdigest()
    return sig[:IP_HASH_LENGTH]
