"""
Supabase authentication for FastAPI.
Validates bearer tokens server-side by calling Supabase /auth/v1/user.

Only ownership matters here: a link's user_id is the Supabase user id,
so no local user table is kept.
"""

from dataclasses import dataclass

import httpx
from fastapi import Request

from linkpulse.config import get_settings
from linkpulse.errors import Unauthorized

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class SupabaseUser:
    id: str
    email: str | None = None

    def owns(self, short_url) -> bool:
        return short_url.user_id is not None and str(short_url.user_id) == self.id


async def _validate_supabase_token(token: str) -> dict:
    """Call Supabase /auth/v1/user to validate the Bearer token server-side."""
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.get(
                f"{settings.supabase_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.supabase_anon_key,
                },
            )
    except httpx.HTTPError as exc:
        logger.warning("supabase_auth_unreachable", error_type=type(exc).__name__)
        raise Unauthorized("Authentication unavailable") from exc
    if resp.status_code != 200:
        raise Unauthorized("Invalid or expired token")
    return resp.json()


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


async def get_optional_user(request: Request) -> SupabaseUser | None:
    """FastAPI dependency — None when no bearer token is sent."""
    token = _bearer_token(request)
    if token is None:
        return None
    data = await _validate_supabase_token(token)
    return SupabaseUser(id=str(data["id"]), email=data.get("email"))


async def require_user(request: Request) -> SupabaseUser:
    """FastAPI dependency — 401 unless a valid bearer token is sent."""
    user = await get_optional_user(request)
    if user is None:
        raise Unauthorized("Authentication required")
    return user
