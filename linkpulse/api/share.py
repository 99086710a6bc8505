"""
Analytics share tokens.

Owners mint opaque tokens that expose a read-only dashboard view of one
link at /analytics/shared/{token}. Tokens can expire and be revoked.
"""

import datetime
import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkpulse.api.analytics import get_owned_short_url
from linkpulse.config import get_settings
from linkpulse.core.aggregation import SHARED_PERIODS, normalize_period, period_start, shared_analytics
from linkpulse.errors import Gone, NotFound
from linkpulse.middleware.rate_limit import RateLimiter, RateLimits, enforce_rate_limit, get_rate_limiter, rate_limit_headers
from linkpulse.middleware.supabase_auth import SupabaseUser, require_user
from linkpulse.models.database import get_db
from linkpulse.models.store import ClickStore, get_store
from linkpulse.models.tables import AnalyticsShareToken, ShortUrl

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/analytics", tags=["share"])


class CreateShareBody(BaseModel):
    expires_in_days: int | None = Field(None, alias="expiresInDays", ge=1, le=365)

    model_config = {"populate_by_name": True}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _is_expired(expires_at: datetime.datetime | None, now: datetime.datetime) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    return expires_at <= now


def _token_payload(share: AnalyticsShareToken) -> dict:
    return {
        "token": share.token,
        "shareUrl": f"{get_settings().base_url}/analytics/shared/{share.token}",
        "isActive": share.is_active,
        "expiresAt": share.expires_at.isoformat() if share.expires_at else None,
        "createdAt": share.created_at.isoformat() if share.created_at else None,
    }


# --- Public view (registered first so "shared" is never read as a code) ---

@router.get("/shared/{token}")
async def get_shared_analytics(
    token: str,
    request: Request,
    period: str | None = None,
    db: AsyncSession = Depends(get_db),
    store: ClickStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    rate = enforce_rate_limit(request, RateLimits.analytics(), limiter)
    headers = rate_limit_headers(rate)

    result = await db.execute(select(AnalyticsShareToken).where(AnalyticsShareToken.token == token))
    share = result.scalar_one_or_none()
    if share is None or not share.is_active:
        raise NotFound("Share link not found", headers=headers)

    now = _utcnow()
    if _is_expired(share.expires_at, now):
        raise Gone("Share link has expired", headers=headers)

    short_url = await db.get(ShortUrl, share.short_url_id)
    if short_url is None:
        raise NotFound("Short URL not found", headers=headers)

    period = normalize_period(period, SHARED_PERIODS)
    events = await store.list_click_events(
        short_url.id, since=period_start(period, now), limit=get_settings().analytics_event_limit,
    )
    return JSONResponse(content=shared_analytics(short_url, events, period, now), headers=headers)


# --- Owner management ---

@router.post("/{code}/share", status_code=201)
async def create_share_token(
    code: str,
    body: CreateShareBody | None = None,
    user: SupabaseUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    store: ClickStore = Depends(get_store),
):
    short_url = await get_owned_short_url(code, user, store)

    expires_at = None
    if body is not None and body.expires_in_days:
        expires_at = _utcnow() + datetime.timedelta(days=body.expires_in_days)

    share = AnalyticsShareToken(
        short_url_id=short_url.id,
        token=secrets.token_urlsafe(24),
        is_active=True,
        expires_at=expires_at,
        created_at=_utcnow(),
    )
    db.add(share)
    await db.commit()

    logger.info("share_token_created", code=code, expires_at=str(expires_at) if expires_at else None)
    return JSONResponse(status_code=201, content=_token_payload(share))


@router.get("/{code}/share")
async def list_share_tokens(
    code: str,
    user: SupabaseUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    store: ClickStore = Depends(get_store),
):
    short_url = await get_owned_short_url(code, user, store)
    result = await db.execute(
        select(AnalyticsShareToken)
        .where(
            AnalyticsShareToken.short_url_id == short_url.id,
            AnalyticsShareToken.is_active.is_(True),
        )
        .order_by(AnalyticsShareToken.created_at.desc())
    )
    return {"tokens": [_token_payload(s) for s in result.scalars().all()]}


@router.delete("/{code}/share/{token}")
async def revoke_share_token(
    code: str,
    token: str,
    user: SupabaseUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    store: ClickStore = Depends(get_store),
):
    short_url = await get_owned_short_url(code, user, store)
    result = await db.execute(
        select(AnalyticsShareToken).where(
            AnalyticsShareToken.short_url_id == short_url.id,
            AnalyticsShareToken.token == token,
        )
    )
    share = result.scalar_one_or_none()
    if share is None:
        raise NotFound("Share link not found")

    share.is_active = False
    await db.commit()

    logger.info("share_token_revoked", code=code)
    return {"revoked": True}
