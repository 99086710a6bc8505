"""
Owner analytics — per-link summary and raw exports.

Security:
  - Requires a Supabase bearer token
  - Only the link's owner may read it (401 otherwise)
  - Rate limited per IP (analytics: 30/min, export: 5/min)
"""

import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from linkpulse.config import get_settings
from linkpulse.core.aggregation import normalize_period, period_start, summarize_clicks
from linkpulse.core.export import export_rows, to_csv, to_json
from linkpulse.errors import NotFound, Unauthorized, ValidationError
from linkpulse.middleware.rate_limit import RateLimiter, RateLimits, enforce_rate_limit, get_rate_limiter, rate_limit_headers
from linkpulse.middleware.supabase_auth import SupabaseUser, require_user
from linkpulse.models.store import ClickStore, get_store
from linkpulse.models.tables import ShortUrl

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/analytics", tags=["analytics"])

EXPORT_FORMATS = ("csv", "json")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


async def get_owned_short_url(code: str, user: SupabaseUser, store: ClickStore) -> ShortUrl:
    short_url = await store.find_short_url_by_code(code)
    if short_url is None:
        raise NotFound("Short URL not found")
    if not user.owns(short_url):
        raise Unauthorized("Not authorized to view analytics for this URL")
    return short_url


@router.get("/{code}")
async def get_analytics(
    code: str,
    request: Request,
    period: str | None = None,
    user: SupabaseUser = Depends(require_user),
    store: ClickStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    rate = enforce_rate_limit(request, RateLimits.analytics(), limiter)
    short_url = await get_owned_short_url(code, user, store)

    now = _utcnow()
    period = normalize_period(period)
    events = await store.list_click_events(
        short_url.id, since=period_start(period, now), limit=get_settings().analytics_event_limit,
    )
    return JSONResponse(
        content=summarize_clicks(short_url, events, period, now),
        headers=rate_limit_headers(rate),
    )


@router.get("/{code}/export")
async def export_analytics(
    code: str,
    request: Request,
    format: str = "csv",
    period: str | None = None,
    user: SupabaseUser = Depends(require_user),
    store: ClickStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    rate = enforce_rate_limit(request, RateLimits.export(), limiter)
    if format not in EXPORT_FORMATS:
        raise ValidationError("format must be csv or json", headers=rate_limit_headers(rate))
    short_url = await get_owned_short_url(code, user, store)

    now = _utcnow()
    period = normalize_period(period)
    events = await store.list_click_events(
        short_url.id, since=period_start(period, now), limit=get_settings().analytics_event_limit,
    )
    rows = export_rows(events)
    filename = f"analytics-{code}-{period}.{format}"
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        **rate_limit_headers(rate),
    }
    logger.info("analytics_exported", code=code, format=format, period=period, rows=len(rows))

    if format == "json":
        return JSONResponse(content=to_json(short_url, period, rows, now), headers=headers)
    return Response(content=to_csv(rows), media_type="text/csv; charset=utf-8", headers=headers)
