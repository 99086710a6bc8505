"""
Short URL creation — POST /urls

Anonymous callers may create links; a valid bearer token makes the
caller the owner. Codes are random; a collision (pre-check hit or a
unique-constraint race on commit) is retried a bounded number of times
before failing with 500.
"""

import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkpulse.config import get_settings
from linkpulse.core.detection import extract_title_from_url, is_valid_url, normalize_url
from linkpulse.core.short_code import generate_code
from linkpulse.errors import CodeGenerationError, ValidationError
from linkpulse.middleware.rate_limit import RateLimiter, RateLimits, enforce_rate_limit, get_rate_limiter, rate_limit_headers
from linkpulse.middleware.supabase_auth import SupabaseUser, get_optional_user
from linkpulse.models.database import get_db
from linkpulse.models.tables import ShortUrl

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["urls"])


class CreateUrlBody(BaseModel):
    original_url: str = Field(alias="originalUrl")
    title: str | None = Field(None, max_length=255)
    expires_at: datetime.datetime | None = Field(None, alias="expiresAt")

    model_config = {"populate_by_name": True}


def _owner_id(user: SupabaseUser | None) -> UUID | None:
    if user is None:
        return None
    try:
        return UUID(user.id)
    except ValueError:
        return None


async def _code_taken(db: AsyncSession, code: str) -> bool:
    result = await db.execute(select(ShortUrl.id).where(ShortUrl.code == code))
    return result.scalar_one_or_none() is not None


@router.post("/urls", status_code=201)
async def create_short_url(
    body: CreateUrlBody,
    request: Request,
    user: SupabaseUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    rate = enforce_rate_limit(request, RateLimits.create_url(), limiter)
    headers = rate_limit_headers(rate)
    settings = get_settings()

    url = normalize_url(body.original_url)
    if not is_valid_url(url):
        raise ValidationError("Invalid URL format", headers=headers)
    title = (body.title or "").strip() or extract_title_from_url(url)

    for attempt in range(1, settings.short_code_max_attempts + 1):
        code = generate_code(settings.short_code_length)
        if await _code_taken(db, code):
            logger.info("short_code_collision", attempt=attempt, stage="precheck")
            continue

        short_url = ShortUrl(
            code=code,
            original_url=url,
            title=title,
            user_id=_owner_id(user),
            expires_at=body.expires_at,
            is_active=True,
        )
        db.add(short_url)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info("short_code_collision", attempt=attempt, stage="commit")
            continue
        await db.refresh(short_url)

        logger.info("short_url_created", code=code, anonymous=user is None)
        return JSONResponse(
            status_code=201,
            content={
                "id": str(short_url.id),
                "code": short_url.code,
                "shortUrl": f"{settings.short_url_base}/{short_url.code}",
                "originalUrl": short_url.original_url,
                "title": short_url.title,
                "createdAt": short_url.created_at.isoformat() if short_url.created_at else None,
            },
            headers=headers,
        )

    logger.error("short_code_exhausted", attempts=settings.short_code_max_attempts)
    raise CodeGenerationError("Failed to generate a unique short code", headers=headers)
