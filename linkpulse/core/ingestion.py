"""
Click ingestion — the tracking pipeline behind /track and /r/{code}.

Flow:
  1. Rate limit (track limiter, per IP)          → 429 + retryAfter
  2. Validate code / source type                 → 400
  3. Look up short URL                           → 404 unknown, 410 inactive/expired
  4. Enrich: headers, device/browser/OS, referrer, UTM, fingerprint, geo
  5. Dedupe: same (url, fingerprint) in the trailing window → not unique
  6. Persist click event
  7. Atomic counter bump (total always, unique conditionally)

Tracking is best-effort relative to the redirect: failures in 5–7 are
logged and never fail the response. The only slow step is geo, which is
time-bounded inside GeoResolver.
"""

import datetime
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from linkpulse.config import Settings, get_settings
from linkpulse.core.detection import (
    UTM_KEYS,
    describe_user_agent,
    detect_browser,
    detect_device_type,
    detect_os,
    parse_referrer_domain,
)
from linkpulse.core.fingerprint import fingerprint, hash_ip
from linkpulse.core.geo import GeoResolver
from linkpulse.core.request_info import HeaderMap, RequestInfo, normalize_request
from linkpulse.errors import AppError, Gone, NotFound, PersistenceFailure, RateLimitExceeded, ValidationError
from linkpulse.middleware.rate_limit import RateLimiter, RateLimitResult, RateLimits, rate_limit_headers
from linkpulse.models.store import ClickStore
from linkpulse.models.tables import ClickEvent, ShortUrl

import structlog

logger = structlog.get_logger()

SOURCE_TYPES = ("direct", "qr", "api")
CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,32}$")
FINGERPRINT_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,64}$")
MAX_REFERRER_LENGTH = 2048
MAX_UTM_LENGTH = 255


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class TrackRequest:
    code: str | None
    fingerprint: str | None = None
    referrer: str | None = None
    utm: dict[str, str] = field(default_factory=dict)
    source_type: str | None = None


@dataclass
class TrackOutcome:
    original_url: str
    tracked: bool
    is_unique: bool
    rate_limit: RateLimitResult

    @property
    def headers(self) -> dict[str, str]:
        return rate_limit_headers(self.rate_limit)


def is_link_live(short_url: ShortUrl, now: datetime.datetime) -> bool:
    if not short_url.is_active:
        return False
    expires_at = short_url.expires_at
    if expires_at is None:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    return expires_at > now


class ClickIngestor:
    def __init__(
        self,
        store: ClickStore,
        geo: GeoResolver,
        limiter: RateLimiter,
        settings: Settings | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self.store = store
        self.geo = geo
        self.limiter = limiter
        self.settings = settings or get_settings()
        self.clock = clock

    # --- stages ---

    def _check_rate_limit(self, info: RequestInfo) -> RateLimitResult:
        result = self.limiter.check(info.ip, RateLimits.track())
        if not result.success:
            retry_after = self.limiter.retry_after(result)
            logger.info("track_rate_limited", ip_hash=hash_ip(info.ip), retry_after=retry_after)
            raise RateLimitExceeded(
                "Too many requests. Please try again later.",
                retry_after=retry_after,
                headers=rate_limit_headers(result),
            )
        return result

    def _validate(self, req: TrackRequest) -> str:
        code = (req.code or "").strip()
        if not code:
            raise ValidationError("URL code is required")
        if not CODE_PATTERN.match(code):
            raise ValidationError("URL code is malformed")
        if req.source_type is not None and req.source_type not in SOURCE_TYPES:
            raise ValidationError(f"sourceType must be one of {', '.join(SOURCE_TYPES)}")
        if req.fingerprint and not FINGERPRINT_PATTERN.match(req.fingerprint):
            raise ValidationError("fingerprint is malformed")
        return code

    async def _lookup(self, code: str, now: datetime.datetime) -> ShortUrl:
        short_url = await self.store.find_short_url_by_code(code)
        if short_url is None:
            raise NotFound("Short URL not found")
        if not is_link_live(short_url, now):
            raise Gone("Short URL is no longer active")
        return short_url

    async def _is_unique(self, short_url: ShortUrl, fp: str, now: datetime.datetime) -> bool:
        since = now - datetime.timedelta(hours=self.settings.unique_window_hours)
        try:
            seen = await self.store.find_recent_event_by_fingerprint(short_url.id, fp, since)
        except PersistenceFailure as exc:
            # Unknown → count as repeat; never inflate uniques.
            logger.error("dedupe_check_failed", code=short_url.code, error=str(exc))
            return False
        return not seen

    async def _build_event(
        self,
        short_url: ShortUrl,
        req: TrackRequest,
        info: RequestInfo,
        fp: str,
        now: datetime.datetime,
    ) -> ClickEvent:
        ua = info.user_agent
        referrer = info.referrer or req.referrer or None
        if referrer:
            referrer = referrer[:MAX_REFERRER_LENGTH]
        versions = describe_user_agent(ua)
        geo = await self.geo.resolve(info.geo_hint, info.ip)
        utm = {k: v[:MAX_UTM_LENGTH] for k, v in req.utm.items() if k in UTM_KEYS and v}

        return ClickEvent(
            short_url_id=short_url.id,
            timestamp=now,
            ip_hash=hash_ip(info.ip),
            user_agent=ua[: self.settings.user_agent_max_length],
            fingerprint=fp,
            country=geo.country,
            country_name=geo.country_name,
            city=geo.city,
            region=geo.region,
            latitude=geo.latitude,
            longitude=geo.longitude,
            device_type=detect_device_type(ua),
            browser=detect_browser(ua),
            browser_version=versions["browser_version"],
            os=detect_os(ua),
            os_version=versions["os_version"],
            referrer=referrer,
            referrer_domain=parse_referrer_domain(referrer),
            utm_source=utm.get("utm_source"),
            utm_medium=utm.get("utm_medium"),
            utm_campaign=utm.get("utm_campaign"),
            utm_term=utm.get("utm_term"),
            utm_content=utm.get("utm_content"),
            source_type=req.source_type or "direct",
        )

    # --- entry points ---

    async def resolve(self, code: str | None) -> ShortUrl:
        """Validate and look up a live link without tracking anything."""
        return await self._lookup(self._validate(TrackRequest(code=code)), self.clock())

    async def track(
        self,
        req: TrackRequest,
        headers: HeaderMap | Mapping[str, Any] | None,
        peer: str | None = None,
    ) -> TrackOutcome:
        info = normalize_request(headers, peer)
        rate = self._check_rate_limit(info)
        now = self.clock()

        try:
            code = self._validate(req)
            short_url = await self._lookup(code, now)
        except AppError as exc:
            exc.headers.update(rate_limit_headers(rate))
            raise

        fp = req.fingerprint or fingerprint(info.user_agent, info.ip, info.accept_language)
        event = await self._build_event(short_url, req, info, fp, now)
        is_unique = await self._is_unique(short_url, fp, now)

        tracked = True
        try:
            await self.store.insert_click_event(event)
        except PersistenceFailure as exc:
            tracked = False
            logger.error("click_insert_failed", code=code, error=str(exc))

        # Counters only move together with a persisted event row.
        if tracked:
            try:
                await self.store.increment_counters(short_url.id, is_unique)
            except PersistenceFailure as exc:
                logger.error("click_count_increment_failed", code=code, error=str(exc))

        logger.info(
            "click_tracked",
            code=code,
            tracked=tracked,
            unique=is_unique,
            source=event.source_type,
            device=event.device_type,
            country=event.country,
            ip_hash=event.ip_hash,
        )

        return TrackOutcome(
            original_url=short_url.original_url,
            tracked=tracked,
            is_unique=is_unique,
            rate_limit=rate,
        )
