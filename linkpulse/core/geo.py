"""
Geo resolution — fallback chain, never raises.

Order:
  1. Trusted edge headers (Vercel / Cloudflare) → zero network cost
  2. Private / loopback / link-local / unparsable IP → all-null, no network
  3. External geo-IP providers, each bounded by a hard timeout
     - HTTPS provider by default (ipapi.co)
     - plaintext ip-api.com only with LP_GEO_ALLOW_PLAINTEXT=true, since the
       visitor IP would otherwise cross the network unencrypted

Any provider failure degrades to "unknown location" and is logged at warning.
"""

import asyncio
import ipaddress
from dataclasses import asdict, dataclass
from typing import Any, Protocol

import httpx

from linkpulse.config import Settings, get_settings
from linkpulse.core.fingerprint import hash_ip
from linkpulse.core.request_info import GeoHint, clean_country_code, clip_geo_text
from linkpulse.errors import UpstreamDegraded

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class GeoLocation:
    country: str | None = None
    country_name: str | None = None
    city: str | None = None
    region: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in asdict(self).values())


EMPTY_GEO = GeoLocation()


def is_private_ip(ip: str | None) -> bool:
    """True for anything we must not (or cannot) send to a provider."""
    if not ip or ip == "unknown":
        return True
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return True
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
        addr = addr.ipv4_mapped
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_reserved
        or addr.is_multicast
    )


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


# --- Providers ---

class GeoProvider(Protocol):
    name: str

    async def lookup(self, ip: str) -> GeoLocation: ...


class HttpGeoProvider:
    """Shared HTTP plumbing. Subclasses only map response fields."""

    name = "http"

    def __init__(self, url_template: str, timeout: float = 2.0, client: httpx.AsyncClient | None = None):
        self.url_template = url_template
        self.timeout = timeout
        self._client = client

    async def _get_json(self, ip: str) -> dict:
        url = self.url_template.format(ip=ip)
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamDegraded(f"{self.name}: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            raise UpstreamDegraded(f"{self.name}: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamDegraded(f"{self.name}: invalid JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamDegraded(f"{self.name}: unexpected payload")
        return data

    def normalize(self, data: dict) -> GeoLocation:
        raise NotImplementedError

    async def lookup(self, ip: str) -> GeoLocation:
        return self.normalize(await self._get_json(ip))


class IpApiCoProvider(HttpGeoProvider):
    """https://ipapi.co/{ip}/json/ — HTTPS, no key for low volume."""

    name = "ipapi.co"

    def normalize(self, data: dict) -> GeoLocation:
        if data.get("error"):
            raise UpstreamDegraded(f"{self.name}: {data.get('reason') or 'error'}")
        return GeoLocation(
            country=clean_country_code(data.get("country_code") or data.get("country")),
            country_name=clip_geo_text(data.get("country_name")),
            city=clip_geo_text(data.get("city")),
            region=clip_geo_text(data.get("region")),
            latitude=_float_or_none(data.get("latitude")),
            longitude=_float_or_none(data.get("longitude")),
        )


class IpApiComProvider(HttpGeoProvider):
    """http://ip-api.com — free tier is plaintext only. Opt-in."""

    name = "ip-api.com"

    def normalize(self, data: dict) -> GeoLocation:
        if data.get("status") != "success":
            raise UpstreamDegraded(f"{self.name}: {data.get('message') or 'fail'}")
        return GeoLocation(
            country=clean_country_code(data.get("countryCode")),
            country_name=clip_geo_text(data.get("country")),
            city=clip_geo_text(data.get("city")),
            region=clip_geo_text(data.get("regionName")),
            latitude=_float_or_none(data.get("lat")),
            longitude=_float_or_none(data.get("lon")),
        )


# --- Resolver ---

class GeoResolver:
    def __init__(
        self,
        providers: list[GeoProvider] | None = None,
        trust_edge_headers: bool = True,
        timeout: float = 2.0,
    ):
        self.providers = providers or []
        self.trust_edge_headers = trust_edge_headers
        self.timeout = timeout

    async def resolve(self, hint: GeoHint | None, ip: str) -> GeoLocation:
        """``hint`` is the edge geo already read by normalize_request."""
        if self.trust_edge_headers and hint is not None and hint.country:
            return GeoLocation(country=hint.country, city=hint.city, region=hint.region)

        if is_private_ip(ip):
            return EMPTY_GEO

        for provider in self.providers:
            try:
                geo = await asyncio.wait_for(provider.lookup(ip), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("geo_lookup_timeout", provider=provider.name, ip_hash=hash_ip(ip))
                continue
            except UpstreamDegraded as exc:
                logger.warning("geo_lookup_failed", provider=provider.name, error=str(exc), ip_hash=hash_ip(ip))
                continue
            except Exception as exc:
                # Geo never propagates.
                logger.warning("geo_lookup_error", provider=provider.name,
                               error_type=type(exc).__name__, ip_hash=hash_ip(ip))
                continue
            if not geo.is_empty:
                return geo

        return EMPTY_GEO


def build_geo_resolver(settings: Settings | None = None) -> GeoResolver:
    settings = settings or get_settings()
    providers: list[GeoProvider] = [
        IpApiCoProvider(settings.geo_provider_url, timeout=settings.geo_timeout_seconds),
    ]
    if settings.geo_allow_plaintext:
        providers.append(IpApiComProvider(settings.geo_plaintext_url, timeout=settings.geo_timeout_seconds))
    return GeoResolver(
        providers=providers,
        trust_edge_headers=settings.trust_edge_geo_headers,
        timeout=settings.geo_timeout_seconds,
    )


_resolver: GeoResolver | None = None


def get_geo_resolver() -> GeoResolver:
    """FastAPI dependency — built lazily from settings."""
    global _resolver
    if _resolver is None:
        _resolver = build_geo_resolver()
    return _resolver
