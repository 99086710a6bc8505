"""
Request normalization — one header abstraction at the boundary.

Everything downstream (classifiers, fingerprint, geo) consumes a
RequestInfo, never a framework request object.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import unquote


class HeaderMap:
    """Case-insensitive, read-only view over request headers.

    Accepts Starlette ``Headers``, plain dicts, or dicts whose values are
    lists (first element wins).
    """

    def __init__(self, headers: Mapping[str, Any] | None = None):
        self._headers: dict[str, str] = {}
        for name, value in (headers or {}).items():
            if isinstance(value, (list, tuple)):
                value = value[0] if value else None
            if value is None:
                continue
            self._headers.setdefault(name.lower(), str(value))

    @classmethod
    def of(cls, headers: "HeaderMap | Mapping[str, Any] | None") -> "HeaderMap":
        if isinstance(headers, HeaderMap):
            return headers
        return cls(headers)

    def get(self, name: str) -> str | None:
        return self._headers.get(name.lower())

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._headers


@dataclass(frozen=True)
class GeoHint:
    country: str | None = None
    city: str | None = None
    region: str | None = None


@dataclass(frozen=True)
class RequestInfo:
    ip: str
    user_agent: str
    referrer: str | None
    accept_language: str
    geo_hint: GeoHint


def get_client_ip(headers: HeaderMap, peer: str | None = None) -> str:
    """First X-Forwarded-For hop, then the socket peer, then "unknown"."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer or "unknown"


COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")
# Matches ClickEvent.city / region / country_name column widths.
MAX_GEO_TEXT_LENGTH = 100


def clean_country_code(value: Any) -> str | None:
    """ISO alpha-2 or None. Cloudflare's XX (unknown) and T1 (Tor) are dropped."""
    if not value:
        return None
    code = str(value).strip().upper()
    if not COUNTRY_CODE_PATTERN.match(code) or code in ("XX", "T1"):
        return None
    return code


def clip_geo_text(value: Any) -> str | None:
    if not value:
        return None
    return str(value).strip()[:MAX_GEO_TEXT_LENGTH] or None


def read_geo_hint(headers: HeaderMap) -> GeoHint:
    """Edge-provided geo (Vercel, Cloudflare). Values may be URL-encoded."""
    country = headers.get("x-vercel-ip-country") or headers.get("cf-ipcountry")
    city = headers.get("x-vercel-ip-city")
    region = headers.get("x-vercel-ip-country-region")
    return GeoHint(
        country=clean_country_code(country),
        city=clip_geo_text(unquote(city) if city else None),
        region=clip_geo_text(region),
    )


def normalize_request(headers: HeaderMap | Mapping[str, Any] | None, peer: str | None = None) -> RequestInfo:
    hm = HeaderMap.of(headers)
    return RequestInfo(
        ip=get_client_ip(hm, peer),
        user_agent=hm.get("user-agent") or "",
        referrer=hm.get("referer") or None,
        accept_language=hm.get("accept-language") or "",
        geo_hint=read_geo_hint(hm),
    )
