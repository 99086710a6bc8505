"""
Click tracking endpoint — POST /track

Called by the short-link landing page right before it redirects.
Every response carries X-RateLimit-* headers; 429 adds Retry-After.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from linkpulse.core.geo import GeoResolver, get_geo_resolver
from linkpulse.core.ingestion import ClickIngestor, TrackRequest
from linkpulse.middleware.rate_limit import RateLimiter, get_rate_limiter
from linkpulse.models.store import ClickStore, get_store

router = APIRouter(tags=["tracking"])


class TrackBody(BaseModel):
    code: str | None = None
    fingerprint: str | None = None
    referrer: str | None = None
    utm_source: str | None = Field(None, alias="utmSource")
    utm_medium: str | None = Field(None, alias="utmMedium")
    utm_campaign: str | None = Field(None, alias="utmCampaign")
    utm_term: str | None = Field(None, alias="utmTerm")
    utm_content: str | None = Field(None, alias="utmContent")
    source_type: str | None = Field(None, alias="sourceType")

    model_config = {"populate_by_name": True}

    def to_request(self) -> TrackRequest:
        utm = {
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
            "utm_term": self.utm_term,
            "utm_content": self.utm_content,
        }
        return TrackRequest(
            code=self.code,
            fingerprint=self.fingerprint or None,
            referrer=self.referrer or None,
            utm={k: v for k, v in utm.items() if v},
            source_type=self.source_type or None,
        )


def get_ingestor(
    store: ClickStore = Depends(get_store),
    geo: GeoResolver = Depends(get_geo_resolver),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ClickIngestor:
    return ClickIngestor(store=store, geo=geo, limiter=limiter)


def peer_address(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/track")
async def track_click(
    body: TrackBody,
    request: Request,
    ingestor: ClickIngestor = Depends(get_ingestor),
):
    outcome = await ingestor.track(body.to_request(), request.headers, peer_address(request))
    return JSONResponse(
        content={"originalUrl": outcome.original_url, "tracked": outcome.tracked},
        headers=outcome.headers,
    )
