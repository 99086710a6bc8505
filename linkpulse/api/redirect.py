"""
Short link redirect — /r/{code}

Runs the same ingestion pipeline as POST /track, with:
  - UTM parameters read from this request's own query string
  - ?src=qr|api selecting the source type (anything else → direct)

A rate-limited visitor is still redirected; only the click goes unrecorded.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from linkpulse.api.track import get_ingestor, peer_address
from linkpulse.core.detection import parse_utm_params
from linkpulse.core.fingerprint import hash_ip
from linkpulse.core.ingestion import SOURCE_TYPES, ClickIngestor, TrackRequest
from linkpulse.errors import RateLimitExceeded
from linkpulse.middleware.rate_limit import client_ip

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["redirect"])


@router.get("/r/{code}")
async def redirect_short_url(
    code: str,
    request: Request,
    src: str | None = None,
    ingestor: ClickIngestor = Depends(get_ingestor),
):
    req = TrackRequest(
        code=code,
        utm=parse_utm_params(str(request.url)),
        source_type=src if src in SOURCE_TYPES else None,
    )

    try:
        outcome = await ingestor.track(req, request.headers, peer_address(request))
    except RateLimitExceeded as exc:
        short_url = await ingestor.resolve(code)
        logger.info("redirect_untracked", code=code, reason="rate_limited", ip_hash=hash_ip(client_ip(request)))
        return RedirectResponse(short_url.original_url, status_code=302, headers=exc.headers)

    return RedirectResponse(outcome.original_url, status_code=302, headers=outcome.headers)
