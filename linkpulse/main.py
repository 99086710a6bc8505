"""
LinkPulse — click tracking and analytics for short links.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linkpulse.api.analytics import router as analytics_router
from linkpulse.api.redirect import router as redirect_router
from linkpulse.api.share import router as share_router
from linkpulse.api.track import router as track_router
from linkpulse.api.urls import router as urls_router
from linkpulse.config import get_settings
from linkpulse.errors import register_error_handlers
from linkpulse.middleware.security import SecurityHeadersMiddleware
from linkpulse.models.database import dispose_engine

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("linkpulse_starting", base_url=settings.base_url, geo_plaintext=settings.geo_allow_plaintext)
    yield
    await dispose_engine()
    logger.info("linkpulse_shutting_down")


app = FastAPI(
    title="LinkPulse",
    description="Click tracking and analytics for short links.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

register_error_handlers(app)

app.add_middleware(SecurityHeadersMiddleware)

ALLOWED_ORIGINS = ["*"] if get_settings().debug else [
    get_settings().base_url,
    get_settings().short_url_base,
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

# --- Routes ---
# share before analytics: /analytics/shared/{token} must win over /analytics/{code}/...
app.include_router(track_router)
app.include_router(redirect_router)
app.include_router(urls_router)
app.include_router(share_router)
app.include_router(analytics_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "linkpulse", "version": VERSION}
