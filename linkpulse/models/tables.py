"""
Database models — the "truth layer."

Design principles:
  - click_events is append-only (no updates; rows go only via FK cascade)
  - short_urls is mutable (can be deactivated) but its counters are only
    ever bumped with a single server-side UPDATE
  - IPs are stored hashed, never raw
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ShortUrl(Base):
    __tablename__ = "short_urls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)   # Supabase auth user; NULL = anonymous
    code = Column(String(32), nullable=False, unique=True, index=True)
    original_url = Column(Text, nullable=False)
    title = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Rolling counters, bumped only by ClickStore.increment_counters
    total_clicks = Column(Integer, nullable=False, default=0, server_default="0")
    unique_clicks = Column(Integer, nullable=False, default=0, server_default="0")


class ClickEvent(Base):
    """One row per tracked visit. Immutable once written."""
    __tablename__ = "click_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    short_url_id = Column(UUID(as_uuid=True), ForeignKey("short_urls.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # --- Visitor identity (hashed) ---
    ip_hash = Column(String(16), nullable=True)
    user_agent = Column(Text, nullable=True)                # truncated
    fingerprint = Column(String(64), nullable=True)

    # --- Geo ---
    country = Column(String(2), nullable=True)
    country_name = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # --- Device ---
    device_type = Column(String(20), nullable=True)         # mobile, tablet, desktop
    browser = Column(String(50), nullable=True)
    browser_version = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    os_version = Column(String(50), nullable=True)

    # --- Source ---
    referrer = Column(Text, nullable=True)
    referrer_domain = Column(String(255), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    utm_term = Column(String(255), nullable=True)
    utm_content = Column(String(255), nullable=True)
    source_type = Column(String(10), nullable=False, default="direct")   # direct, qr, api

    __table_args__ = (
        Index("ix_click_events_url_timestamp", "short_url_id", "timestamp"),
        Index("ix_click_events_url_fingerprint", "short_url_id", "fingerprint", "timestamp"),
        Index("ix_click_events_country", "country"),
        Index("ix_click_events_source_type", "source_type"),
    )


class AnalyticsShareToken(Base):
    """Read-only public access to one link's analytics."""
    __tablename__ = "analytics_share_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    short_url_id = Column(UUID(as_uuid=True), ForeignKey("short_urls.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
