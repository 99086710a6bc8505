"""
Aggregation — raw click events → breakdowns, timelines, summaries.

Everything here is a pure function of the event list it is given
(plus "now" for windowing). Nothing is cached or persisted.
Dates and hours are bucketed in UTC.
"""

import datetime
from collections import Counter
from typing import Any, Callable, Iterable, Sequence

from linkpulse.core.detection import referrer_label

PERIODS: dict[str, datetime.timedelta | None] = {
    "24h": datetime.timedelta(hours=24),
    "7d": datetime.timedelta(days=7),
    "30d": datetime.timedelta(days=30),
    "90d": datetime.timedelta(days=90),
    "all": None,
}
DEFAULT_PERIOD = "30d"
OWNER_PERIODS = ("7d", "30d", "90d", "all")
SHARED_PERIODS = ("24h", "7d", "30d", "all")


def normalize_period(period: str | None, allowed: Iterable[str] = OWNER_PERIODS) -> str:
    """Unknown or missing periods fall back to 30d."""
    return period if period in tuple(allowed) else DEFAULT_PERIOD


def parse_period(period: str | None) -> datetime.timedelta | None:
    """Window length for a period name; None means all time."""
    if period not in PERIODS:
        period = DEFAULT_PERIOD
    return PERIODS[period]


def period_start(period: str, now: datetime.datetime) -> datetime.datetime | None:
    window = parse_period(period)
    return None if window is None else now - window


def period_days(period: str) -> int | None:
    window = PERIODS.get(period)
    if window is None:
        return None
    return max(1, window.days)


def _as_utc(ts: datetime.datetime | str) -> datetime.datetime:
    if isinstance(ts, str):
        ts = datetime.datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc)


def group_and_count(
    items: Iterable[Any],
    key_fn: Callable[[Any], str | None],
    default_key: str = "Unknown",
) -> list[dict]:
    """[{name, count}] sorted by count desc; ties keep first-seen order."""
    counts: Counter = Counter()
    for item in items:
        counts[key_fn(item) or default_key] += 1
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [{"name": name, "count": count} for name, count in ranked]


def build_timeline(
    events: Sequence[Any],
    now: datetime.datetime | None = None,
    days: int | None = None,
) -> list[dict]:
    """Clicks per UTC day, ascending.

    With ``days`` every date from (today - days + 1) to today is present,
    zero-filled. Without it only dates that have clicks are listed.
    """
    by_day: Counter = Counter(_as_utc(e.timestamp).date() for e in events)

    if days is None:
        return [{"date": d.isoformat(), "clicks": by_day[d]} for d in sorted(by_day)]

    today = _as_utc(now or datetime.datetime.now(datetime.timezone.utc)).date()
    first = today - datetime.timedelta(days=days - 1)
    last = today
    if by_day:
        first = min(first, min(by_day))
        last = max(last, max(by_day))

    timeline = []
    day = first
    while day <= last:
        timeline.append({"date": day.isoformat(), "clicks": by_day.get(day, 0)})
        day += datetime.timedelta(days=1)
    return timeline


def hourly_distribution(events: Iterable[Any]) -> list[dict]:
    """24 buckets by UTC hour-of-day, regardless of date."""
    hours = [0] * 24
    for e in events:
        hours[_as_utc(e.timestamp).hour] += 1
    return [{"hour": h, "clicks": n} for h, n in enumerate(hours)]


def _iso(ts: datetime.datetime | None) -> str | None:
    return _as_utc(ts).isoformat() if ts else None


def recent_clicks(events: Sequence[Any], limit: int = 20) -> list[dict]:
    newest = sorted(events, key=lambda e: _as_utc(e.timestamp), reverse=True)[:limit]
    return [
        {
            "timestamp": _iso(e.timestamp),
            "country": e.country,
            "city": e.city,
            "deviceType": e.device_type,
            "browser": e.browser,
            "os": e.os,
            "referrer": e.referrer_domain,
            "sourceType": e.source_type,
        }
        for e in newest
    ]


def _link_header(short_url: Any) -> dict:
    return {
        "code": short_url.code,
        "originalUrl": short_url.original_url,
        "title": short_url.title,
        "createdAt": _iso(short_url.created_at),
        "totalClicks": short_url.total_clicks or 0,
        "uniqueClicks": short_url.unique_clicks or 0,
    }


def summarize_clicks(
    short_url: Any,
    events: Sequence[Any],
    period: str,
    now: datetime.datetime,
) -> dict:
    """Owner analytics view for one link."""
    today_start = _as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today_start - datetime.timedelta(days=7)

    return {
        **_link_header(short_url),
        "period": period,
        "periodClicks": len(events),
        "clicksToday": sum(1 for e in events if _as_utc(e.timestamp) >= today_start),
        "clicksLast7Days": sum(1 for e in events if _as_utc(e.timestamp) >= week_start),
        "countries": group_and_count(events, lambda e: e.country)[:10],
        "devices": group_and_count(events, lambda e: e.device_type, "unknown"),
        "browsers": group_and_count(events, lambda e: e.browser),
        "operatingSystems": group_and_count(events, lambda e: e.os),
        "sources": group_and_count(events, lambda e: e.source_type, "direct"),
        "referrers": group_and_count(events, lambda e: referrer_label(e.referrer_domain), "Direct")[:10],
        "timeline": build_timeline(events, now, period_days(period)),
        "recentClicks": recent_clicks(events),
    }


def shared_analytics(
    short_url: Any,
    events: Sequence[Any],
    period: str,
    now: datetime.datetime,
) -> dict:
    """Public (share-token) view: adds UTM breakdowns and time-of-day."""
    return {
        **_link_header(short_url),
        "period": period,
        "qrScans": sum(1 for e in events if e.source_type == "qr"),
        "countries": group_and_count(events, lambda e: e.country_name or e.country),
        "devices": group_and_count(events, lambda e: e.device_type),
        "browsers": group_and_count(events, lambda e: e.browser),
        "sources": group_and_count(events, lambda e: e.source_type),
        "referrers": group_and_count(events, lambda e: e.referrer_domain),
        "timeline": build_timeline(events, now, period_days(period)),
        "utmSources": group_and_count([e for e in events if e.utm_source], lambda e: e.utm_source),
        "utmMediums": group_and_count([e for e in events if e.utm_medium], lambda e: e.utm_medium),
        "utmCampaigns": group_and_count([e for e in events if e.utm_campaign], lambda e: e.utm_campaign),
        "hourlyDistribution": hourly_distribution(events),
    }
