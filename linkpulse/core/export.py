"""
Analytics export — CSV and JSON renderings of raw click events.

CSV cells that a spreadsheet would evaluate as a formula (leading = + - @)
are prefixed with a single quote, and every field is quoted with embedded
quotes doubled.
"""

import csv
import datetime
import io
from typing import Any, Sequence

FORMULA_PREFIXES = ("=", "+", "-", "@")

EXPORT_COLUMNS = [
    ("Timestamp", "timestamp"),
    ("Country", "country"),
    ("City", "city"),
    ("Device", "device"),
    ("Browser", "browser"),
    ("OS", "os"),
    ("Referrer", "referrer"),
    ("Source", "source"),
    ("UTM Source", "utmSource"),
    ("UTM Medium", "utmMedium"),
    ("UTM Campaign", "utmCampaign"),
]


def escape_csv_value(value: Any) -> str:
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def _timestamp(ts: datetime.datetime | None) -> str:
    if ts is None:
        return ""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc).isoformat()


def export_rows(events: Sequence[Any]) -> list[dict]:
    return [
        {
            "timestamp": _timestamp(e.timestamp),
            "country": e.country or "Unknown",
            "city": e.city or "Unknown",
            "device": e.device_type or "Unknown",
            "browser": e.browser or "Unknown",
            "os": e.os or "Unknown",
            "referrer": e.referrer_domain or "Direct",
            "source": e.source_type or "direct",
            "utmSource": e.utm_source or "",
            "utmMedium": e.utm_medium or "",
            "utmCampaign": e.utm_campaign or "",
        }
        for e in events
    ]


def to_csv(rows: Sequence[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for row in rows:
        writer.writerow([escape_csv_value(row.get(key)) for _, key in EXPORT_COLUMNS])
    return buf.getvalue()


def to_json(short_url: Any, period: str, rows: Sequence[dict], exported_at: datetime.datetime) -> dict:
    return {
        "shortUrl": {
            "code": short_url.code,
            "originalUrl": short_url.original_url,
            "title": short_url.title,
        },
        "period": period,
        "exportedAt": _timestamp(exported_at),
        "totalClicks": len(rows),
        "clicks": list(rows),
    }
