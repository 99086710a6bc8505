"""Tests for analytics aggregation."""

import datetime
from types import SimpleNamespace

import pytest

from linkpulse.core.aggregation import (
    build_timeline,
    group_and_count,
    hourly_distribution,
    normalize_period,
    parse_period,
    period_start,
    shared_analytics,
    summarize_clicks,
)

NOW = datetime.datetime(2026, 3, 10, 15, 30, tzinfo=datetime.timezone.utc)


def click(ts, **fields):
    defaults = dict(
        country=None, country_name=None, city=None, device_type=None, browser=None, os=None,
        referrer_domain=None, source_type="direct", utm_source=None, utm_medium=None, utm_campaign=None,
    )
    defaults.update(fields)
    return SimpleNamespace(timestamp=ts, **defaults)


def days_ago(n, hour=12):
    return (NOW - datetime.timedelta(days=n)).replace(hour=hour, minute=0)


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

class TestPeriods:
    def test_known_windows(self):
        assert parse_period("24h") == datetime.timedelta(hours=24)
        assert parse_period("90d") == datetime.timedelta(days=90)
        assert parse_period("all") is None

    def test_unknown_falls_back_to_30d(self):
        assert parse_period("1y") == datetime.timedelta(days=30)
        assert normalize_period("1y") == "30d"
        assert normalize_period(None) == "30d"

    def test_shared_only_periods(self):
        assert normalize_period("24h") == "30d"
        assert normalize_period("24h", ("24h", "7d")) == "24h"

    def test_period_start(self):
        assert period_start("7d", NOW) == NOW - datetime.timedelta(days=7)
        assert period_start("all", NOW) is None


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

class TestGroupAndCount:
    def test_sorted_desc_with_default(self):
        events = [click(NOW, country=c) for c in ["US", None, "DE", "US", None, "US"]]
        assert group_and_count(events, lambda e: e.country) == [
            {"name": "US", "count": 3},
            {"name": "Unknown", "count": 2},
            {"name": "DE", "count": 1},
        ]

    def test_ties_keep_first_seen_order(self):
        events = [click(NOW, browser=b) for b in ["Firefox", "Chrome", "Safari", "Chrome", "Firefox"]]
        names = [row["name"] for row in group_and_count(events, lambda e: e.browser)]
        assert names == ["Firefox", "Chrome", "Safari"]

    def test_custom_default(self):
        assert group_and_count([click(NOW)], lambda e: e.device_type, "unknown") == [{"name": "unknown", "count": 1}]

    def test_empty(self):
        assert group_and_count([], lambda e: e.country) == []


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

class TestTimeline:
    def test_zero_filled_days(self):
        events = [click(days_ago(2)) for _ in range(5)] + [click(days_ago(0)) for _ in range(2)]
        timeline = build_timeline(events, NOW, days=3)
        assert [d["clicks"] for d in timeline] == [5, 0, 2]
        assert sum(d["clicks"] for d in timeline) == 7
        assert [d["date"] for d in timeline] == ["2026-03-08", "2026-03-09", "2026-03-10"]

    def test_sparse_without_days(self):
        events = [click(days_ago(4)), click(days_ago(0)), click(days_ago(4))]
        assert build_timeline(events) == [
            {"date": "2026-03-06", "clicks": 2},
            {"date": "2026-03-10", "clicks": 1},
        ]

    def test_buckets_by_utc_date(self):
        tz = datetime.timezone(datetime.timedelta(hours=-5))
        late_evening = datetime.datetime(2026, 3, 9, 22, 0, tzinfo=tz)  # 03:00 UTC on the 10th
        assert build_timeline([click(late_evening)]) == [{"date": "2026-03-10", "clicks": 1}]

    def test_naive_timestamps_are_utc(self):
        naive = datetime.datetime(2026, 3, 10, 1, 0)
        assert build_timeline([click(naive)]) == [{"date": "2026-03-10", "clicks": 1}]

    def test_events_older_than_fill_window_are_kept(self):
        events = [click(days_ago(9)), click(days_ago(0))]
        timeline = build_timeline(events, NOW, days=7)
        assert sum(d["clicks"] for d in timeline) == 2
        assert timeline[0]["date"] == "2026-03-01"


class TestHourlyDistribution:
    def test_24_buckets(self):
        events = [click(NOW.replace(hour=9)), click(NOW.replace(hour=9) - datetime.timedelta(days=3)), click(NOW.replace(hour=23))]
        hours = hourly_distribution(events)
        assert len(hours) == 24
        assert hours[9] == {"hour": 9, "clicks": 2}
        assert hours[23]["clicks"] == 1
        assert sum(h["clicks"] for h in hours) == 3


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@pytest.fixture
def events():
    return [
        click(NOW - datetime.timedelta(hours=1), country="US", country_name="United States",
              device_type="mobile", browser="Safari", os="iOS", referrer_domain="t.co",
              source_type="qr", utm_source="twitter", utm_campaign="launch"),
        click(NOW - datetime.timedelta(days=2), country="US", country_name="United States",
              device_type="desktop", browser="Chrome", os="Windows", referrer_domain="x.com",
              utm_source="twitter", utm_medium="social"),
        click(NOW - datetime.timedelta(days=10), country="DE", device_type=None, browser="Firefox",
              os="Linux", source_type=None),
    ]


class TestSummarizeClicks:
    def test_owner_view(self, make_short_url, events):
        short_url = make_short_url("abc123", total_clicks=40, unique_clicks=25)
        summary = summarize_clicks(short_url, events, "30d", NOW)

        assert summary["code"] == "abc123"
        assert summary["totalClicks"] == 40
        assert summary["uniqueClicks"] == 25
        assert summary["periodClicks"] == 3
        assert summary["clicksToday"] == 1
        assert summary["clicksLast7Days"] == 2
        assert summary["countries"][0] == {"name": "US", "count": 2}
        assert {"name": "unknown", "count": 1} in summary["devices"]
        assert {"name": "direct", "count": 2} in summary["sources"]
        assert summary["referrers"][0] == {"name": "Twitter/X", "count": 2}
        assert {"name": "Direct", "count": 1} in summary["referrers"]
        assert len(summary["timeline"]) >= 30
        assert sum(d["clicks"] for d in summary["timeline"]) == 3
        assert summary["recentClicks"][0]["country"] == "US"
        assert summary["recentClicks"][0]["sourceType"] == "qr"

    def test_all_time_timeline_is_sparse(self, make_short_url, events):
        summary = summarize_clicks(make_short_url(), events, "all", NOW)
        assert len(summary["timeline"]) == 3

    def test_recent_clicks_capped_at_20(self, make_short_url):
        many = [click(NOW - datetime.timedelta(minutes=i)) for i in range(30)]
        assert len(summarize_clicks(make_short_url(), many, "7d", NOW)["recentClicks"]) == 20


class TestSharedAnalytics:
    def test_shared_view(self, make_short_url, events):
        view = shared_analytics(make_short_url(), events, "7d", NOW)

        assert view["qrScans"] == 1
        assert view["countries"][0] == {"name": "United States", "count": 2}
        assert {"name": "DE", "count": 1} in view["countries"]
        assert view["utmSources"] == [{"name": "twitter", "count": 2}]
        assert view["utmMediums"] == [{"name": "social", "count": 1}]
        assert view["utmCampaigns"] == [{"name": "launch", "count": 1}]
        assert len(view["hourlyDistribution"]) == 24
        assert view["period"] == "7d"
