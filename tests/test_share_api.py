"""Tests for analytics share tokens and the public shared view."""

import datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from linkpulse.main import app
from linkpulse.middleware.rate_limit import get_rate_limiter
from linkpulse.middleware.supabase_auth import SupabaseUser, require_user
from linkpulse.models.database import get_db
from linkpulse.models.store import get_store
from linkpulse.models.tables import AnalyticsShareToken, ClickEvent

OWNER = SupabaseUser(id="6f1c2b9e-2d4a-4c1e-9a57-0b8f3e1d2c44")


def _now():
    return datetime.datetime.now(datetime.timezone.utc)


def _share(short_url, **overrides):
    fields = dict(
        id=uuid4(),
        short_url_id=short_url.id,
        token="tok_abcdefghijklmnop",
        is_active=True,
        expires_at=None,
        created_at=_now(),
    )
    fields.update(overrides)
    return AnalyticsShareToken(**fields)


@pytest.fixture
def short_url(make_short_url):
    return make_short_url("abc123", user_id=UUID(OWNER.id))


@pytest.fixture
def store(fake_store, short_url):
    fake_store.urls["abc123"] = short_url
    fake_store.events.extend([
        ClickEvent(id=uuid4(), short_url_id=short_url.id, timestamp=_now() - datetime.timedelta(hours=2),
                   source_type="qr", utm_source="poster", country="CA", country_name="Canada"),
        ClickEvent(id=uuid4(), short_url_id=short_url.id, timestamp=_now() - datetime.timedelta(days=3),
                   source_type="direct", country="CA", country_name="Canada"),
    ])
    return fake_store


@pytest.fixture
def db(short_url):
    session = AsyncMock()
    session.add = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    session.execute.return_value = result
    session.get.return_value = short_url
    return session


@pytest.fixture
def client(db, store, limiter):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[require_user] = lambda: OWNER
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSharedView:
    def test_unknown_token_404(self, client):
        assert client.get("/analytics/shared/missing").status_code == 404

    def test_revoked_token_404(self, client, db, short_url):
        db.execute.return_value.scalar_one_or_none.return_value = _share(short_url, is_active=False)
        assert client.get("/analytics/shared/tok_abcdefghijklmnop").status_code == 404

    def test_expired_token_410(self, client, db, short_url):
        db.execute.return_value.scalar_one_or_none.return_value = _share(
            short_url, expires_at=_now() - datetime.timedelta(minutes=5),
        )
        resp = client.get("/analytics/shared/tok_abcdefghijklmnop")
        assert resp.status_code == 410
        assert resp.json()["code"] == "gone"

    def test_shared_dashboard(self, client, db, short_url):
        db.execute.return_value.scalar_one_or_none.return_value = _share(short_url)
        resp = client.get("/analytics/shared/tok_abcdefghijklmnop?period=24h")
        assert resp.status_code == 200
        body = resp.json()
        assert body["period"] == "24h"
        assert body["qrScans"] == 1
        assert body["utmSources"] == [{"name": "poster", "count": 1}]
        assert body["countries"] == [{"name": "Canada", "count": 1}]
        assert len(body["hourlyDistribution"]) == 24

    def test_shared_period_7d(self, client, db, short_url):
        db.execute.return_value.scalar_one_or_none.return_value = _share(short_url)
        body = client.get("/analytics/shared/tok_abcdefghijklmnop?period=7d").json()
        assert body["countries"] == [{"name": "Canada", "count": 2}]
        assert sum(d["clicks"] for d in body["timeline"]) == 2

    def test_no_auth_required(self, db, store, limiter, short_url):
        db.execute.return_value.scalar_one_or_none.return_value = _share(short_url)
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        try:
            resp = TestClient(app).get("/analytics/shared/tok_abcdefghijklmnop")
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 200


class TestShareManagement:
    def test_create_token(self, client, db):
        resp = client.post("/analytics/abc123/share", json={"expiresInDays": 7})
        assert resp.status_code == 201
        body = resp.json()
        assert body["shareUrl"].endswith(f"/analytics/shared/{body['token']}")
        assert body["expiresAt"] is not None
        created = db.add.call_args[0][0]
        assert created.token == body["token"]
        db.commit.assert_awaited()

    def test_create_token_without_body(self, client):
        resp = client.post("/analytics/abc123/share")
        assert resp.status_code == 201
        assert resp.json()["expiresAt"] is None

    def test_non_owner_cannot_create(self, client):
        app.dependency_overrides[require_user] = lambda: SupabaseUser(id=str(uuid4()))
        assert client.post("/analytics/abc123/share").status_code == 401

    def test_list_tokens(self, client, db, short_url):
        db.execute.return_value.scalars.return_value.all.return_value = [_share(short_url)]
        resp = client.get("/analytics/abc123/share")
        assert resp.status_code == 200
        assert [t["token"] for t in resp.json()["tokens"]] == ["tok_abcdefghijklmnop"]

    def test_revoke_token(self, client, db, short_url):
        share = _share(short_url)
        db.execute.return_value.scalar_one_or_none.return_value = share
        resp = client.delete("/analytics/abc123/share/tok_abcdefghijklmnop")
        assert resp.status_code == 200
        assert share.is_active is False
        db.commit.assert_awaited()

    def test_revoke_unknown_token_404(self, client):
        assert client.delete("/analytics/abc123/share/nope").status_code == 404
