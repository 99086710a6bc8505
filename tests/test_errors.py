"""Tests for the error taxonomy and its HTTP rendering."""

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from linkpulse.errors import (
    CodeGenerationError,
    Gone,
    NotFound,
    RateLimitExceeded,
    Unauthorized,
    ValidationError,
    register_error_handlers,
)


class Body(BaseModel):
    count: int


def _app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/gone")
    async def gone():
        raise Gone("Short URL is no longer active", headers={"X-RateLimit-Limit": "100"})

    @app.get("/limited")
    async def limited():
        raise RateLimitExceeded("slow down", retry_after=12)

    @app.post("/body")
    async def body(payload: Body):
        return payload

    return app


class TestTaxonomy:
    def test_status_codes(self):
        assert ValidationError("x").status_code == 400
        assert Unauthorized("x").status_code == 401
        assert NotFound("x").status_code == 404
        assert Gone("x").status_code == 410
        assert RateLimitExceeded("x", retry_after=1).status_code == 429
        assert CodeGenerationError("x").status_code == 500

    def test_to_dict(self):
        assert NotFound("Short URL not found").to_dict() == {"error": "Short URL not found", "code": "not_found"}
        assert ValidationError("bad", details=["a"]).to_dict()["details"] == ["a"]

    def test_rate_limit_payload(self):
        exc = RateLimitExceeded("slow down", retry_after=7, headers={"X-RateLimit-Remaining": "0"})
        assert exc.to_dict()["retryAfter"] == 7
        assert exc.headers == {"X-RateLimit-Remaining": "0", "Retry-After": "7"}


class TestHandlers:
    def test_app_error_rendered_with_headers(self):
        resp = TestClient(_app()).get("/gone")
        assert resp.status_code == 410
        assert resp.json() == {"error": "Short URL is no longer active", "code": "gone"}
        assert resp.headers["X-RateLimit-Limit"] == "100"

    def test_rate_limit_rendered(self):
        resp = TestClient(_app()).get("/limited")
        assert resp.status_code == 429
        assert resp.json()["retryAfter"] == 12
        assert resp.headers["Retry-After"] == "12"

    def test_request_validation_is_400(self):
        resp = TestClient(_app()).post("/body", json={"count": "many"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["details"]
