# tests/test_middleware.py
"""Tests for fieldservice/transport/middleware.py: request ID, logging, error handling."""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from fieldservice.infra.metrics import get_metrics_collector
from fieldservice.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)


def _build_app(raise_for: set[str] | None = None, logging_enabled: bool = True):
    """Build a minimal FastAPI app with middleware for testing."""
    app = FastAPI()
    # Order matters: ErrorHandling wraps RequestID
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=logging_enabled)
    app.add_middleware(RequestIDMiddleware)

    raise_for = raise_for or set()

    @app.get("/test")
    def test_endpoint():
        if "/test" in raise_for:
            raise RuntimeError("boom")
        return {"ok": True}

    return app


# ============================================================================
# RequestIDMiddleware
# ============================================================================

class TestRequestIDMiddleware:
    def test_generates_request_id(self):
        client = TestClient(_build_app())
        resp = client.get("/test")
        assert resp.status_code == 200
        rid = resp.headers["X-Request-ID"]
        assert len(rid) >= 32  # UUID has 36 chars with dashes

    def test_preserves_existing_request_id(self):
        client = TestClient(_build_app())
        resp = client.get("/test", headers={"X-Request-ID": "my-custom-request-id-123"})
        assert resp.headers["X-Request-ID"] == "my-custom-request-id-123"


# ============================================================================
# RequestLoggingMiddleware
# ============================================================================

class TestRequestLoggingMiddleware:
    def test_records_request_duration(self):
        client = TestClient(_build_app())
        client.get("/test")

        histograms = get_metrics_collector().get_metrics()["histograms"]
        assert histograms["http_request_duration_ms{method=GET}"]["count"] == 1

    def test_disabled_records_nothing(self):
        client = TestClient(_build_app(logging_enabled=False))
        client.get("/test")

        assert get_metrics_collector().get_metrics()["histograms"] == {}


# ============================================================================
# ErrorHandlingMiddleware
# ============================================================================

class TestErrorHandlingMiddleware:
    def test_normal_request_passes_through(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        resp = client.get("/test")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    def test_unhandled_error_returns_500(self):
        client = TestClient(_build_app(raise_for={"/test"}), raise_server_exceptions=False)
        resp = client.get("/test", headers={"X-Request-ID": "req-42"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "request_id": "req-42"}
