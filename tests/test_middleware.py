"""Tests for pure ASGI middleware (middleware.py).

Tests each middleware in isolation using Starlette test utilities.
"""

import json
import logging
import os
from unittest.mock import patch

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient


def _ok_app(request: Request) -> JSONResponse:
    """Simple handler that returns 200 OK."""
    return JSONResponse({"ok": True})


def _error_app(request: Request):
    """Handler that raises an unhandled exception."""
    raise RuntimeError("Intentional test error")


async def _echo_app(request: Request) -> JSONResponse:
    body = await request.body()
    return JSONResponse({"size": len(body)})


def _routes():
    return [
        Route("/test", _ok_app),
        Route("/api/content", _ok_app),
        Route("/api/health", _ok_app),
        Route("/api/echo", _echo_app, methods=["POST"]),
    ]


class TestRequestLoggingMiddleware:
    def test_adds_request_id_header(self):
        """Response includes X-Request-ID header."""
        from contentflow.api.middleware import RequestLoggingMiddleware

        app = Starlette(routes=_routes())
        app.add_middleware(RequestLoggingMiddleware)
        client = TestClient(app)
        resp = client.get("/test")
        assert "x-request-id" in resp.headers

    def test_preserves_existing_request_id(self):
        """If client sends X-Request-ID, it is preserved."""
        from contentflow.api.middleware import RequestLoggingMiddleware

        app = Starlette(routes=_routes())
        app.add_middleware(RequestLoggingMiddleware)
        client = TestClient(app)
        resp = client.get("/test", headers={"X-Request-ID": "custom-id-42"})
        assert resp.headers["x-request-id"] == "custom-id-42"

    def test_adds_response_time_header(self):
        """Response includes X-Response-Time-Ms header."""
        from contentflow.api.middleware import RequestLoggingMiddleware

        app = Starlette(routes=_routes())
        app.add_middleware(RequestLoggingMiddleware)
        client = TestClient(app)
        resp = client.get("/test")
        ms = float(resp.headers["x-response-time-ms"])
        assert ms >= 0

    def test_logs_json_line_with_origin(self):
        """Access log line is JSON and carries method, path, status and origin."""
        from contentflow.api import middleware

        records: list[logging.LogRecord] = []

        class _Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        middleware._access_logger.addHandler(_Capture())
        app = Starlette(routes=_routes())
        app.add_middleware(middleware.RequestLoggingMiddleware)
        TestClient(app).get("/test", headers={"Origin": "http://localhost:5173"})

        line = json.loads(records[-1].getMessage())
        assert line["method"] == "GET"
        assert line["path"] == "/test"
        assert line["status"] == 200
        assert line["origin"] == "http://localhost:5173"


class TestErrorHandlingMiddleware:
    def test_returns_500_json_on_unhandled_exception(self):
        """Unhandled exceptions return structured 500 JSON."""
        from contentflow.api.middleware import ErrorHandlingMiddleware

        app = Starlette(routes=[Route("/error", _error_app)])
        app.add_middleware(ErrorHandlingMiddleware)
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/error")
        assert resp.status_code == 500
        data = resp.json()
        assert data["error"]["code"] == "internal_error"
        assert "Intentional" not in data["error"]["message"]

    def test_passes_through_normal_requests(self):
        """Normal requests pass through without modification."""
        from contentflow.api.middleware import ErrorHandlingMiddleware

        app = Starlette(routes=_routes())
        app.add_middleware(ErrorHandlingMiddleware)
        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}


class TestSecurityHeadersMiddleware:
    def test_all_security_headers_present(self):
        """All expected security headers are set on responses."""
        from contentflow.api.middleware import SecurityHeadersMiddleware

        app = Starlette(routes=_routes())
        app.add_middleware(SecurityHeadersMiddleware)
        client = TestClient(app)
        resp = client.get("/test")
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "DENY"
        assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        assert "content-security-policy" in resp.headers


class TestRateLimitMiddleware:
    def _client(self, limit: int):
        from contentflow.api.middleware import RateLimitMiddleware

        with patch.dict(os.environ, {"RATE_LIMIT_REQUESTS": str(limit)}):
            from contentflow.config import get_settings

            get_settings.cache_clear()
            app = Starlette(routes=_routes())
            app.add_middleware(RateLimitMiddleware)
            client = TestClient(app)
            client.get("/test")  # build middleware stack under patched env
        return client

    def test_blocks_after_limit(self):
        client = self._client(2)
        assert client.get("/api/content").status_code == 200
        assert client.get("/api/content").status_code == 200
        resp = client.get("/api/content")
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limit_exceeded"
        assert "retry-after" in resp.headers

    def test_non_api_paths_not_limited(self):
        client = self._client(1)
        for _ in range(5):
            assert client.get("/test").status_code == 200

    def test_health_exempt(self):
        client = self._client(1)
        for _ in range(5):
            assert client.get("/api/health").status_code == 200

    def test_is_allowed_per_client(self):
        from contentflow.api.middleware import RateLimitMiddleware

        limiter = RateLimitMiddleware(_ok_app)
        limiter.max_requests = 1
        assert limiter._is_allowed("1.1.1.1") is True
        assert limiter._is_allowed("1.1.1.1") is False
        assert limiter._is_allowed("2.2.2.2") is True

    def test_window_expiry_readmits(self):
        from contentflow.api.middleware import RateLimitMiddleware

        limiter = RateLimitMiddleware(_ok_app)
        limiter.max_requests = 1
        limiter.window_seconds = 0.0
        assert limiter._is_allowed("1.1.1.1") is True
        assert limiter._is_allowed("1.1.1.1") is True

    def test_client_table_capped_when_all_active(self):
        from contentflow.api.middleware import RateLimitMiddleware

        limiter = RateLimitMiddleware(_ok_app)
        limiter.MAX_CLIENTS = 3
        for ip in ("1.1.1.1", "2.2.2.2", "3.3.3.3"):
            assert limiter._is_allowed(ip) is True

        assert limiter._is_allowed("4.4.4.4") is True
        assert len(limiter._requests) == 3
        assert "1.1.1.1" not in limiter._requests
        assert "4.4.4.4" in limiter._requests


class TestRequestBodyLimitMiddleware:
    def _client(self, limit: int):
        from contentflow.api.middleware import RequestBodyLimitMiddleware

        with patch.dict(os.environ, {"MAX_REQUEST_BODY_SIZE": str(limit)}):
            from contentflow.config import get_settings

            get_settings.cache_clear()
            app = Starlette(routes=_routes())
            app.add_middleware(RequestBodyLimitMiddleware)
            client = TestClient(app)
            client.get("/test")
        return client

    def test_rejects_oversized_body(self):
        client = self._client(10)
        resp = client.post("/api/echo", content=b"x" * 11)
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "payload_too_large"

    def test_accepts_body_within_limit(self):
        client = self._client(10)
        resp = client.post("/api/echo", content=b"x" * 10)
        assert resp.status_code == 200
        assert resp.json() == {"size": 10}

