"""Pure ASGI middleware for the ContentFlow API.

Uses raw ASGI middleware (NOT BaseHTTPMiddleware).  Provides request
logging, error handling, security headers, rate limiting and a request
body size limit.
"""

import asyncio
import collections
import json
import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from contentflow.config import get_settings

from .errors import ErrorCode, error_response

logger = logging.getLogger(__name__)


def _get_access_logger() -> logging.Logger:
    """Return a logger configured for structured JSON output."""
    log = logging.getLogger("contentflow.access")
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        log.propagate = False
    return log


_access_logger = _get_access_logger()


async def _send_json(send: Send, status: int, body: dict, headers: list | None = None) -> None:
    payload = json.dumps(body).encode()
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(payload)).encode()),
            ]
            + (headers or []),
        }
    )
    await send({"type": "http.response.body", "body": payload})


class RequestLoggingMiddleware:
    """Pure ASGI middleware for structured request logging.

    Injects X-Request-ID, emits a JSON log line per request (with origin
    and client IP), and adds X-Response-Time-Ms header.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = (
            headers.get(b"x-request-id", b"").decode() or str(uuid.uuid4())[:8]
        )
        origin = headers.get(b"origin", b"").decode() or None
        client = scope.get("client")
        start_time = time.monotonic()

        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                duration_ms = (time.monotonic() - start_time) * 1000
                extra_headers = [
                    (b"x-request-id", request_id.encode()),
                    (b"x-response-time-ms", f"{duration_ms:.1f}".encode()),
                ]
                message["headers"] = list(message.get("headers", [])) + extra_headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.monotonic() - start_time) * 1000
            _access_logger.info(
                json.dumps(
                    {
                        "severity": "INFO",
                        "request_id": request_id,
                        "method": scope.get("method", "?"),
                        "path": scope.get("path", "/"),
                        "status": status_code,
                        "duration_ms": round(duration_ms, 1),
                        "origin": origin,
                        "ip": client[0] if client else None,
                    }
                )
            )


class ErrorHandlingMiddleware:
    """Catch unhandled exceptions and return a structured 500 JSON body.

    Prevents stack traces from leaking to clients.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except asyncio.CancelledError:
            logger.info(
                "Client disconnected: %s %s",
                scope.get("method", "?"),
                scope.get("path", "/"),
            )
        except Exception:
            logger.exception(
                "Unhandled exception on %s %s",
                scope.get("method", "?"),
                scope.get("path", "/"),
            )
            if not response_started:
                await _send_json(
                    send,
                    500,
                    error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred."),
                )


class SecurityHeadersMiddleware:
    """Add security headers to every HTTP response."""

    HEADERS = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
        (b"content-security-policy", b"default-src 'none'; frame-ancestors 'none'"),
    ]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = list(message.get("headers", [])) + list(
                    self.HEADERS
                )
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RateLimitMiddleware:
    """Sliding-window rate limiter per client IP.

    Applies to ``/api/`` routes except ``/api/health``.  Returns 429 with a
    ``Retry-After`` header when the limit is exceeded.
    """

    EXEMPT_PATHS = frozenset({"/api/health"})
    MAX_CLIENTS = 10000  # tracked client IPs (memory guard)

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        settings = get_settings()
        self.max_requests = settings.RATE_LIMIT_REQUESTS
        self.window_seconds = settings.RATE_LIMIT_WINDOW_SECONDS
        # {ip: deque of request timestamps}
        self._requests: dict[str, collections.deque] = {}

    def _is_allowed(self, client_ip: str) -> bool:
        """Check if a request from client_ip is within the rate limit."""
        now = time.monotonic()
        window_start = now - self.window_seconds

        bucket = self._requests.get(client_ip)
        if bucket is None:
            if len(self._requests) >= self.MAX_CLIENTS:
                self._evict_idle(window_start)
            bucket = self._requests[client_ip] = collections.deque()

        while bucket and bucket[0] < window_start:
            bucket.popleft()

        if len(bucket) >= self.max_requests:
            return False

        bucket.append(now)
        return True

    def _evict_idle(self, window_start: float) -> None:
        for ip in [ip for ip, b in self._requests.items() if not b or b[-1] < window_start]:
            del self._requests[ip]
        if len(self._requests) >= self.MAX_CLIENTS:
            # Every tracked client is active: drop the least recently seen.
            stale = min(self._requests, key=lambda ip: self._requests[ip][-1])
            del self._requests[stale]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "/")
        if not path.startswith("/api/") or path in self.EXEMPT_PATHS:
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        client_ip = client[0] if client else "unknown"

        if self._is_allowed(client_ip):
            await self.app(scope, receive, send)
            return

        logger.warning("Rate limit exceeded for %s on %s", client_ip, path)
        await _send_json(
            send,
            429,
            error_response(ErrorCode.RATE_LIMITED, "Too many requests."),
            headers=[(b"retry-after", str(int(self.window_seconds)).encode())],
        )


class RequestBodyLimitMiddleware:
    """Reject requests whose declared Content-Length exceeds the limit (413)."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self.max_body_size = get_settings().MAX_REQUEST_BODY_SIZE

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        raw_length = headers.get(b"content-length")
        if raw_length is not None:
            try:
                too_large = int(raw_length) > self.max_body_size
            except ValueError:
                too_large = False
            if too_large:
                await _send_json(
                    send,
                    413,
                    error_response(
                        ErrorCode.PAYLOAD_TOO_LARGE,
                        f"Request body exceeds {self.max_body_size} bytes.",
                    ),
                )
                return

        await self.app(scope, receive, send)
