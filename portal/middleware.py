"""
middleware.py — Request logging, security headers and method override
=====================================================================
"""
from __future__ import annotations

import logging
import time

from starlette.datastructures import Headers, QueryParams
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("portal.http")

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline'",
    "style-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com",
    "img-src 'self' data: https:",
])

STATIC_MAX_AGE_SECONDS = 86400


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line when a request arrives and one when it completes."""

    async def dispatch(self, request: Request, call_next) -> Response:
        session = getattr(request.state, "session", None)
        user = session.get("user") if session is not None else None
        log_data = {
            "method": request.method,
            "path": request.url.path,
            "ip": request.client.host if request.client else None,
            "user": user.get("username", "anonymous") if user else "anonymous",
        }
        logger.info("request started", extra=log_data)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        logger.info(
            "request completed",
            extra={**log_data, "status": response.status_code, "response_time_ms": duration_ms},
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, environment: str = "development") -> None:
        super().__init__(app)
        self.environment = environment

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        headers = response.headers
        headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "SAMEORIGIN")

        if request.url.path.startswith("/static/"):
            if self.environment == "production":
                headers["Cache-Control"] = f"public, max-age={STATIC_MAX_AGE_SECONDS}"
            else:
                headers["Cache-Control"] = "no-cache"
        if self.environment == "development":
            headers["X-Development-Mode"] = "true"
        return response


class MethodOverrideMiddleware:
    """
    Let HTML forms reach PUT/PATCH/DELETE routes: a POST carrying an
    ``X-HTTP-Method-Override`` header or a ``_method`` query parameter
    is dispatched as that method.
    """

    ALLOWED = {"PUT", "PATCH", "DELETE"}

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "POST":
            override = Headers(scope=scope).get("x-http-method-override") or QueryParams(
                scope.get("query_string", b"")
            ).get("_method")
            if override and override.upper() in self.ALLOWED:
                scope = dict(scope, method=override.upper())
        await self.app(scope, receive, send)
