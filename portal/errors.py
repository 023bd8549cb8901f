"""
errors.py — Error taxonomy and the central exception handlers
=============================================================
Route handlers raise; the handlers registered here decide how the error
is shown. Form errors carry the template they came from so they are
rendered inline on the originating page. JSON clients (the player API,
DELETE calls, Accept: application/json) get a JSON body instead.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .templating import render_page

logger = logging.getLogger("portal.errors")

RATE_LIMITED_FORMS = {
    "/login": ("login", "Login"),
    "/account/create": ("account-create", "Create account"),
}

SENSITIVE_FIELDS = ("password", "confirm_password", "token", "secret", "authorization", "credentials")


class PortalError(Exception):
    status_code = 500
    title = "Error"

    def __init__(
        self,
        message: str,
        *,
        template: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.template = template
        self.context = context or {}


class ValidationFailed(PortalError):
    status_code = 400
    title = "Validation error"


class InvalidCredentials(PortalError):
    status_code = 401
    title = "Login error"


class AuthenticationRequired(PortalError):
    status_code = 401
    title = "Login required"
    location = "/login"


class AlreadyAuthenticated(PortalError):
    status_code = 303
    location = "/dashboard"


class PermissionDenied(PortalError):
    status_code = 403
    title = "Forbidden"


class NotFound(PortalError):
    status_code = 404
    title = "Not found"


class Conflict(PortalError):
    status_code = 409
    title = "Conflict"


class DuplicateAccount(Conflict):
    title = "Account exists"


class TooManyAttempts(PortalError):
    status_code = 429
    title = "Too many attempts"


def format_validation_error(exc: ValidationError | RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = err.get("msg", "invalid value")
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid data provided."


def mask_sensitive(data: Any) -> Any:
    """Return a copy of a mapping with credential-like fields replaced."""
    if not isinstance(data, dict):
        return data
    return {
        key: "********" if key.lower() in SENSITIVE_FIELDS and value else value
        for key, value in data.items()
    }


def wants_json(request: Request) -> bool:
    if request.url.path.startswith("/players") or request.method == "DELETE":
        return True
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


def _render_error(request: Request, status_code: int, title: str, message: str):
    if wants_json(request):
        return JSONResponse(status_code=status_code, content={"success": False, "message": message})
    return render_page(
        request,
        "error",
        {"title": title, "message": message, "status_code": status_code},
        status_code=status_code,
    )


async def portal_error_handler(request: Request, exc: PortalError):
    location = getattr(exc, "location", None)
    if location and not wants_json(request):
        return RedirectResponse(location, status_code=303)

    if exc.status_code >= 500:
        logger.error("Request failed: %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message,
        )

    if exc.template and not wants_json(request):
        context = {"title": exc.title, **exc.context, "error": exc.message}
        return render_page(request, exc.template, context, status_code=exc.status_code)
    return _render_error(request, exc.status_code, exc.title, exc.message)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Show the form again for browsers; everything else gets slowapi's JSON 429."""
    logger.warning(
        "Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail,
    )
    form = RATE_LIMITED_FORMS.get(request.url.path)
    if form and request.method == "POST" and not wants_json(request):
        page, title = form
        return render_page(
            request,
            page,
            {"title": title, "error": "Too many requests from your address. Try again later."},
            status_code=429,
        )
    return _rate_limit_exceeded_handler(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = format_validation_error(exc)
    logger.warning("Invalid request on %s %s: %s", request.method, request.url.path, message)
    return _render_error(request, 400, "Validation error", f"Invalid data provided: {message}")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _render_error(request, 404, "Page not found", "The page you are looking for does not exist.")
    return _render_error(request, exc.status_code, "Error", str(exc.detail))


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        extra={
            "query": mask_sensitive(dict(request.query_params)),
            "user": _session_username(request),
        },
    )
    return _render_error(
        request, 500, "Internal error", "An unexpected error occurred. Please try again later."
    )


def _session_username(request: Request) -> str:
    session = getattr(request.state, "session", None)
    user = session.get("user") if session is not None else None
    return user.get("username", "anonymous") if user else "anonymous"


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
