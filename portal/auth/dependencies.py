from __future__ import annotations

import logging

from fastapi import Depends, Request
from pydantic import ValidationError

from .core import role_rank
from ..errors import AlreadyAuthenticated, AuthenticationRequired, PermissionDenied
from ..schemas import SessionUser

logger = logging.getLogger("portal.auth")


# ---------------------------------------------------------------------------
# Resolve current user from the session
# ---------------------------------------------------------------------------

def require_auth(request: Request) -> SessionUser:
    """
    Return the session's user snapshot or raise AuthenticationRequired,
    which the error handler turns into a redirect to /login.
    A snapshot missing its id or username is dropped from the session.
    """
    session = request.state.session
    data = session.get("user")
    if not data:
        logger.warning("Unauthenticated access to %s", request.url.path)
        raise AuthenticationRequired("You need to log in to access this page.")

    try:
        user = SessionUser.model_validate(data)
    except ValidationError:
        logger.error("Invalid user data in session; discarding it")
        del session["user"]
        raise AuthenticationRequired("You need to log in to access this page.")

    logger.info("User %s accessed %s", user.username, request.url.path)
    return user


def prevent_authenticated_access(request: Request) -> None:
    """Keep logged-in users away from the login page."""
    user = request.state.session.get("user")
    if user:
        logger.info("User %s already logged in; redirecting", user.get("username"))
        raise AlreadyAuthenticated("Already logged in.")


# ---------------------------------------------------------------------------
# Role guards
# ---------------------------------------------------------------------------

def check_permission(required: str):
    """Dependency factory: deny when the session role ranks below ``required``."""

    def dependency(current_user: SessionUser = Depends(require_auth)) -> SessionUser:
        if role_rank(current_user.role) < role_rank(required):
            logger.warning(
                "User %s (%s) denied: %s role required",
                current_user.username, current_user.role, required,
            )
            raise PermissionDenied("You do not have permission to access this page.")
        return current_user

    return dependency


require_user = check_permission("user")
require_moderator = check_permission("moderator")
