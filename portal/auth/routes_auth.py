import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .dependencies import prevent_authenticated_access
from .service import update_last_login, validate_login
from ..config import settings
from ..errors import InvalidCredentials, TooManyAttempts, ValidationFailed, format_validation_error
from ..rate_limit import limiter, login_attempts
from ..schemas import LoginForm
from ..templating import render_page

logger = logging.getLogger("portal.auth")

router = APIRouter(tags=["auth"])


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.get("/login", response_class=HTMLResponse, dependencies=[Depends(prevent_authenticated_access)])
def login_page(request: Request):
    return render_page(request, "login", {"title": "Login"})


@router.post("/login")
@limiter.limit(settings.login_rate_limit)
def login(request: Request, username: str = Form(""), password: str = Form("")):
    form_context = {"title": "Login", "username": username}
    try:
        form = LoginForm(username=username, password=password)
    except ValidationError as exc:
        raise ValidationFailed(
            f"Invalid data provided: {format_validation_error(exc)}",
            template="login",
            context=form_context,
        )

    if not login_attempts.check(form.username):
        minutes = login_attempts.remaining_block_minutes(form.username)
        logger.warning("Login blocked for %s (%d min left)", form.username, minutes)
        raise TooManyAttempts(
            f"Too many login attempts. Try again in {minutes} minute(s).",
            template="login",
            context=form_context,
        )

    try:
        user = validate_login(form.username, form.password)
    except InvalidCredentials as exc:
        logger.info("Failed login for %s", form.username)
        raise InvalidCredentials(exc.message, template="login", context=form_context) from exc

    login_attempts.clear(form.username)

    session = request.state.session
    session.regenerate()
    session["user"] = user.model_dump(mode="json")

    try:
        update_last_login(user.id)
    except SQLAlchemyError:
        # Best-effort, the session is already issued
        logger.exception("Failed to update last login for %s", user.username)

    logger.info("Login succeeded for %s", user.username)
    return RedirectResponse("/dashboard", status_code=303)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

@router.get("/logout")
def logout(request: Request):
    session = request.state.session
    user = session.get("user") or {}
    session.destroy()
    logger.info("Logout for %s", user.get("username", "unknown user"))
    return RedirectResponse("/", status_code=303)
