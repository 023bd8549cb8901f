from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from ..auth.service import create_account
from ..config import settings
from ..errors import DuplicateAccount, ValidationFailed, format_validation_error
from ..rate_limit import limiter
from ..schemas import AccountCreateForm
from ..templating import render_page

router = APIRouter(prefix="/account", tags=["account"])

_TITLE = "Create account"


@router.get("/create", response_class=HTMLResponse)
@limiter.limit(settings.api_rate_limit)
def create_account_page(request: Request):
    return render_page(request, "account-create", {"title": _TITLE})


@router.post("/create")
@limiter.limit(settings.api_rate_limit)
def create_account_submit(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str | None = Form(None),
):
    form_context = {"title": _TITLE, "username": username, "email": email}
    try:
        form = AccountCreateForm(
            username=username,
            email=email,
            password=password,
            confirm_password=confirm_password,
        )
    except ValidationError as exc:
        raise ValidationFailed(
            f"Invalid data provided: {format_validation_error(exc)}",
            template="account-create",
            context=form_context,
        )

    try:
        create_account(form)
    except (DuplicateAccount, ValidationFailed) as exc:
        raise type(exc)(exc.message, template="account-create", context=form_context) from exc

    return RedirectResponse("/login", status_code=303)
