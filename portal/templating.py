from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.templating import Jinja2Templates

from .config import settings

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
STATIC_DIR = PACKAGE_DIR / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def current_user(request: Request) -> Optional[Dict[str, Any]]:
    """Session user snapshot, or None for anonymous visitors."""
    session = getattr(request.state, "session", None)
    if session is None:
        return None
    return session.get("user")


def render_page(
    request: Request,
    page: str,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
):
    """Render ``templates/pages/<page>.html`` with the shared layout context."""
    ctx: Dict[str, Any] = {
        "title": settings.server_name,
        "server_name": settings.server_name,
        "user": current_user(request),
        "error": None,
        "success": None,
    }
    ctx.update(context or {})
    return templates.TemplateResponse(request, f"pages/{page}.html", ctx, status_code=status_code)
