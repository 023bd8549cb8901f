from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy import select

from ..auth.dependencies import require_moderator, require_user
from ..database import db_session
from ..errors import NotFound, ValidationFailed, format_validation_error
from ..models import News
from ..schemas import NewsForm, NewsRead, SessionUser
from ..templating import render_page

logger = logging.getLogger("portal.news")

router = APIRouter(prefix="/news", tags=["news"])

LIST_LIMIT = 10


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def latest_news(limit: int = LIST_LIMIT) -> List[NewsRead]:
    with db_session() as session:
        rows = session.execute(
            select(News).order_by(News.published_at.desc(), News.id.desc()).limit(limit)
        ).scalars().all()
        return [NewsRead.model_validate(r) for r in rows]


def _get_news(news_id: int) -> NewsRead:
    with db_session() as session:
        row = session.get(News, news_id)
        if not row:
            raise NotFound("News item not found.")
        return NewsRead.model_validate(row)


def _parse_form(title: str, summary: str, body: str, template_context: dict) -> NewsForm:
    try:
        return NewsForm(title=title, summary=summary, body=body)
    except ValidationError as exc:
        raise ValidationFailed(
            f"Invalid data provided: {format_validation_error(exc)}",
            template="news-create",
            context={**template_context, "form": {"title": title, "summary": summary, "body": body}},
        )


def _editor_context(title: str, **extra) -> dict:
    ctx = {"title": title, "news": [], "news_item": None, "is_editing": False, "form": None}
    ctx.update(extra)
    return ctx


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

@router.get("", response_class=HTMLResponse)
def list_news(request: Request, _user: SessionUser = Depends(require_user)):
    return render_page(request, "news-create", _editor_context("News", news=latest_news()))


@router.get("/create", response_class=HTMLResponse)
def create_news_page(request: Request, _user: SessionUser = Depends(require_moderator)):
    return render_page(request, "news-create", _editor_context("Create news"))


@router.get("/{news_id}/edit", response_class=HTMLResponse)
def edit_news_page(news_id: int, request: Request, _user: SessionUser = Depends(require_moderator)):
    item = _get_news(news_id)
    return render_page(
        request, "news-create", _editor_context("Edit news", news_item=item, is_editing=True),
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("/create", response_class=HTMLResponse)
def create_news(
    request: Request,
    title: str = Form(""),
    summary: str = Form(""),
    body: str = Form(""),
    current_user: SessionUser = Depends(require_moderator),
):
    form = _parse_form(title, summary, body, _editor_context("Create news", news=latest_news()))

    with db_session() as session:
        row = News(
            title=form.title,
            summary=form.summary,
            body=form.body,
            published_at=datetime.now(timezone.utc),
        )
        session.add(row)
    logger.info("News created by %s: %s", current_user.username, form.title)

    return render_page(
        request,
        "news-create",
        _editor_context("News", news=latest_news(), success="News item created."),
    )


@router.put("/{news_id}")
def update_news(
    news_id: int,
    title: str = Form(""),
    summary: str = Form(""),
    body: str = Form(""),
    current_user: SessionUser = Depends(require_moderator),
):
    existing = _get_news(news_id)
    form = _parse_form(
        title, summary, body,
        _editor_context("Edit news", news_item=existing, is_editing=True),
    )

    with db_session() as session:
        row = session.get(News, news_id)
        if not row:
            raise NotFound("News item not found.")
        row.title = form.title
        row.summary = form.summary
        row.body = form.body
    logger.info("News %d updated by %s", news_id, current_user.username)

    return RedirectResponse("/news", status_code=303)


def _delete(news_id: int, username: str) -> dict:
    with db_session() as session:
        row = session.get(News, news_id)
        if not row:
            raise NotFound("News item not found.")
        session.delete(row)
    logger.info("News %d deleted by %s", news_id, username)
    return {"success": True, "message": "News item deleted."}


@router.delete("/{news_id}")
def delete_news(news_id: int, current_user: SessionUser = Depends(require_moderator)) -> dict:
    return _delete(news_id, current_user.username)


@router.post("/delete/{news_id}")
def delete_news_form(news_id: int, current_user: SessionUser = Depends(require_moderator)) -> dict:
    """Same as DELETE /news/{id} for clients that can only POST."""
    return _delete(news_id, current_user.username)
