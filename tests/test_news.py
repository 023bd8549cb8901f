"""
Tests for the news editor: listing, creation, editing (including the
HTML-form method override) and deletion.

Run with: pytest tests/test_news.py -v
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from portal.api.routes_news import latest_news
from portal.database import db_session
from portal.models import News

VALID = {
    "title": "Server maintenance",
    "summary": "Short downtime on Monday morning.",
    "body": "The game world will be offline for about one hour while we upgrade.",
}


def _insert_news(title: str = "Patch notes", minutes_ago: int = 0) -> int:
    with db_session() as session:
        row = News(
            title=title,
            summary="Everything that changed.",
            body="A long list of balance changes and bug fixes.",
            published_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        )
        session.add(row)
        session.flush()
        return row.id


def _get(news_id: int):
    with db_session() as session:
        return session.get(News, news_id)


@pytest.fixture
def moderator(client, make_account, login):
    make_account("mod", role="moderator")
    login(client, "mod")
    return client


@pytest.fixture
def regular_user(client, make_account, login):
    make_account("ann", role="user")
    login(client, "ann")
    return client


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def test_latest_news_is_newest_first():
    _insert_news("Older", minutes_ago=60)
    _insert_news("Newer", minutes_ago=1)
    assert [n.title for n in latest_news()] == ["Newer", "Older"]


def test_latest_news_respects_limit():
    for i in range(12):
        _insert_news(f"Item {i}", minutes_ago=i)
    assert len(latest_news()) == 10
    assert len(latest_news(5)) == 5


def test_user_sees_list_without_editor(regular_user):
    _insert_news("Patch notes")
    resp = regular_user.get("/news")
    assert resp.status_code == 200
    assert "Patch notes" in resp.text
    assert 'action="/news/create"' not in resp.text


def test_moderator_sees_editor_controls(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.get("/news")
    assert f'href="/news/{news_id}/edit"' in resp.text
    assert f'action="/news/delete/{news_id}"' in resp.text


def test_anonymous_list_redirects_to_login(client):
    resp = client.get("/news", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def test_create_news(moderator):
    resp = moderator.post("/news/create", data=VALID)
    assert resp.status_code == 200
    assert "News item created." in resp.text
    assert "Server maintenance" in resp.text
    assert latest_news()[0].title == "Server maintenance"


def test_create_news_trims_whitespace(moderator):
    moderator.post("/news/create", data={**VALID, "title": "   Server maintenance  "})
    assert latest_news()[0].title == "Server maintenance"


def test_create_news_validation_error_keeps_input(moderator):
    resp = moderator.post("/news/create", data={**VALID, "title": "Hi"})
    assert resp.status_code == 400
    assert "Invalid data provided" in resp.text
    assert 'value="Short downtime on Monday morning."' in resp.text
    assert latest_news() == []


def test_user_cannot_create_news(regular_user):
    resp = regular_user.post("/news/create", data=VALID)
    assert resp.status_code == 403
    assert latest_news() == []


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

def test_edit_page_is_prefilled(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.get(f"/news/{news_id}/edit")
    assert resp.status_code == 200
    assert 'value="Patch notes"' in resp.text
    assert f'action="/news/{news_id}?_method=PUT"' in resp.text


def test_edit_page_missing_item(moderator):
    resp = moderator.get("/news/9999/edit")
    assert resp.status_code == 404
    assert "News item not found." in resp.text


def test_put_updates_item(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.put(f"/news/{news_id}", data=VALID, follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/news"
    assert _get(news_id).title == "Server maintenance"


def test_form_post_with_method_query_parameter(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.post(f"/news/{news_id}?_method=PUT", data=VALID, follow_redirects=False)
    assert resp.status_code == 303
    assert _get(news_id).summary == VALID["summary"]


def test_form_post_with_method_override_header(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.post(
        f"/news/{news_id}",
        data=VALID,
        headers={"X-HTTP-Method-Override": "PUT"},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    assert _get(news_id).title == "Server maintenance"


def test_put_validation_error_rerenders_editor(moderator):
    news_id = _insert_news("Patch notes")
    resp = moderator.put(f"/news/{news_id}", data={**VALID, "body": "too short"})
    assert resp.status_code == 400
    assert "Invalid data provided" in resp.text
    assert _get(news_id).title == "Patch notes"


def test_put_missing_item(moderator):
    resp = moderator.put("/news/9999", data=VALID)
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

def test_delete_returns_json(moderator):
    news_id = _insert_news()
    resp = moderator.delete(f"/news/{news_id}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "News item deleted."}
    assert _get(news_id) is None


def test_delete_missing_item_is_json_404(moderator):
    resp = moderator.delete("/news/9999")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "News item not found."}


def test_post_delete_alias(moderator):
    news_id = _insert_news()
    resp = moderator.post(f"/news/delete/{news_id}")
    assert resp.json()["success"] is True
    assert _get(news_id) is None


def test_user_cannot_delete(regular_user):
    news_id = _insert_news()
    resp = regular_user.delete(f"/news/{news_id}")
    assert resp.status_code == 403
    assert resp.json()["success"] is False
    assert _get(news_id) is not None


def test_anonymous_delete_is_401_json(client):
    news_id = _insert_news()
    resp = client.delete(f"/news/{news_id}")
    assert resp.status_code == 401
    assert resp.json()["success"] is False
