"""
Tests for the homepage cache, the dashboard, health check, security
headers, error pages and configuration loading.

Run with: pytest tests/test_home.py -v
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from portal.api.routes_home import HOME_CACHE_KEY, load_home_data
from portal.config import _DEFAULT_SESSION_SECRET, Settings, load_settings
from portal.database import db_session
from portal.errors import mask_sensitive
from portal.main import create_app
from portal.models import News, Player


def _add_news(title: str = "Grand opening") -> None:
    with db_session() as session:
        session.add(News(
            title=title,
            summary="The server is open to everyone.",
            body="Come and join the adventure, the gates are open.",
            published_at=datetime.now(timezone.utc),
        ))


def _add_player(account_id: int, name: str, level: int) -> None:
    with db_session() as session:
        session.add(Player(account_id=account_id, name=name, level=level, vocation="druid"))


# ---------------------------------------------------------------------------
# Homepage
# ---------------------------------------------------------------------------

def test_load_home_data_aggregates(make_account):
    for i, level in enumerate([10, 80, 30, 50, 70]):
        _add_player(make_account(f"owner{i}"), f"Hero{i}", level)
    _add_news()

    data = load_home_data()
    assert [p["name"] for p in data["top_players"]] == ["Hero1", "Hero4", "Hero3", "Hero2"]
    assert data["total_players"] == 5
    assert data["online_players"] == 0
    assert data["news"][0]["title"] == "Grand opening"
    assert isinstance(data["news"][0]["published_at"], str)


def test_homepage_renders(client):
    _add_news()
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Grand opening" in resp.text


def test_homepage_is_served_from_cache(client):
    first = client.get("/")
    assert "No news yet." in first.text
    assert client.portal.call(client.app.state.cache.get, HOME_CACHE_KEY) is not None

    _add_news()
    assert "No news yet." in client.get("/").text

    client.portal.call(client.app.state.cache.delete, HOME_CACHE_KEY)
    assert "Grand opening" in client.get("/").text


def test_logged_in_accounts_count_as_online(client, make_account, login):
    make_account("ann")
    login(client, "ann")
    resp = client.get("/")
    assert 'data-target="1"' in resp.text
    assert 'data-target="0"' in resp.text


def test_corrupt_cache_entry_is_recomputed(client, redis_client):
    _add_news()
    client.portal.call(redis_client.set, HOME_CACHE_KEY, "not-json{")
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Grand opening" in resp.text
    assert client.portal.call(client.app.state.cache.get, HOME_CACHE_KEY) is not None


def test_flushing_the_cache_keeps_sessions(client, make_account, login):
    make_account("ann")
    login(client, "ann")
    client.portal.call(client.app.state.cache.reset)
    resp = client.get("/dashboard", follow_redirects=False)
    assert resp.status_code == 200
    assert "Welcome, ann" in resp.text


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def test_dashboard_without_player(client, make_account, login):
    make_account("ann")
    login(client, "ann")
    resp = client.get("/dashboard")
    assert resp.status_code == 200
    assert "You do not have a player yet." in resp.text


def test_dashboard_shows_player_and_news(client, make_account, login):
    _add_player(make_account("ann"), "Hero", 42)
    _add_news()
    login(client, "ann")
    resp = client.get("/dashboard")
    assert "<h2>Hero</h2>" in resp.text
    assert "<dd>42</dd>" in resp.text
    assert "Grand opening" in resp.text


# ---------------------------------------------------------------------------
# Health and headers
# ---------------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "OK"
    assert body["database"] == "connected"
    assert body["cache"] == "connected"
    assert body["uptime"] >= 0
    assert body["timestamp"] > 0


def test_security_headers(client):
    resp = client.get("/")
    assert "default-src 'self'" in resp.headers["content-security-policy"]
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
    assert "x-development-mode" not in resp.headers


def test_static_files_are_not_cached_outside_production(client):
    resp = client.get("/static/css/portal.css")
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-cache"


def test_development_mode_header(redis_client, session_redis_client):
    app = create_app(
        config=Settings(environment="development"),
        redis_client=redis_client,
        session_redis_client=session_redis_client,
    )
    with TestClient(app) as dev_client:
        assert dev_client.get("/health").headers["x-development-mode"] == "true"


# ---------------------------------------------------------------------------
# Error pages
# ---------------------------------------------------------------------------

def test_unknown_page_renders_404(client):
    resp = client.get("/no/such/page")
    assert resp.status_code == 404
    assert "The page you are looking for does not exist." in resp.text


def test_unknown_page_json(client):
    resp = client.get("/no/such/page", headers={"Accept": "application/json"})
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_unexpected_error_is_a_generic_500(redis_client, session_redis_client):
    app = create_app(redis_client=redis_client, session_redis_client=session_redis_client)

    @app.get("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    with TestClient(app, raise_server_exceptions=False) as failing:
        resp = failing.get("/boom", headers={"Accept": "application/json"})
    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "message": "An unexpected error occurred. Please try again later.",
    }


def test_mask_sensitive():
    masked = mask_sensitive({"password": "hunter2", "page": "2", "token": ""})
    assert masked == {"password": "********", "page": "2", "token": ""}
    assert mask_sensitive("plain") == "plain"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def test_port_out_of_range():
    with pytest.raises(ValidationError):
        Settings(port=70000)


def test_default_secret_refused_in_production():
    with pytest.raises(ValidationError):
        Settings(environment="production", session_secret=_DEFAULT_SESSION_SECRET)


def test_secure_cookies_need_production_and_https():
    secret = "a-long-and-random-production-secret"
    assert Settings(environment="production", https=True, session_secret=secret).secure_cookies
    assert not Settings(environment="production", https=False, session_secret=secret).secure_cookies
    assert not Settings(environment="development", https=True).secure_cookies


def test_invalid_configuration_exits(monkeypatch, capsys):
    monkeypatch.setenv("PORTAL_PORT", "0")
    with pytest.raises(SystemExit) as exc_info:
        load_settings()
    assert exc_info.value.code == 1
    assert "FATAL" in capsys.readouterr().err
