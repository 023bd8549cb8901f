"""
pytest configuration – point the portal at a throwaway SQLite database
before the app is imported, create tables once per run, and clean rows
between tests. Redis is replaced by fakeredis through create_app().
"""
import os

os.environ["PORTAL_ENVIRONMENT"] = "test"
os.environ["PORTAL_DATABASE_URL"] = "sqlite:///./test_portal.db"
os.environ["PORTAL_RATE_LIMIT_ENABLED"] = "false"
os.environ["PORTAL_LOG_FORMAT"] = "plain"
os.environ["PORTAL_LOG_LEVEL"] = "warning"
os.environ["PORTAL_SESSION_SECRET"] = "test-session-secret-not-for-production"
os.environ["PORTAL_ADMIN_PASSWORD"] = "Admin123!"

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from portal.auth.core import hash_password
from portal.database import Base, db_session, engine
from portal.models import Account, News, Player
from portal.main import create_app
from portal.rate_limit import login_attempts

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "Admin123!"
DEFAULT_PASSWORD = "Passw0rd!"


@pytest.fixture(autouse=True, scope="session")
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_rows():
    """Remove everything a test created; the seeded admin stays."""
    yield
    login_attempts.reset()
    with db_session() as session:
        session.execute(delete(Player))
        session.execute(delete(News))
        session.execute(delete(Account).where(Account.username != ADMIN_USERNAME))


@pytest.fixture
def redis_client():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def session_redis_client():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def client(redis_client, session_redis_client):
    app = create_app(redis_client=redis_client, session_redis_client=session_redis_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_account():
    """Factory inserting an account directly; returns its id."""

    def _make(username: str, role: str = "user", password: str = DEFAULT_PASSWORD,
              email: str | None = None, is_active: bool = True) -> int:
        with db_session() as session:
            account = Account(
                username=username,
                email=email or f"{username}@example.com",
                password_hash=hash_password(password),
                role=role,
                is_active=is_active,
            )
            session.add(account)
            session.flush()
            return account.id

    return _make


@pytest.fixture
def login():
    def _login(client: TestClient, username: str, password: str = DEFAULT_PASSWORD):
        return client.post(
            "/login",
            data={"username": username, "password": password},
            follow_redirects=False,
        )

    return _login
