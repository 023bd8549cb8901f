"""
database.py — Engine and unit-of-work sessions for the portal tables
====================================================================
Every route handler does its ORM work inside one ``db_session()`` block:
the block commits when it exits cleanly and rolls back when it raises.
Objects stay usable after the block closes (no expiry on commit), which
lets handlers build response schemas outside it.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(database_url: str) -> Dict[str, Any]:
    # SQLite connections are shared with the threadpool running sync handlers
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


def build_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=_connect_args(database_url),
    )


engine = build_engine(settings.database_url, echo=settings.log_sql)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def db_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def database_is_reachable() -> bool:
    """Run ``SELECT 1``; the health check reports the result."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True
