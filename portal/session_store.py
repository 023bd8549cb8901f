"""
session_store.py — Server-held sessions in Redis
================================================
The browser only carries a signed cookie with a random session id; the
session data itself lives in Redis under ``sess:<id>`` with an absolute
expiry fixed when the session is first saved.

Handlers work with ``request.state.session``, a dict-like ``Session``.
They never talk to the store: ``SessionMiddleware`` loads the record
before the handler runs and commits changes after it returns.

* Nothing is written for a session that was never modified, so anonymous
  visitors and failed logins get no cookie.
* ``regenerate()`` drops the old record and issues a new id on commit.
* ``destroy()`` deletes the record and clears the cookie.
"""
from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any, Dict, Iterator, MutableMapping, Optional

from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .auth.core import decode_session_cookie, encode_session_cookie

logger = logging.getLogger("portal.session")

SESSION_PREFIX = "sess:"


class Session(MutableMapping):
    """Mutable session data plus the bookkeeping the middleware needs."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        expires_at: Optional[float] = None,
    ) -> None:
        self.session_id = session_id
        self.expires_at = expires_at
        self._data: Dict[str, Any] = dict(data or {})
        self.modified = False
        self.regenerated = False
        self.destroyed = False
        self.previous_id: Optional[str] = None

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.modified = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def regenerate(self) -> None:
        """Start over with empty data under a fresh id (login)."""
        if self.session_id and not self.regenerated:
            self.previous_id = self.session_id
        self.session_id = None
        self.expires_at = None
        self._data.clear()
        self.regenerated = True
        self.modified = True

    def destroy(self) -> None:
        self._data.clear()
        self.destroyed = True


class SessionStore:
    """Redis-backed session records with an absolute lifetime."""

    def __init__(self, client: Redis, prefix: str = SESSION_PREFIX, ttl_seconds: int = 86400) -> None:
        self._client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    @staticmethod
    def new_id() -> str:
        return secrets.token_urlsafe(32)

    async def load(self, session_id: str) -> Optional[Session]:
        raw = await self._client.get(self._key(session_id))
        if not raw:
            return None
        record = json.loads(raw)
        expires_at = float(record.get("expires_at", 0))
        if expires_at <= time.time():
            await self.destroy(session_id)
            return None
        return Session(session_id, record.get("data") or {}, expires_at)

    async def save(self, session: Session) -> None:
        """Persist ``session``, assigning an id and expiry on first save."""
        if session.session_id is None:
            session.session_id = self.new_id()
        if session.expires_at is None:
            session.expires_at = time.time() + self.ttl_seconds
        ttl = max(1, int(session.expires_at - time.time()))
        record = {"data": session.to_dict(), "expires_at": session.expires_at}
        await self._client.set(self._key(session.session_id), json.dumps(record, default=str), ex=ttl)

    async def destroy(self, session_id: str) -> None:
        await self._client.delete(self._key(session_id))


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        store: SessionStore,
        cookie_name: str = "portal.sid",
        secure: bool = False,
    ) -> None:
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.secure = secure

    async def dispatch(self, request: Request, call_next) -> Response:
        session = None
        cookie = request.cookies.get(self.cookie_name)
        if cookie:
            session_id = decode_session_cookie(cookie)
            if session_id:
                session = await self.store.load(session_id)
        request.state.session = session or Session()

        response = await call_next(request)
        await self._commit(request.state.session, response, had_cookie=bool(cookie))
        return response

    async def _commit(self, session: Session, response: Response, had_cookie: bool) -> None:
        if session.previous_id:
            await self.store.destroy(session.previous_id)

        if session.destroyed:
            if session.session_id:
                await self.store.destroy(session.session_id)
            response.delete_cookie(self.cookie_name, path="/", httponly=True, samesite="lax")
            return

        if not session.modified:
            if had_cookie and session.session_id is None:
                # stale or forged cookie
                response.delete_cookie(self.cookie_name, path="/", httponly=True, samesite="lax")
            return

        await self.store.save(session)
        response.set_cookie(
            self.cookie_name,
            encode_session_cookie(session.session_id, session.expires_at),
            max_age=max(0, int(session.expires_at - time.time())),
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )
