from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from ..config import settings

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------------------------

ROLE_RANK = {
    "guest": 1,
    "user": 2,
    "moderator": 3,
    "admin": 4,
}


def role_rank(role: Optional[str]) -> int:
    """Position of ``role`` in the hierarchy; unknown roles rank below guest."""
    return ROLE_RANK.get((role or "").lower(), 0)


def has_role(role: Optional[str], required: str) -> bool:
    return role_rank(role) >= role_rank(required)


# ---------------------------------------------------------------------------
# Session cookie signing
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


def encode_session_cookie(session_id: str, expires_at: float) -> str:
    """Sign the session id so a forged cookie never reaches the store."""
    payload = {
        "sid": session_id,
        "exp": datetime.fromtimestamp(expires_at, tz=timezone.utc),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def decode_session_cookie(token: str) -> Optional[str]:
    """Return the session id carried by a cookie, or None when invalid or expired."""
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) and sid else None
