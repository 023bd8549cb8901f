from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ---------------------------------------------------------------------------
# Auth forms
# ---------------------------------------------------------------------------

class LoginForm(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=100)

    @field_validator("username", mode="before")
    @classmethod
    def normalise_username(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


_PASSWORD_SPECIALS = "@$!%*?&"
_PASSWORD_ALLOWED = re.compile(r"^[A-Za-z\d@$!%*?&]{8,}$")


class AccountCreateForm(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    confirm_password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        """Require lower, upper, digit and one of @$!%*?& from the allowed alphabet."""
        if not (
            _PASSWORD_ALLOWED.match(v)
            and any(c.islower() for c in v)
            and any(c.isupper() for c in v)
            and any(c.isdigit() for c in v)
            and any(c in _PASSWORD_SPECIALS for c in v)
        ):
            raise ValueError(
                "Password must mix upper and lower case letters, digits and one of @$!%*?&"
            )
        return v


class SessionUser(BaseModel):
    """Account snapshot stored in the session at login time."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# News
# ---------------------------------------------------------------------------

class NewsForm(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    summary: str = Field(..., min_length=10, max_length=500)
    body: str = Field(..., min_length=20)

    @field_validator("title", "summary", "body", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class NewsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    summary: str
    body: str
    published_at: datetime


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

class PlayerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    level: int
    vocation: str
    avatar: Optional[str] = None


class AccountRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class PlayerRead(PlayerSummary):
    experience: int
    account_id: int
    created_at: datetime
    account: Optional[AccountRef] = None


class PlayerPage(BaseModel):
    total: int
    page: int
    limit: int
    players: List[PlayerSummary]


class PlayerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=50)
    avatar: Optional[str] = Field(None, max_length=512)
    vocation: Optional[str] = Field(None, min_length=1, max_length=32)


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------

class HealthOut(BaseModel):
    uptime: float
    message: str
    timestamp: int
    database: str
    cache: str
