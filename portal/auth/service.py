from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from .core import hash_password, verify_password
from ..database import db_session
from ..errors import DuplicateAccount, InvalidCredentials, ValidationFailed
from ..models import Account
from ..schemas import AccountCreateForm, SessionUser

logger = logging.getLogger("portal.auth")

_INVALID_LOGIN = "Invalid username or password."
_DUPLICATE = "Username or e-mail already registered."


def validate_login(username: str, password: str) -> SessionUser:
    """Check credentials and return the account snapshot to store in the session."""
    with db_session() as session:
        account = session.execute(
            select(Account).where(Account.username == username.strip().lower())
        ).scalar_one_or_none()

    if not account or not account.is_active:
        raise InvalidCredentials(_INVALID_LOGIN)
    if not verify_password(password, account.password_hash):
        raise InvalidCredentials(_INVALID_LOGIN)
    return SessionUser.model_validate(account)


def update_last_login(account_id: int) -> None:
    with db_session() as session:
        account = session.get(Account, account_id)
        if account:
            account.last_login_at = datetime.now(timezone.utc)


def create_account(data: AccountCreateForm, role: str = "user") -> Account:
    if data.confirm_password is not None and data.password != data.confirm_password:
        raise ValidationFailed("Passwords do not match.")

    username = data.username.lower()
    email = str(data.email).lower()

    with db_session() as session:
        existing = session.execute(
            select(Account).where(or_(Account.username == username, Account.email == email))
        ).scalars().first()
        if existing:
            raise DuplicateAccount(_DUPLICATE)

        account = Account(
            username=username,
            email=email,
            password_hash=hash_password(data.password),
            role=role,
            is_active=True,
        )
        session.add(account)
        try:
            session.flush()
        except IntegrityError:
            # lost a race with a concurrent registration
            raise DuplicateAccount(_DUPLICATE)
        session.refresh(account)

    logger.info("Account created: %s", username)
    return account
