from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

from sqlalchemy import func, select

from .core import hash_password
from ..database import db_session
from ..models import Account

logger = logging.getLogger("portal.seed")

_DEFAULT_PASSWORD = "changeme"


def _admin_credentials() -> Tuple[str, str, str]:
    return (
        os.getenv("PORTAL_ADMIN_USERNAME", "admin").strip().lower(),
        os.getenv("PORTAL_ADMIN_EMAIL", "admin@portal.local").strip().lower(),
        os.getenv("PORTAL_ADMIN_PASSWORD", _DEFAULT_PASSWORD),
    )


def seed_admin() -> Optional[str]:
    """
    Create the first admin account when the accounts table is empty.

    Credentials come from PORTAL_ADMIN_USERNAME, PORTAL_ADMIN_EMAIL and
    PORTAL_ADMIN_PASSWORD. The built-in password ``changeme`` is accepted
    in development only. Returns the seeded username, or None.
    """
    username, email, password = _admin_credentials()
    environment = os.getenv("PORTAL_ENVIRONMENT", "development")

    with db_session() as session:
        if session.execute(select(func.count(Account.id))).scalar_one():
            return None

        if password == _DEFAULT_PASSWORD:
            if environment != "development":
                logger.error(
                    "Refusing to seed admin with the default password in %s; "
                    "set PORTAL_ADMIN_PASSWORD",
                    environment,
                )
                return None
            logger.warning("Seeding admin with the DEFAULT password; set PORTAL_ADMIN_PASSWORD")

        session.add(Account(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role="admin",
            is_active=True,
        ))

    logger.info("Default admin created: %s", username)
    return username
