"""
rate_limit.py — Request rate limiting and login throttling
==========================================================
Two independent layers:

* ``limiter`` uses slowapi to enforce per-IP request limits on the login
  endpoint and the public pages.
* ``LoginAttemptLimiter`` counts login attempts per username in process
  memory and blocks the username for a fixed window once the threshold
  is reached. Records are never evicted actively; a record older than
  the window is treated as absent on the next check.

The attempt map lives in this process only. Sync route handlers run on
the thread pool, so access goes through a lock.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


@dataclass
class _Attempts:
    count: int
    last_attempt: float  # epoch seconds


class LoginAttemptLimiter:
    """Per-username login attempt counter with a fixed block window."""

    def __init__(
        self,
        max_attempts: int = 5,
        window_minutes: int = 15,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_minutes * 60
        self._clock = clock
        self._lock = Lock()
        self._attempts: Dict[str, _Attempts] = {}

    def check(self, username: str) -> bool:
        """Record an attempt for ``username``; False when it is currently blocked."""
        now = self._clock()
        with self._lock:
            record = self._attempts.get(username)
            if record is not None and now - record.last_attempt > self.window_seconds:
                del self._attempts[username]
                record = None

            if record is not None and record.count >= self.max_attempts:
                return False

            count = record.count + 1 if record is not None else 1
            self._attempts[username] = _Attempts(count=count, last_attempt=now)
            return True

    def remaining_block_minutes(self, username: str) -> int:
        with self._lock:
            record = self._attempts.get(username)
        if record is None:
            return 0
        remaining = self.window_seconds - (self._clock() - record.last_attempt)
        return max(0, math.ceil(remaining / 60))

    def clear(self, username: str) -> None:
        with self._lock:
            self._attempts.pop(username, None)

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()


login_attempts = LoginAttemptLimiter(
    max_attempts=settings.login_max_attempts,
    window_minutes=settings.login_block_minutes,
)
