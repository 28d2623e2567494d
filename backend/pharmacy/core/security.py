"""
Password hashing and per-session login lockout.

AuthContext replaces process-wide attempt counters: the interactive
session creates one at start-up and passes it to every login, so lockout
state has an owner and a lifetime (reset() or process exit).
"""
import logging
import math
import time
from collections import defaultdict
from typing import Callable, Dict

import bcrypt

from pharmacy.core.config import settings

logger = logging.getLogger(__name__)


def hash_password(plain_password: str) -> str:
    """bcrypt with a fresh salt; the salt and cost travel inside the hash."""
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, stored_hash: str) -> bool:
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


class AuthContext:
    """Failed-login counters and lockouts for one interactive session."""

    def __init__(
        self,
        max_attempts: int = settings.MAX_LOGIN_ATTEMPTS,
        lockout_minutes: int = settings.LOCKOUT_DURATION_MINUTES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_attempts: Failures allowed before the account locks
            lockout_minutes: How long a lock lasts
            clock: Seconds since epoch; injectable for tests
        """
        self.max_attempts = max_attempts
        self.window = lockout_minutes * 60
        self.clock = clock
        # Dict[username, failures]
        self.attempts: Dict[str, int] = defaultdict(int)
        # Dict[username, locked_at]
        self.lockouts: Dict[str, float] = {}

    def is_locked(self, username: str) -> bool:
        locked_at = self.lockouts.get(username)
        if locked_at is None:
            return False

        # Lock expired: forget the history
        if self.clock() - locked_at >= self.window:
            self.record_success(username)
            return False
        return True

    def minutes_left(self, username: str) -> int:
        locked_at = self.lockouts.get(username)
        if locked_at is None:
            return 0
        remaining = self.window - (self.clock() - locked_at)
        return max(1, math.ceil(remaining / 60))

    def remaining_attempts(self, username: str) -> int:
        return max(0, self.max_attempts - self.attempts.get(username, 0))

    def record_failure(self, username: str) -> bool:
        """
        Count a failed login.

        Returns:
            True if this failure locked the account
        """
        self.attempts[username] += 1
        if self.attempts[username] >= self.max_attempts:
            self.lockouts[username] = self.clock()
            logger.warning(f"Account {username} locked for {self.window // 60} minutes")
            return True
        return False

    def record_success(self, username: str) -> None:
        self.attempts.pop(username, None)
        self.lockouts.pop(username, None)

    def reset(self) -> None:
        """Clear all counters (end of session)."""
        self.attempts.clear()
        self.lockouts.clear()
