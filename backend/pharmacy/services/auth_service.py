"""Login against an AuthContext. Every attempt is audited."""
import logging
from typing import Iterable, Optional

from pharmacy.core.audit import AuditLog
from pharmacy.core.exceptions import BusinessError
from pharmacy.core.security import AuthContext, verify_password
from pharmacy.models.user import User

logger = logging.getLogger(__name__)


def find_user(users: Iterable[User], username: str) -> Optional[User]:
    return next((u for u in users if u.username == username), None)


def authenticate(context: AuthContext, users: Iterable[User], username: str, password: str) -> User:
    """
    Check credentials.

    Unknown usernames count towards the lockout like wrong passwords, and
    both fail with the same message.

    Raises:
        AccountLocked: too many failures within the lockout window
        AuthenticationFailed
    """
    if context.is_locked(username):
        AuditLog.log_authentication(username, False, reason="Account locked")
        raise BusinessError.account_locked(username, context.minutes_left(username))

    user = find_user(users, username)
    if user is None or not verify_password(password, user.password_hash):
        reason = "Unknown user" if user is None else "Invalid password"
        locked = context.record_failure(username)
        AuditLog.log_authentication(username, False, reason=reason)
        if locked:
            raise BusinessError.account_locked(username, context.minutes_left(username))
        raise BusinessError.authentication_failed(
            f"{reason} for {username} ({context.remaining_attempts(username)} attempt(s) left)"
        )

    context.record_success(username)
    AuditLog.log_authentication(username, True)
    logger.info(f"{type(user).__name__} {username} logged in")
    return user
