"""
Login tests: password hashing, per-session lockout, authenticate().

Run: pytest backend/test_auth_context.py  (or python backend/test_auth_context.py)
"""
import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from pharmacy.core.exceptions import AccountLocked, AuthenticationFailed
from pharmacy.core.security import AuthContext, hash_password, verify_password
from pharmacy.models import Doctor, Patient
from pharmacy.services.auth_service import authenticate


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += minutes * 60


def setup_test_users():
    return [
        Patient(id=1, name="Amr Hassan", username="amr_patient", password_hash=hash_password("amr123")),
        Doctor(id=1, name="Dr. Mohamed Saleh", username="dr_mohamed", password_hash=hash_password("dr123")),
    ]


def test_password_hashing():
    stored = hash_password("s3cret|;:")
    assert stored.startswith("$2b$")
    assert verify_password("s3cret|;:", stored)
    assert not verify_password("s3cret", stored)
    # Fresh salt every time
    assert hash_password("s3cret|;:") != stored


def test_malformed_hashes_never_verify():
    for stored in ("", "amr123", "$2b$12$tooshort", "$MD5$abc$def"):
        assert not verify_password("amr123", stored)


def test_successful_login_returns_user():
    users = setup_test_users()
    context = AuthContext(max_attempts=3, lockout_minutes=15, clock=FakeClock())

    user = authenticate(context, users, "dr_mohamed", "dr123")

    assert isinstance(user, Doctor)
    assert context.remaining_attempts("dr_mohamed") == 3


def test_unknown_user_and_wrong_password_look_the_same():
    users = setup_test_users()
    context = AuthContext(max_attempts=5, lockout_minutes=15, clock=FakeClock())

    with pytest.raises(AuthenticationFailed) as wrong_password:
        authenticate(context, users, "amr_patient", "nope")
    with pytest.raises(AuthenticationFailed) as unknown_user:
        authenticate(context, users, "ghost", "nope")

    assert str(wrong_password.value) == str(unknown_user.value) == "Invalid username or password"


def test_lockout_after_max_attempts_and_expiry():
    users = setup_test_users()
    clock = FakeClock()
    context = AuthContext(max_attempts=3, lockout_minutes=15, clock=clock)

    for _ in range(2):
        with pytest.raises(AuthenticationFailed):
            authenticate(context, users, "amr_patient", "wrong")
    with pytest.raises(AccountLocked):
        authenticate(context, users, "amr_patient", "wrong")

    # Right password does not help while locked
    clock.advance(10)
    with pytest.raises(AccountLocked) as locked:
        authenticate(context, users, "amr_patient", "amr123")
    assert "5 minute" in str(locked.value)

    # Other accounts are unaffected
    assert authenticate(context, users, "dr_mohamed", "dr123").username == "dr_mohamed"

    clock.advance(5)
    assert not context.is_locked("amr_patient")
    assert authenticate(context, users, "amr_patient", "amr123").username == "amr_patient"
    assert context.remaining_attempts("amr_patient") == 3


def test_success_clears_failures():
    users = setup_test_users()
    context = AuthContext(max_attempts=3, lockout_minutes=15, clock=FakeClock())

    for _ in range(2):
        with pytest.raises(AuthenticationFailed):
            authenticate(context, users, "amr_patient", "wrong")
    authenticate(context, users, "amr_patient", "amr123")

    for _ in range(2):
        with pytest.raises(AuthenticationFailed):
            authenticate(context, users, "amr_patient", "wrong")
    assert not context.is_locked("amr_patient")


def test_reset_ends_the_session():
    clock = FakeClock()
    context = AuthContext(max_attempts=1, lockout_minutes=15, clock=clock)
    assert context.record_failure("amr_patient")
    assert context.is_locked("amr_patient")

    context.reset()

    assert not context.is_locked("amr_patient")
    assert context.remaining_attempts("amr_patient") == 1


def main():
    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    for test in tests:
        test()
        print(f"  ✅ {test.__name__}")
    print(f"\nAll {len(tests)} auth tests passed")


if __name__ == "__main__":
    main()
