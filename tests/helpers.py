"""Test helpers shared across modules."""

from datetime import datetime, timedelta, timezone

from adminvault.auth.totp import base32_to_secret, totp, verify_totp


ADMIN_ID = "admin-1"
ADMIN_EMAIL = "a@x.com"
ADMIN_PASSWORD = "Correct1!"

# 2026-01-01T12:00:00Z, aligned to a 30 s TOTP step
START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def current_code(secret_b32: str, clock: FakeClock) -> str:
    return totp(base32_to_secret(secret_b32), clock().timestamp())


def wrong_code(secret_b32: str, clock: FakeClock) -> str:
    """A six-digit code that is not valid anywhere in the +/-2 window."""
    secret = base32_to_secret(secret_b32)
    for candidate in ("000000", "111111", "222222", "333333", "444444", "555555"):
        if not verify_totp(secret, candidate, clock().timestamp(), window=2):
            return candidate
    raise AssertionError("no wrong code found")
