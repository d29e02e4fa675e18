"""
Lockout Policy

Per-account brute-force protection.

- Each failed password or second-factor attempt increments a counter
  through a single atomic store call
- Reaching MAX_FAILED_ATTEMPTS locks the account for LOCKOUT_DURATION
- The counter is reset only by a fully successful login, so an attacker
  who keeps probing after a lockout expires is locked again on the very
  next failure
- Attempts are counted before they are verified; once the in-flight
  attempts use up the remaining budget, further parallel requests are
  refused without being verified
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..config import LOCKOUT_MINUTES, MAX_FAILED_ATTEMPTS
from ..models import AdminCredential, utc_now
from ..store.base import CredentialStore

logger = logging.getLogger(__name__)

LOCKOUT_DURATION = timedelta(minutes=LOCKOUT_MINUTES)


class LockoutPolicy:
    """
    Failed-attempt accounting backed by the credential store.

    Example:
        >>> policy = LockoutPolicy(store)
        >>> policy.record_failure("u1")
        1
    """

    def __init__(self, store: CredentialStore,
                 max_attempts: int = MAX_FAILED_ATTEMPTS,
                 lockout_duration: timedelta = LOCKOUT_DURATION,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            store: Credential store
            max_attempts: Failures that trigger a lockout
            lockout_duration: Length of each lockout window
            clock: Source of the current UTC time
        """
        self._store = store
        self._max_attempts = max_attempts
        self._lockout_duration = lockout_duration
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def check(self, credential: AdminCredential) -> Tuple[bool, Optional[timedelta]]:
        """
        Is the account inside a lockout window?

        Returns:
            Tuple of (is_locked, remaining duration or None)
        """
        now = self._clock()
        if credential.is_locked(now):
            return True, credential.locked_until - now
        return False, None

    def begin_attempt(self, credential: AdminCredential) -> Optional[int]:
        """
        Count an attempt before it is verified.

        The budget is the threshold, or a single attempt when a previous
        lockout has expired with the counter still at or above it.

        Returns:
            The attempt number, or None if the budget is used up (the
            reservation is given back)
        """
        count = self._store.atomic_increment_failed_attempts(credential.user_id)
        budget = max(self._max_attempts, credential.failed_attempts + 1)
        if count > budget:
            self._store.atomic_decrement_failed_attempts(credential.user_id)
            logger.warning("Refused attempt %d for %s, budget of %d used up",
                           count, credential.user_id, budget)
            return None
        return count

    def release(self, user_id: str) -> None:
        """Give back an attempt that turned out not to be a failure."""
        self._store.atomic_decrement_failed_attempts(user_id)

    def record_failure(self, user_id: str, attempt: Optional[int] = None) -> int:
        """
        Count one failed attempt and lock the account at the threshold.

        Args:
            user_id: Account
            attempt: Number returned by ``begin_attempt`` (already counted)

        Returns:
            The post-increment failure count
        """
        count = attempt or self._store.atomic_increment_failed_attempts(user_id)
        if count >= self._max_attempts:
            until = self._clock() + self._lockout_duration
            self._store.set_lockout(user_id, until)
            logger.warning("Account %s locked until %s after %d failed attempts",
                           user_id, until.isoformat(), count)
        return count

    def remaining(self, user_id: str) -> timedelta:
        """Time left on the current lockout, or a full window if none is set yet."""
        credential = self._store.get_credential_by_id(user_id)
        now = self._clock()
        if credential is not None and credential.is_locked(now):
            return credential.locked_until - now
        return self._lockout_duration

    def reset(self, user_id: str) -> None:
        """Clear counter and lockout after a fully successful login."""
        self._store.clear_lockout(user_id)

    def remaining_attempts(self, credential: AdminCredential) -> int:
        return max(0, self._max_attempts - credential.failed_attempts)
