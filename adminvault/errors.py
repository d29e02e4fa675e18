"""
Authentication errors.

User-visible messages are deliberately uniform and low-information;
``reason`` carries the specific cause for audit and debugging only.
"""

from datetime import timedelta
from typing import Optional

from .models import AuthState


GENERIC_CREDENTIALS_MESSAGE = 'Invalid credentials'
GENERIC_SESSION_MESSAGE = 'Session expired or invalid. Please sign in again.'


class AuthError(Exception):
    """Base class for every failure raised by the subsystem."""

    state: AuthState = AuthState.REJECTED
    public_message: str = 'Authentication failed'
    status: int = 401
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.reason = reason or self.__class__.__name__

    def to_response(self) -> dict:
        """Dict shape returned by the API layer."""
        response = {'success': False, 'error': self.public_message, 'status': self.status}
        if self.retryable:
            response['retryable'] = True
        return response


class InvalidCredentials(AuthError):
    """Wrong email/password or unknown account (indistinguishable)."""
    public_message = GENERIC_CREDENTIALS_MESSAGE


class AccountLocked(AuthError):
    """Lockout window active."""
    state = AuthState.LOCKED
    status = 423

    def __init__(self, remaining: timedelta):
        self.remaining = remaining
        super().__init__(self.public_message, reason='account_locked')

    @property
    def remaining_minutes(self) -> int:
        seconds = max(0, int(self.remaining.total_seconds()))
        return max(1, -(-seconds // 60))

    @property
    def public_message(self) -> str:
        return f'Account locked. Try again in {self.remaining_minutes} minutes.'

    def to_response(self) -> dict:
        response = super().to_response()
        response['lockoutRemaining'] = int(self.remaining.total_seconds())
        return response


class TwoFactorRequired(AuthError):
    """Password accepted, second factor still pending. Not a rejection."""
    state = AuthState.AWAITING_2FA
    public_message = 'Two-factor authentication required'

    def to_response(self) -> dict:
        return {'success': False, 'requiresTwoFactor': True}


class InvalidTwoFactor(AuthError):
    """TOTP or backup code rejected; counts toward lockout."""
    public_message = 'Invalid two-factor authentication code'


class SessionInvalid(AuthError):
    """Base for session failures; callers must re-authenticate."""
    public_message = GENERIC_SESSION_MESSAGE


class SessionNotFound(SessionInvalid):
    pass


class SessionExpired(SessionInvalid):
    pass


class Unauthorized(AuthError):
    """Middleware rejection for privileged routes."""
    public_message = 'Admin access required'
    status = 403


class TwoFactorAlreadyEnabled(AuthError):
    """Setup refused: an enabled secret must be disabled explicitly first."""
    public_message = 'Two-factor authentication is already enabled'
    status = 409


class TwoFactorNotEnabled(AuthError):
    """Action needs an enabled second factor."""
    public_message = 'Two-factor authentication is not enabled'
    status = 409


class StoreUnavailable(AuthError):
    """Transient storage failure or timeout. Never a credential rejection."""
    public_message = 'Service temporarily unavailable'
    status = 503
    retryable = True
