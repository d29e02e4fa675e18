"""
AdminVault - admin authentication and session security.

Password + TOTP/backup-code login with lockout, opaque session tokens
and an append-only audit trail.
"""

from .api import AdminAuthAPI, admin_required
from .auth.coordinator import AuthenticationCoordinator, LoginResult
from .config import AuthSettings, get_settings
from .errors import (
    AuthError,
    InvalidCredentials,
    AccountLocked,
    TwoFactorRequired,
    InvalidTwoFactor,
    SessionInvalid,
    SessionNotFound,
    SessionExpired,
    Unauthorized,
    TwoFactorAlreadyEnabled,
    TwoFactorNotEnabled,
    StoreUnavailable,
)
from .models import AdminCredential, AdminSession, AuditEvent, AuthState, TwoFactorSecret
from .store import CredentialStore, InMemoryCredentialStore

__version__ = "0.1.0"

__all__ = [
    'AdminAuthAPI',
    'admin_required',
    'AuthenticationCoordinator',
    'LoginResult',
    'AuthSettings',
    'get_settings',
    'AuthError',
    'InvalidCredentials',
    'AccountLocked',
    'TwoFactorRequired',
    'InvalidTwoFactor',
    'SessionInvalid',
    'SessionNotFound',
    'SessionExpired',
    'Unauthorized',
    'TwoFactorAlreadyEnabled',
    'TwoFactorNotEnabled',
    'StoreUnavailable',
    'AdminCredential',
    'AdminSession',
    'AuditEvent',
    'AuthState',
    'TwoFactorSecret',
    'CredentialStore',
    'InMemoryCredentialStore',
]
