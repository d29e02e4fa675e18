# Authentication Module
"""
Admin authentication components:
- Password verification (Argon2id) - passwords.py
- TOTP (RFC 6238) primitives - totp.py
- TOTP enrollment + backup codes - two_factor.py
- Failed-attempt lockout - lockout.py
- Opaque session tokens - sessions.py
- Login state machine - coordinator.py

Security features:
- Constant-time password and code comparison
- Atomic failure counting and exactly-once backup codes
- Tokens from ``secrets``, stored only as HMAC digests
"""

from .passwords import PasswordVerifier, password_problems

from .totp import (
    generate_secret,
    secret_to_base32,
    base32_to_secret,
    hotp,
    totp,
    verify_totp,
    provisioning_uri,
    qr_code_data_url,
)

from .two_factor import TwoFactorManager, TwoFactorSetup
from .lockout import LockoutPolicy
from .sessions import SessionManager
from .coordinator import AuthenticationCoordinator, LoginResult

__all__ = [
    # Passwords
    'PasswordVerifier',
    'password_problems',
    # TOTP
    'generate_secret',
    'secret_to_base32',
    'base32_to_secret',
    'hotp',
    'totp',
    'verify_totp',
    'provisioning_uri',
    'qr_code_data_url',
    # Components
    'TwoFactorManager',
    'TwoFactorSetup',
    'LockoutPolicy',
    'SessionManager',
    'AuthenticationCoordinator',
    'LoginResult',
]
