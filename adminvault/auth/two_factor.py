"""
Two-Factor Manager

TOTP enrollment and verification plus single-use backup codes.

Lifecycle of a secret: absent -> pending (disabled) -> enabled -> absent.

- Setup replaces a pending secret but never an enabled one
- Enable requires a valid code from the pending secret, so a badly
  transcribed secret cannot lock the admin out
- Disable and backup-code regeneration require the password again
- A backup code is removed and accepted in one atomic store call, so it
  succeeds exactly once even under concurrent submission
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..errors import TwoFactorAlreadyEnabled, Unauthorized
from ..models import TwoFactorSecret, utc_now, to_rfc3339
from ..store.base import CredentialStore
from .passwords import PasswordVerifier
from .totp import (
    TOTP_DIGITS,
    TOTP_SECRET_BYTES,
    TOTP_TIME_STEP,
    TOTP_WINDOW,
    base32_to_secret,
    generate_secret,
    provisioning_uri,
    qr_code_data_url,
    verify_totp,
)

logger = logging.getLogger(__name__)

BACKUP_CODE_COUNT = 10
BACKUP_CODE_BYTES = 4  # 8 hex characters


def normalize_backup_code(code: str) -> str:
    return code.replace(' ', '').replace('-', '').strip().upper()


@dataclass
class TwoFactorSetup:
    """Returned once by setup; the caller shows it to the admin."""
    secret: str
    qr_payload: str
    qr_code_url: str
    backup_codes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'secret': self.secret,
            'qrPayload': self.qr_payload,
            'qrCodeUrl': self.qr_code_url,
            'backupCodes': list(self.backup_codes),
        }


class TwoFactorManager:
    """
    Manage TOTP secrets and backup codes for admin accounts.

    Example:
        >>> manager = TwoFactorManager(store, verifier)
        >>> setup = manager.setup("u1")
        >>> manager.enable("u1", code_from_authenticator)
        True
    """

    def __init__(self, store: CredentialStore,
                 passwords: PasswordVerifier,
                 issuer: str = "AdminVault",
                 digits: int = TOTP_DIGITS,
                 time_step: int = TOTP_TIME_STEP,
                 window: int = TOTP_WINDOW,
                 secret_bytes: int = TOTP_SECRET_BYTES,
                 backup_code_count: int = BACKUP_CODE_COUNT,
                 backup_code_bytes: int = BACKUP_CODE_BYTES,
                 clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._passwords = passwords
        self._issuer = issuer
        self._digits = digits
        self._time_step = time_step
        self._window = window
        self._secret_bytes = secret_bytes
        self._backup_code_count = backup_code_count
        self._backup_code_bytes = backup_code_bytes
        self._clock = clock

    def generate_backup_codes(self) -> List[str]:
        codes: List[str] = []
        while len(codes) < self._backup_code_count:
            code = secrets.token_hex(self._backup_code_bytes).upper()
            if code not in codes:
                codes.append(code)
        return codes

    def _check_totp(self, secret_b32: str, code: str) -> bool:
        return verify_totp(
            base32_to_secret(secret_b32),
            code,
            timestamp=self._clock().timestamp(),
            digits=self._digits,
            time_step=self._time_step,
            window=self._window,
        )

    def _password_ok(self, user_id: str, password: str) -> bool:
        credential = self._store.get_credential_by_id(user_id)
        if credential is None:
            return False
        return self._passwords.verify(password, credential.password_hash)

    # ========================================================================
    # Enrollment
    # ========================================================================

    def setup(self, user_id: str) -> TwoFactorSetup:
        """
        Create a pending secret and a fresh set of backup codes.

        Raises:
            TwoFactorAlreadyEnabled: An enabled secret exists
            Unauthorized: Unknown account
        """
        credential = self._store.get_credential_by_id(user_id)
        if credential is None:
            raise Unauthorized(reason='unknown account')

        secret = generate_secret(self._secret_bytes)
        codes = self.generate_backup_codes()
        record = TwoFactorSecret(
            user_id=user_id,
            secret=secret,
            backup_codes=frozenset(codes),
            enabled=False,
            created_at=self._clock(),
        )
        if not self._store.put_pending_two_factor(record):
            raise TwoFactorAlreadyEnabled(reason='setup while enabled')

        uri = provisioning_uri(secret, credential.email, self._issuer,
                               self._digits, self._time_step)
        logger.info("Two-factor setup started for %s", user_id)
        return TwoFactorSetup(
            secret=secret,
            qr_payload=uri,
            qr_code_url=qr_code_data_url(uri),
            backup_codes=codes,
        )

    def enable(self, user_id: str, totp_code: str) -> bool:
        """Confirm the pending secret with a code from the authenticator."""
        record = self._store.get_two_factor(user_id)
        if record is None or record.enabled:
            return False
        if not self._check_totp(record.secret, totp_code):
            return False
        # conditional on the secret we verified against
        enabled = self._store.enable_two_factor(user_id, record.secret)
        if enabled:
            logger.info("Two-factor enabled for %s", user_id)
        return enabled

    def disable(self, user_id: str, password: str) -> bool:
        """Remove two-factor after re-verifying the password."""
        if not self._password_ok(user_id, password):
            return False
        self.remove(user_id)
        return True

    def remove(self, user_id: str) -> None:
        """Remove two-factor; the caller has already confirmed the password."""
        self._store.delete_two_factor(user_id)
        logger.info("Two-factor disabled for %s", user_id)

    def regenerate_backup_codes(self, user_id: str, password: str) -> Optional[List[str]]:
        """Replace the whole backup-code set; None if not permitted."""
        record = self._store.get_two_factor(user_id)
        if record is None or not record.enabled:
            return None
        if not self._password_ok(user_id, password):
            return None
        return self.replace_backup_codes(user_id)

    def replace_backup_codes(self, user_id: str) -> Optional[List[str]]:
        """New backup-code set without a password check; None if 2FA is gone."""
        codes = self.generate_backup_codes()
        if not self._store.replace_backup_codes(user_id, codes):
            return None
        return codes

    # ========================================================================
    # Verification
    # ========================================================================

    def is_enabled(self, user_id: str) -> bool:
        record = self._store.get_two_factor(user_id)
        return record is not None and record.enabled

    def verify(self, user_id: str,
               totp_code: Optional[str] = None,
               backup_code: Optional[str] = None) -> bool:
        """
        Check a TOTP code first, then fall back to a backup code.

        Returns:
            True if either factor is accepted
        """
        return self.verify_method(user_id, totp_code, backup_code) is not None

    def verify_method(self, user_id: str,
                      totp_code: Optional[str] = None,
                      backup_code: Optional[str] = None) -> Optional[str]:
        """
        Same as ``verify`` but reports which factor was accepted.

        Returns:
            'totp', 'backup_code' or None
        """
        record = self._store.get_two_factor(user_id)
        if record is None or not record.enabled:
            return None

        if totp_code and self._check_totp(record.secret, totp_code):
            self._store.mark_two_factor_used(user_id, self._clock())
            return 'totp'

        if backup_code:
            code = normalize_backup_code(backup_code)
            # removal and acceptance are one store call
            if code and self._store.atomic_consume_backup_code(user_id, code):
                self._store.mark_two_factor_used(user_id, self._clock())
                logger.info("Backup code consumed for %s", user_id)
                return 'backup_code'

        return None

    def status(self, user_id: str) -> Dict[str, Any]:
        record = self._store.get_two_factor(user_id)
        if record is None:
            return {'enabled': False, 'pending': False,
                    'backupCodesRemaining': 0, 'lastUsedAt': None}
        return {
            'enabled': record.enabled,
            'pending': record.pending,
            'backupCodesRemaining': len(record.backup_codes),
            'lastUsedAt': to_rfc3339(record.last_used_at) if record.last_used_at else None,
        }
