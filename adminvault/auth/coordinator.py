"""
Authentication Coordinator

The admin login state machine:

    AWAITING_CREDENTIALS -> CREDENTIALS_VALID
        -> (AWAITING_2FA -> TWO_FACTOR_VALID) -> SESSION_ISSUED
    failure states: LOCKED, REJECTED

Attempt accounting:
- unknown account / missing privilege: rejected, nothing counted
- active lockout: rejected before the password is checked, nothing counted
- every other attempt is counted before it is verified, so parallel
  requests cannot get more verifications than the remaining budget
- wrong password: stays counted
- valid password, 2FA enabled, no code supplied: AWAITING_2FA, the count
  is given back (the prompt cannot be used to lock an account out)
- valid password, wrong TOTP/backup code: stays counted
- full success: counter reset

Store failures propagate as StoreUnavailable and give the count back.
Password re-checks for disabling 2FA or regenerating backup codes share
the same counter.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..config import AuthSettings, get_settings
from ..errors import (
    AccountLocked,
    InvalidCredentials,
    InvalidTwoFactor,
    StoreUnavailable,
    TwoFactorNotEnabled,
    TwoFactorRequired,
    Unauthorized,
)
from ..integration.audit_logger import AuditAction, AuditLogger
from ..models import AdminCredential, AdminSession, AuthState, utc_now
from ..store.base import CredentialStore
from .lockout import LockoutPolicy
from .passwords import PasswordVerifier
from .sessions import SessionManager
from .two_factor import TwoFactorManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """A successful login."""
    token: str
    session: AdminSession
    credential: AdminCredential
    method: str  # 'password', 'totp' or 'backup_code'
    state: AuthState = AuthState.SESSION_ISSUED


class AuthenticationCoordinator:
    """
    Single entry point for admin login, logout and session checks.

    Example:
        >>> coordinator = AuthenticationCoordinator.from_settings(store)
        >>> result = coordinator.authenticate("a@x.com", "Correct1!")
        >>> coordinator.validate_session(result.token).email
        'a@x.com'
    """

    def __init__(self, store: CredentialStore,
                 passwords: PasswordVerifier,
                 lockout: LockoutPolicy,
                 two_factor: TwoFactorManager,
                 sessions: SessionManager,
                 audit: AuditLogger,
                 clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._passwords = passwords
        self._lockout = lockout
        self._two_factor = two_factor
        self._sessions = sessions
        self._audit = audit
        self._clock = clock

    @classmethod
    def from_settings(cls, store: CredentialStore,
                      settings: Optional[AuthSettings] = None,
                      passwords: Optional[PasswordVerifier] = None,
                      clock: Callable[[], datetime] = utc_now) -> 'AuthenticationCoordinator':
        """Wire every component from one settings object."""
        settings = settings or get_settings()
        passwords = passwords or PasswordVerifier()
        return cls(
            store=store,
            passwords=passwords,
            lockout=LockoutPolicy(
                store,
                max_attempts=settings.max_failed_attempts,
                lockout_duration=settings.lockout_duration,
                clock=clock,
            ),
            two_factor=TwoFactorManager(
                store,
                passwords,
                issuer=settings.issuer,
                digits=settings.totp_digits,
                time_step=settings.totp_period,
                window=settings.totp_window,
                secret_bytes=settings.totp_secret_bytes,
                backup_code_count=settings.backup_code_count,
                backup_code_bytes=settings.backup_code_bytes,
                clock=clock,
            ),
            sessions=SessionManager(
                store,
                secret_key=settings.session_secret_bytes,
                lifetime=settings.session_lifetime,
                token_bytes=settings.session_token_bytes,
                clock=clock,
            ),
            audit=AuditLogger(store, clock=clock),
            clock=clock,
        )

    # Components are exposed for the API layer and maintenance jobs
    @property
    def passwords(self) -> PasswordVerifier:
        return self._passwords

    @property
    def lockout(self) -> LockoutPolicy:
        return self._lockout

    @property
    def two_factor(self) -> TwoFactorManager:
        return self._two_factor

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    # ========================================================================
    # Login
    # ========================================================================

    def authenticate(self, email: str, password: str,
                     totp_code: Optional[str] = None,
                     backup_code: Optional[str] = None,
                     ip_address: str = '',
                     user_agent: str = '') -> LoginResult:
        """
        Run the login state machine.

        Returns:
            LoginResult with the new session token

        Raises:
            InvalidCredentials: Unknown account, no admin privilege or
                wrong password
            AccountLocked: Lockout window active
            TwoFactorRequired: Password valid, second factor not supplied
            InvalidTwoFactor: Second factor rejected
            StoreUnavailable: Transient storage failure
        """
        try:
            return self._authenticate(email, password, totp_code, backup_code,
                                      ip_address, user_agent)
        except StoreUnavailable as exc:
            logger.error("Admin login aborted, store unavailable: %s", exc.reason)
            raise

    def _transition(self, state: AuthState, user_id: Optional[str]) -> AuthState:
        logger.debug("login %s -> %s", user_id or '?', state.value)
        return state

    def _reject(self, error, actor_id: Optional[str], ip_address: str,
                action: str = AuditAction.LOGIN_FAILED, **details):
        details['reason'] = error.reason
        self._transition(error.state, actor_id)
        self._audit.log(actor_id, action, details, ip_address)
        raise error

    def _begin_attempt(self, credential: AdminCredential, ip_address: str,
                       action: str) -> int:
        """Refuse locked accounts, then count the attempt before verifying it."""
        user_id = credential.user_id
        locked, remaining = self._lockout.check(credential)
        if locked:
            self._reject(AccountLocked(remaining), user_id, ip_address, action)
        attempt = self._lockout.begin_attempt(credential)
        if attempt is None:
            self._reject(AccountLocked(self._lockout.remaining(user_id)),
                         user_id, ip_address, action)
        return attempt

    def _authenticate(self, email, password, totp_code, backup_code,
                      ip_address, user_agent) -> LoginResult:
        self._transition(AuthState.AWAITING_CREDENTIALS, None)

        credential = self._store.get_credential(email or '')
        if credential is None or not credential.has_admin_privilege:
            # equalise timing with the wrong-password path
            self._passwords.burn(password or '')
            reason = 'unknown_account' if credential is None else 'not_admin'
            self._reject(InvalidCredentials(reason=reason),
                         credential.user_id if credential else None,
                         ip_address, email=email)

        attempt = self._begin_attempt(credential, ip_address, AuditAction.LOGIN_FAILED)
        try:
            return self._verify_and_issue(credential, attempt, password, totp_code,
                                          backup_code, ip_address, user_agent)
        except StoreUnavailable:
            # a transient failure is not a failed attempt
            self._lockout.release(credential.user_id)
            raise

    def _verify_and_issue(self, credential, attempt, password, totp_code,
                          backup_code, ip_address, user_agent) -> LoginResult:
        user_id = credential.user_id
        if not self._passwords.verify(password or '', credential.password_hash):
            attempts = self._lockout.record_failure(user_id, attempt)
            self._reject(InvalidCredentials(reason='bad_password'), user_id,
                         ip_address, failedAttempts=attempts)
        self._transition(AuthState.CREDENTIALS_VALID, user_id)

        method = 'password'
        if self._two_factor.is_enabled(user_id):
            if not totp_code and not backup_code:
                self._lockout.release(user_id)
                self._transition(AuthState.AWAITING_2FA, user_id)
                raise TwoFactorRequired(reason='second_factor_missing')
            factor = self._two_factor.verify_method(user_id, totp_code, backup_code)
            if factor is None:
                attempts = self._lockout.record_failure(user_id, attempt)
                self._reject(InvalidTwoFactor(reason='bad_second_factor'), user_id,
                             ip_address, failedAttempts=attempts)
            method = factor
            self._transition(AuthState.TWO_FACTOR_VALID, user_id)

        self._lockout.reset(user_id)
        self._store.record_login(user_id, self._clock())
        if self._passwords.needs_rehash(credential.password_hash):
            self._store.update_password_hash(user_id, self._passwords.rehash(password))
            logger.info("Upgraded password hash parameters for %s", user_id)

        token, session = self._sessions.create(user_id, ip_address, user_agent)
        self._transition(AuthState.SESSION_ISSUED, user_id)
        self._audit.log(user_id, AuditAction.LOGIN, {'method': method}, ip_address)
        return LoginResult(token=token, session=session,
                           credential=credential, method=method)

    # ========================================================================
    # Sessions
    # ========================================================================

    def validate_session(self, token: str) -> AdminCredential:
        """
        Middleware contract for privileged routes.

        Returns:
            Fresh credential snapshot for the session's admin

        Raises:
            SessionNotFound / SessionExpired: Caller must sign in again
            Unauthorized: Account lost admin privilege
        """
        _, credential = self._sessions.check(token)
        return credential

    def require_admin(self, token: str, super_admin: bool = False) -> AdminCredential:
        credential = self.validate_session(token)
        if super_admin and not credential.is_super_admin:
            raise Unauthorized(reason='super admin required')
        return credential

    def logout(self, token: str, ip_address: str = '') -> None:
        """Revoke a session. Repeated or unknown tokens are a no-op."""
        session = self._sessions.lookup(token)
        self._sessions.revoke(token)
        if session is not None and session.is_active:
            self._audit.log(session.user_id, AuditAction.LOGOUT, {}, ip_address)

    def logout_everywhere(self, token: str, ip_address: str = '') -> int:
        """Revoke every session of the token's admin."""
        credential = self.validate_session(token)
        count = self._sessions.revoke_all_for_user(credential.user_id)
        self._audit.log(credential.user_id, AuditAction.LOGOUT_ALL,
                        {'sessions': count}, ip_address)
        return count

    # ========================================================================
    # Password re-verification
    # ========================================================================

    def confirm_password(self, credential: AdminCredential, password: str,
                         failed_action: str, ip_address: str = '') -> None:
        """
        Re-check the password before a security-downgrading action.

        Failures count toward lockout and are audited as ``failed_action``.

        Raises:
            AccountLocked: Lockout window active
            InvalidCredentials: Wrong password
        """
        user_id = credential.user_id
        attempt = self._begin_attempt(credential, ip_address, failed_action)
        if self._passwords.verify(password or '', credential.password_hash):
            self._lockout.release(user_id)
            return
        try:
            attempts = self._lockout.record_failure(user_id, attempt)
        except StoreUnavailable:
            self._lockout.release(user_id)
            raise
        self._reject(InvalidCredentials(reason='bad_password'), user_id,
                     ip_address, failed_action, failedAttempts=attempts)

    def disable_two_factor(self, token: str, password: str,
                           ip_address: str = '') -> AdminCredential:
        """Turn off two-factor for the token's admin after a password check."""
        credential = self.validate_session(token)
        self.confirm_password(credential, password, AuditAction.DISABLE_2FA_FAILED,
                              ip_address)
        self._two_factor.remove(credential.user_id)
        self._audit.log(credential.user_id, AuditAction.DISABLE_2FA,
                        {'enabled': False}, ip_address)
        return credential

    def regenerate_backup_codes(self, token: str, password: str,
                                ip_address: str = '') -> List[str]:
        """
        Replace the token's admin's backup codes after a password check.

        Raises:
            TwoFactorNotEnabled: Nothing to regenerate
            AccountLocked / InvalidCredentials: Password check refused
        """
        credential = self.validate_session(token)
        user_id = credential.user_id
        failed = AuditAction.REGENERATE_BACKUP_CODES_FAILED
        if not self._two_factor.is_enabled(user_id):
            self._reject(TwoFactorNotEnabled(reason='two_factor_not_enabled'),
                         user_id, ip_address, failed)
        self.confirm_password(credential, password, failed, ip_address)
        codes = self._two_factor.replace_backup_codes(user_id)
        if codes is None:
            # disabled between the check and the write
            self._reject(TwoFactorNotEnabled(reason='two_factor_not_enabled'),
                         user_id, ip_address, failed)
        self._audit.log(user_id, AuditAction.REGENERATE_BACKUP_CODES,
                        {'count': len(codes)}, ip_address)
        return codes

    def log_action(self, token: str, action: str,
                   details: Optional[dict] = None,
                   ip_address: str = '') -> AdminCredential:
        """Record a privileged action performed under ``token``."""
        credential = self.validate_session(token)
        self._audit.log(credential.user_id, action, details, ip_address)
        return credential
