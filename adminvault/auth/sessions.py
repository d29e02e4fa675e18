"""
Session Manager

Opaque bearer tokens for authenticated admins.

Security features:
- 64 random bytes per token (128 hex characters)
- Only an HMAC-SHA256 digest of the token reaches the store
- Fixed lifetime; validation never extends expiry
- Every validation re-reads the account, so privilege changes apply on
  the next request
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..config import SESSION_HOURS
from ..errors import SessionExpired, SessionNotFound, Unauthorized
from ..models import AdminCredential, AdminSession, utc_now
from ..store.base import CredentialStore

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 64
SESSION_LIFETIME = timedelta(hours=SESSION_HOURS)


class SessionManager:
    """
    Issue, validate and revoke admin sessions.

    Example:
        >>> sessions = SessionManager(store)
        >>> token, session = sessions.create("u1", "10.0.0.1", "Mozilla/5.0")
        >>> sessions.validate(token).user_id
        'u1'
    """

    def __init__(self, store: CredentialStore,
                 secret_key: Optional[bytes] = None,
                 lifetime: timedelta = SESSION_LIFETIME,
                 token_bytes: int = SESSION_TOKEN_BYTES,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            store: Credential store
            secret_key: HMAC key for token digests (random if not provided;
                set it explicitly when several processes share a store)
            lifetime: Session lifetime
            token_bytes: Random bytes per token
            clock: Source of the current UTC time
        """
        self._store = store
        self._secret_key = secret_key or secrets.token_bytes(32)
        self._lifetime = lifetime
        self._token_bytes = token_bytes
        self._clock = clock

    def _digest(self, token: str) -> str:
        return hmac.new(self._secret_key, token.encode(), hashlib.sha256).hexdigest()

    def create(self, user_id: str, ip_address: str = '',
               user_agent: str = '') -> Tuple[str, AdminSession]:
        """
        Issue a new session.

        Returns:
            Tuple of (token, AdminSession); the token is not stored
        """
        token = secrets.token_hex(self._token_bytes)
        now = self._clock()
        session = AdminSession(
            token_hash=self._digest(token),
            user_id=user_id,
            ip_address=ip_address or '',
            user_agent=user_agent or '',
            issued_at=now,
            expires_at=now + self._lifetime,
            is_active=True,
        )
        self._store.put_session(session)
        return token, session

    def check(self, token: str) -> Tuple[AdminSession, AdminCredential]:
        """
        Validate a token, raising on failure.

        Raises:
            SessionNotFound: Unknown or revoked token, or account gone
            SessionExpired: Past ``expires_at``
            Unauthorized: Account no longer has admin privilege
        """
        if not token:
            raise SessionNotFound(reason='empty token')
        session = self._store.get_session(self._digest(token))
        if session is None:
            raise SessionNotFound(reason='unknown token')
        if not session.is_active:
            raise SessionNotFound(reason='revoked')
        if session.is_expired(self._clock()):
            raise SessionExpired(reason='expired')

        credential = self._store.get_credential_by_id(session.user_id)
        if credential is None:
            raise SessionNotFound(reason='account removed')
        if not credential.has_admin_privilege:
            raise Unauthorized(reason='privilege revoked')
        return session, credential

    def validate(self, token: str) -> Optional[AdminCredential]:
        """Credential snapshot for a valid token, None otherwise."""
        try:
            _, credential = self.check(token)
        except (SessionNotFound, SessionExpired, Unauthorized) as exc:
            logger.debug("Session rejected: %s", exc.reason)
            return None
        return credential

    def revoke(self, token: str) -> None:
        """Deactivate a session. Idempotent."""
        if token:
            self._store.deactivate_session(self._digest(token))

    def revoke_all_for_user(self, user_id: str) -> int:
        count = self._store.deactivate_user_sessions(user_id)
        logger.info("Revoked %d sessions for %s", count, user_id)
        return count

    def cleanup_expired(self) -> int:
        """
        Remove expired and revoked rows.

        Maintenance only; validation never depends on it.

        Returns:
            Number of sessions removed
        """
        removed = self._store.purge_sessions(self._clock())
        if removed:
            logger.info("Purged %d stale admin sessions", removed)
        return removed

    def active_session_count(self) -> int:
        return self._store.count_active_sessions(self._clock())

    def lookup(self, token: str) -> Optional[AdminSession]:
        """Stored row for a token regardless of validity."""
        if not token:
            return None
        return self._store.get_session(self._digest(token))
