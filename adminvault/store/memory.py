"""
In-Memory Credential Store

Reference implementation of the credential store contract for a single
process.

- Per-account mutexes make the counter, lockout and backup-code updates
  linearizable
- Lock acquisition is bounded; a timeout surfaces as StoreUnavailable
- Audit events are kept as a SHA-256 hash chain (tamper-evident)

Cross-process deployments need a store with conditional updates instead.
"""

import hashlib
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..config import AuthSettings, get_settings
from ..errors import StoreUnavailable
from ..models import AdminCredential, AdminSession, AuditEvent, TwoFactorSecret

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def chain_hash(prev_hash: str, event: AuditEvent) -> str:
    """Link an event to its predecessor."""
    payload = (prev_hash + event.to_json()).encode('utf-8')
    return hashlib.sha256(payload).hexdigest()


class InMemoryCredentialStore:
    """
    Thread-safe in-process store.

    Example:
        >>> store = InMemoryCredentialStore()
        >>> store.add_admin("u1", "a@x.com", password_hash, is_admin=True)
        >>> store.atomic_increment_failed_attempts("u1")
        1
    """

    def __init__(self, lock_timeout: float = 5.0):
        """
        Initialize the store.

        Args:
            lock_timeout: Seconds to wait for a per-account lock before
                raising StoreUnavailable
        """
        self._lock_timeout = lock_timeout
        self._registry_lock = threading.Lock()
        self._account_locks: Dict[str, threading.Lock] = {}

        self._credentials: Dict[str, AdminCredential] = {}  # user_id -> credential
        self._emails: Dict[str, str] = {}  # lowercased email -> user_id
        self._two_factor: Dict[str, TwoFactorSecret] = {}

        self._sessions_lock = threading.Lock()
        self._sessions: Dict[str, AdminSession] = {}  # token_hash -> session

        self._audit_lock = threading.Lock()
        self._audit: List[Tuple[AuditEvent, str]] = []  # (event, chain hash)

    @classmethod
    def from_settings(cls, settings: Optional[AuthSettings] = None) -> 'InMemoryCredentialStore':
        settings = settings or get_settings()
        return cls(lock_timeout=settings.store_lock_timeout)

    # ========================================================================
    # Locking
    # ========================================================================

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._account_locks.get(user_id)
            if lock is None:
                lock = self._account_locks[user_id] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, lock: threading.Lock, what: str) -> Iterator[None]:
        if not lock.acquire(timeout=self._lock_timeout):
            logger.error("Timed out waiting for %s lock", what)
            raise StoreUnavailable(reason=f'lock timeout: {what}')
        try:
            yield
        finally:
            lock.release()

    def _account(self, user_id: str):
        return self._locked(self._lock_for(user_id), f'account {user_id}')

    # ========================================================================
    # Provisioning (out-of-band registration)
    # ========================================================================

    def add_admin(self, user_id: str, email: str, password_hash: str,
                  is_admin: bool = True, is_super_admin: bool = False) -> AdminCredential:
        """Create or replace an account record."""
        credential = AdminCredential(
            user_id=user_id,
            email=email,
            password_hash=password_hash,
            is_admin=is_admin,
            is_super_admin=is_super_admin,
        )
        with self._account(user_id):
            previous = self._credentials.get(user_id)
            if previous is not None:
                self._emails.pop(previous.email.lower(), None)
            self._credentials[user_id] = credential
            self._emails[email.lower()] = user_id
        return credential

    def set_privileges(self, user_id: str, is_admin: bool,
                       is_super_admin: bool = False) -> None:
        with self._account(user_id):
            current = self._credentials[user_id]
            self._credentials[user_id] = replace(
                current, is_admin=is_admin, is_super_admin=is_super_admin)

    # ========================================================================
    # Credentials
    # ========================================================================

    def get_credential(self, email: str) -> Optional[AdminCredential]:
        user_id = self._emails.get(email.strip().lower())
        if user_id is None:
            return None
        return self._credentials.get(user_id)

    def get_credential_by_id(self, user_id: str) -> Optional[AdminCredential]:
        return self._credentials.get(user_id)

    def atomic_increment_failed_attempts(self, user_id: str) -> int:
        with self._account(user_id):
            current = self._credentials[user_id]
            count = current.failed_attempts + 1
            self._credentials[user_id] = replace(current, failed_attempts=count)
            return count

    def atomic_decrement_failed_attempts(self, user_id: str) -> int:
        with self._account(user_id):
            current = self._credentials[user_id]
            count = max(0, current.failed_attempts - 1)
            self._credentials[user_id] = replace(current, failed_attempts=count)
            return count

    def set_lockout(self, user_id: str, until: datetime) -> None:
        with self._account(user_id):
            current = self._credentials[user_id]
            self._credentials[user_id] = replace(current, locked_until=until)

    def clear_lockout(self, user_id: str) -> None:
        with self._account(user_id):
            current = self._credentials[user_id]
            self._credentials[user_id] = replace(
                current, failed_attempts=0, locked_until=None)

    def record_login(self, user_id: str, when: datetime) -> None:
        with self._account(user_id):
            current = self._credentials[user_id]
            self._credentials[user_id] = replace(current, last_login_at=when)

    def update_password_hash(self, user_id: str, password_hash: str) -> None:
        with self._account(user_id):
            current = self._credentials[user_id]
            self._credentials[user_id] = replace(current, password_hash=password_hash)

    # ========================================================================
    # Two-Factor
    # ========================================================================

    def get_two_factor(self, user_id: str) -> Optional[TwoFactorSecret]:
        return self._two_factor.get(user_id)

    def put_pending_two_factor(self, record: TwoFactorSecret) -> bool:
        with self._account(record.user_id):
            existing = self._two_factor.get(record.user_id)
            if existing is not None and existing.enabled:
                return False
            self._two_factor[record.user_id] = replace(record, enabled=False)
            return True

    def enable_two_factor(self, user_id: str, secret: str) -> bool:
        with self._account(user_id):
            existing = self._two_factor.get(user_id)
            if existing is None or existing.enabled or existing.secret != secret:
                return False
            self._two_factor[user_id] = replace(existing, enabled=True)
            return True

    def delete_two_factor(self, user_id: str) -> None:
        with self._account(user_id):
            self._two_factor.pop(user_id, None)

    def replace_backup_codes(self, user_id: str, codes: Iterable[str]) -> bool:
        with self._account(user_id):
            existing = self._two_factor.get(user_id)
            if existing is None:
                return False
            self._two_factor[user_id] = existing.with_codes(codes)
            return True

    def atomic_consume_backup_code(self, user_id: str, code: str) -> bool:
        with self._account(user_id):
            existing = self._two_factor.get(user_id)
            if existing is None or code not in existing.backup_codes:
                return False
            self._two_factor[user_id] = existing.with_codes(existing.backup_codes - {code})
            return True

    def mark_two_factor_used(self, user_id: str, when: datetime) -> None:
        with self._account(user_id):
            existing = self._two_factor.get(user_id)
            if existing is not None:
                self._two_factor[user_id] = replace(existing, last_used_at=when)

    # ========================================================================
    # Sessions
    # ========================================================================

    def put_session(self, session: AdminSession) -> None:
        with self._locked(self._sessions_lock, 'sessions'):
            self._sessions[session.token_hash] = session

    def get_session(self, token_hash: str) -> Optional[AdminSession]:
        return self._sessions.get(token_hash)

    def deactivate_session(self, token_hash: str) -> bool:
        with self._locked(self._sessions_lock, 'sessions'):
            session = self._sessions.get(token_hash)
            if session is None or not session.is_active:
                return False
            self._sessions[token_hash] = replace(session, is_active=False)
            return True

    def deactivate_user_sessions(self, user_id: str) -> int:
        with self._locked(self._sessions_lock, 'sessions'):
            count = 0
            for key, session in list(self._sessions.items()):
                if session.user_id == user_id and session.is_active:
                    self._sessions[key] = replace(session, is_active=False)
                    count += 1
            return count

    def purge_sessions(self, now: datetime) -> int:
        with self._locked(self._sessions_lock, 'sessions'):
            stale = [key for key, s in self._sessions.items() if not s.is_valid(now)]
            for key in stale:
                del self._sessions[key]
            return len(stale)

    def count_active_sessions(self, now: datetime) -> int:
        return sum(1 for s in list(self._sessions.values()) if s.is_valid(now))

    # ========================================================================
    # Audit
    # ========================================================================

    def append_audit_event(self, event: AuditEvent) -> None:
        with self._locked(self._audit_lock, 'audit'):
            prev_hash = self._audit[-1][1] if self._audit else GENESIS_HASH
            self._audit.append((event, chain_hash(prev_hash, event)))

    def list_audit_events(self) -> List[AuditEvent]:
        with self._locked(self._audit_lock, 'audit'):
            return [event for event, _ in self._audit]

    def verify_audit_chain(self) -> bool:
        """Recompute every link; False if any event or hash was altered."""
        with self._locked(self._audit_lock, 'audit'):
            prev_hash = GENESIS_HASH
            for event, stored in self._audit:
                expected = chain_hash(prev_hash, event)
                if expected != stored:
                    logger.warning("Audit chain broken at event %s", event.id)
                    return False
                prev_hash = stored
            return True
