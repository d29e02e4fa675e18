"""
Credential store contract.

The authentication core reaches persistence only through this narrow
interface. Every method may raise ``StoreUnavailable`` on timeout or
backend failure; implementations must never translate such a failure
into a "not found" result.

Methods prefixed ``atomic_`` (and the conditional puts) must be
linearizable per account: a single conditional UPDATE in SQL stores, a
per-account mutex in in-process stores.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, runtime_checkable

from ..models import AdminCredential, AdminSession, AuditEvent, TwoFactorSecret


@runtime_checkable
class CredentialStore(Protocol):

    # Credentials
    def get_credential(self, email: str) -> Optional[AdminCredential]: ...

    def get_credential_by_id(self, user_id: str) -> Optional[AdminCredential]: ...

    def atomic_increment_failed_attempts(self, user_id: str) -> int:
        """Increment the counter and return the new value."""
        ...

    def atomic_decrement_failed_attempts(self, user_id: str) -> int:
        """Give back one counted attempt (never below zero)."""
        ...

    def set_lockout(self, user_id: str, until: datetime) -> None: ...

    def clear_lockout(self, user_id: str) -> None:
        """Zero the counter and clear ``locked_until``."""
        ...

    def record_login(self, user_id: str, when: datetime) -> None: ...

    def update_password_hash(self, user_id: str, password_hash: str) -> None: ...

    # Two-factor
    def get_two_factor(self, user_id: str) -> Optional[TwoFactorSecret]: ...

    def put_pending_two_factor(self, record: TwoFactorSecret) -> bool:
        """Store a disabled record unless an enabled one exists."""
        ...

    def enable_two_factor(self, user_id: str, secret: str) -> bool:
        """Flip to enabled only if the pending secret is still ``secret``."""
        ...

    def delete_two_factor(self, user_id: str) -> None: ...

    def replace_backup_codes(self, user_id: str, codes: Iterable[str]) -> bool: ...

    def atomic_consume_backup_code(self, user_id: str, code: str) -> bool:
        """Remove ``code`` if present; True for exactly one caller."""
        ...

    def mark_two_factor_used(self, user_id: str, when: datetime) -> None: ...

    # Sessions
    def put_session(self, session: AdminSession) -> None: ...

    def get_session(self, token_hash: str) -> Optional[AdminSession]: ...

    def deactivate_session(self, token_hash: str) -> bool: ...

    def deactivate_user_sessions(self, user_id: str) -> int: ...

    def purge_sessions(self, now: datetime) -> int:
        """Delete expired or inactive rows; returns the number removed."""
        ...

    def count_active_sessions(self, now: datetime) -> int: ...

    # Audit
    def append_audit_event(self, event: AuditEvent) -> None: ...

    def list_audit_events(self) -> List[AuditEvent]: ...

    def verify_audit_chain(self) -> bool: ...
