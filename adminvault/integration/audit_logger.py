"""
Audit Logger Module

Append-only audit trail of privileged admin actions.

Features:
- One AuditEvent per login, logout, 2FA change or other admin action
- Untyped ``details`` payloads (each action decides its own fields)
- Newline-delimited JSON export for log shipping
- Tamper check via the store's hash chain

An audit write failure never fails or blocks the operation it belongs
to; it is reported on the process log instead.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Union

from ..models import AuditEvent, utc_now
from ..store.base import CredentialStore

logger = logging.getLogger(__name__)


# ============================================================================
# Actions
# ============================================================================

class AuditAction:
    """Action names recorded by this package."""

    LOGIN = "admin_login"
    LOGIN_FAILED = "admin_login_failed"
    LOGOUT = "admin_logout"
    LOGOUT_ALL = "admin_logout_all"
    SETUP_2FA = "setup_2fa"
    ENABLE_2FA = "enable_2fa"
    DISABLE_2FA = "disable_2fa"
    DISABLE_2FA_FAILED = "disable_2fa_failed"
    REGENERATE_BACKUP_CODES = "regenerate_backup_codes"
    REGENERATE_BACKUP_CODES_FAILED = "regenerate_backup_codes_failed"


ANONYMOUS_ACTOR = "anonymous"

# Keys that must never reach the audit trail
REDACTED_KEYS = frozenset({
    'password', 'totpCode', 'backupCode', 'token', 'sessionToken', 'secret',
})


def redact(details: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``details`` with secret-bearing keys masked at any depth."""
    return {k: ('[redacted]' if k in REDACTED_KEYS else _redact_value(v))
            for k, v in details.items()}


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return redact(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


# ============================================================================
# Audit Logger
# ============================================================================

class AuditLogger:
    """
    Record and query audit events.

    Example:
        >>> audit = AuditLogger(store)
        >>> audit.log("u1", AuditAction.LOGIN, {"method": "password"}, "10.0.0.1")
    """

    def __init__(self, store: CredentialStore,
                 clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._clock = clock

    def log(self, actor_id: Optional[str], action: str,
            details: Optional[Dict[str, Any]] = None,
            ip_address: Optional[str] = None) -> Optional[AuditEvent]:
        """
        Append an audit event.

        Args:
            actor_id: Acting admin (``anonymous`` when unknown)
            action: Action name
            details: Structured payload
            ip_address: Client IP

        Returns:
            The event, or None if the write failed (logged as fallback)
        """
        event = AuditEvent(
            actor_id=actor_id or ANONYMOUS_ACTOR,
            action=action,
            details=redact(details or {}),
            ip_address=ip_address or '',
            timestamp=self._clock(),
        )
        try:
            self._store.append_audit_event(event)
        except Exception:
            logger.exception("Audit write failed; event=%s", event.to_json())
            return None
        return event

    # ========================================================================
    # Retrieval
    # ========================================================================

    def all_events(self) -> List[AuditEvent]:
        return self._store.list_audit_events()

    def events_for_actor(self, actor_id: str) -> List[AuditEvent]:
        return [e for e in self.all_events() if e.actor_id == actor_id]

    def events_by_action(self, action: str) -> List[AuditEvent]:
        return [e for e in self.all_events() if e.action == action]

    def recent_events(self, count: int = 10) -> List[AuditEvent]:
        events = self.all_events()
        return events[-count:] if len(events) > count else events

    def verify_integrity(self) -> bool:
        """True if no stored event has been altered or removed."""
        return self._store.verify_audit_chain()

    # ========================================================================
    # Export
    # ========================================================================

    def export_ndjson(self, target: Union[str, Path, IO[str]]) -> int:
        """
        Write every event as one JSON object per line.

        Args:
            target: Path or writable text stream

        Returns:
            Number of events written
        """
        events = self.all_events()
        if isinstance(target, (str, Path)):
            with open(target, 'w', encoding='utf-8') as fh:
                return self._write_lines(events, fh)
        return self._write_lines(events, target)

    @staticmethod
    def _write_lines(events: List[AuditEvent], fh: IO[str]) -> int:
        for event in events:
            fh.write(event.to_json())
            fh.write('\n')
        return len(events)


def load_ndjson(source: Union[str, Path]) -> List[AuditEvent]:
    """Read events back from an NDJSON export (blank lines ignored)."""
    events = []
    with open(source, 'r', encoding='utf-8') as fh:
        for line in fh:
            line = line.strip()
            if line:
                events.append(AuditEvent.from_record(json.loads(line)))
    return events
