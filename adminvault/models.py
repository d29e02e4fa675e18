"""
Data Model

Records owned by the credential store and the login state machine states.

- AdminCredential: long-lived admin account (created out-of-band)
- TwoFactorSecret: TOTP secret + one-time backup codes
- AdminSession: server-side row for an issued session token
- AuditEvent: append-only record of a privileged action
"""

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_rfc3339(moment: datetime) -> str:
    """Render a datetime as an RFC 3339 UTC timestamp (millisecond precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class AuthState(Enum):
    """States of the admin login state machine."""

    AWAITING_CREDENTIALS = "awaiting_credentials"
    CREDENTIALS_VALID = "credentials_valid"
    AWAITING_2FA = "awaiting_2fa"
    TWO_FACTOR_VALID = "two_factor_valid"
    SESSION_ISSUED = "session_issued"
    LOCKED = "locked"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AdminCredential:
    """
    Snapshot of an admin account.

    Instances are immutable; the store hands out a fresh snapshot on every
    read so callers never share mutable state.
    """
    user_id: str
    email: str
    password_hash: str
    is_admin: bool = False
    is_super_admin: bool = False
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @property
    def has_admin_privilege(self) -> bool:
        return self.is_admin or self.is_super_admin

    def is_locked(self, now: datetime) -> bool:
        """True while a lockout window is in the future."""
        return self.locked_until is not None and now < self.locked_until

    def public_view(self) -> Dict[str, Any]:
        """Fields safe to hand to the HTTP layer (no hash, no counters)."""
        return {
            'id': self.user_id,
            'email': self.email,
            'isAdmin': self.is_admin,
            'isSuperAdmin': self.is_super_admin,
        }


@dataclass(frozen=True)
class TwoFactorSecret:
    """TOTP enrollment for one account (pending until ``enabled``)."""
    user_id: str
    secret: str  # base32, no padding
    backup_codes: FrozenSet[str] = frozenset()
    enabled: bool = False
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        return not self.enabled

    def with_codes(self, codes) -> 'TwoFactorSecret':
        return replace(self, backup_codes=frozenset(codes))


@dataclass(frozen=True)
class AdminSession:
    """
    Server-side session row.

    Only the HMAC digest of the bearer token is stored; the raw token is
    returned to the caller once, at creation.
    """
    token_hash: str
    user_id: str
    ip_address: str
    user_agent: str
    issued_at: datetime
    expires_at: datetime
    is_active: bool = True

    def is_expired(self, now: datetime) -> bool:
        """Sessions are valid strictly before ``expires_at``."""
        return now >= self.expires_at

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now)


@dataclass(frozen=True)
class AuditEvent:
    """Append-only audit record."""
    actor_id: str
    action: str
    details: Dict[str, Any] = field(default_factory=dict)
    ip_address: str = ''
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_record(self) -> Dict[str, Any]:
        """The persisted/exported record shape."""
        return {
            'id': self.id,
            'actorId': self.actor_id,
            'action': self.action,
            'details': self.details,
            'ip': self.ip_address,
            'ts': to_rfc3339(self.timestamp),
        }

    def to_json(self) -> str:
        """One newline-free JSON line (NDJSON export)."""
        return json.dumps(self.to_record(), separators=(',', ':'),
                          sort_keys=False, default=str)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> 'AuditEvent':
        ts = data['ts']
        if ts.endswith('Z'):
            ts = ts[:-1] + '+00:00'
        return cls(
            id=data['id'],
            actor_id=data['actorId'],
            action=data['action'],
            details=data.get('details') or {},
            ip_address=data.get('ip') or '',
            timestamp=datetime.fromisoformat(ts),
        )

    def __str__(self) -> str:
        return f"[{to_rfc3339(self.timestamp)}] {self.action} | actor:{self.actor_id}"
