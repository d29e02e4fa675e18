# Integration Module
"""
Audit trail for privileged admin actions.

Events are recorded through the credential store and can be exported
as newline-delimited JSON.
"""

from .audit_logger import AuditAction, AuditLogger, load_ndjson

__all__ = [
    'AuditAction',
    'AuditLogger',
    'load_ndjson',
]
