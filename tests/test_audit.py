"""
Unit tests for the audit trail.

Tests:
- Record shape and timestamps
- Redaction of secrets
- NDJSON export and reload
- Tamper detection
- Audit failures never block the audited operation
"""

import io
import json

from adminvault.auth.coordinator import AuthenticationCoordinator
from adminvault.integration.audit_logger import (
    ANONYMOUS_ACTOR,
    AuditAction,
    AuditLogger,
    load_ndjson,
)
from adminvault.store.memory import InMemoryCredentialStore

from tests.helpers import ADMIN_EMAIL, ADMIN_ID, ADMIN_PASSWORD


class BrokenAuditStore(InMemoryCredentialStore):
    def append_audit_event(self, event):
        raise RuntimeError("audit table unavailable")


class TestRecord:
    """Event construction."""

    def test_record_shape(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        event = audit.log(ADMIN_ID, AuditAction.LOGIN, {'method': 'totp'}, "10.0.0.1")
        record = event.to_record()
        assert set(record) == {'id', 'actorId', 'action', 'details', 'ip', 'ts'}
        assert record['actorId'] == ADMIN_ID
        assert record['action'] == "admin_login"
        assert record['details'] == {'method': 'totp'}
        assert record['ip'] == "10.0.0.1"
        assert record['ts'] == "2026-01-01T12:00:00.000Z"

    def test_unique_ids(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        ids = {audit.log(ADMIN_ID, "x").id for _ in range(20)}
        assert len(ids) == 20

    def test_anonymous_actor(self, store, clock):
        event = AuditLogger(store, clock=clock).log(None, AuditAction.LOGIN_FAILED)
        assert event.actor_id == ANONYMOUS_ACTOR
        assert event.details == {}
        assert event.ip_address == ''

    def test_redaction(self, store, clock):
        event = AuditLogger(store, clock=clock).log(
            ADMIN_ID, "x", {'password': 'Correct1!', 'backupCode': 'ABCD1234', 'note': 'ok'})
        assert event.details == {
            'password': '[redacted]', 'backupCode': '[redacted]', 'note': 'ok'}

    def test_nested_redaction(self, store, clock):
        details = {'request': {'password': 'Correct1!', 'path': '/admin'},
                   'attempts': [{'totpCode': '123456'}, 'plain']}
        event = AuditLogger(store, clock=clock).log(ADMIN_ID, "x", details)
        assert event.details == {'request': {'password': '[redacted]', 'path': '/admin'},
                                 'attempts': [{'totpCode': '[redacted]'}, 'plain']}
        assert details['request']['password'] == 'Correct1!'

    def test_nested_redaction_in_fallback_log(self, clock, caplog):
        audit = AuditLogger(BrokenAuditStore(), clock=clock)
        with caplog.at_level("ERROR"):
            audit.log(ADMIN_ID, "x", {'request': {'sessionToken': 'ab' * 64}})
        assert "Audit write failed" in caplog.text
        assert 'ab' * 64 not in caplog.text

    def test_json_is_one_line(self, store, clock):
        event = AuditLogger(store, clock=clock).log(ADMIN_ID, "x", {'text': 'a\nb'})
        assert '\n' not in event.to_json()
        assert json.loads(event.to_json())['details']['text'] == 'a\nb'


class TestQueries:
    """Retrieval helpers."""

    def test_filters(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        audit.log(ADMIN_ID, AuditAction.LOGIN)
        audit.log("admin-2", AuditAction.LOGIN)
        audit.log(ADMIN_ID, AuditAction.LOGOUT)
        assert len(audit.all_events()) == 3
        assert [e.action for e in audit.events_for_actor(ADMIN_ID)] == [
            AuditAction.LOGIN, AuditAction.LOGOUT]
        assert len(audit.events_by_action(AuditAction.LOGIN)) == 2

    def test_recent_events(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        for i in range(15):
            audit.log(ADMIN_ID, f"action_{i}")
        recent = audit.recent_events(5)
        assert [e.action for e in recent] == [f"action_{i}" for i in range(10, 15)]
        assert len(audit.recent_events(50)) == 15


class TestExport:
    """NDJSON export."""

    def test_export_stream(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        audit.log(ADMIN_ID, AuditAction.LOGIN, {'method': 'password'})
        audit.log(ADMIN_ID, AuditAction.LOGOUT)
        buffer = io.StringIO()
        assert audit.export_ndjson(buffer) == 2
        lines = buffer.getvalue().splitlines()
        assert len(lines) == 2
        assert [json.loads(line)['action'] for line in lines] == [
            AuditAction.LOGIN, AuditAction.LOGOUT]

    def test_export_file_and_reload(self, store, clock, tmp_path):
        audit = AuditLogger(store, clock=clock)
        audit.log(ADMIN_ID, AuditAction.LOGIN, {'method': 'totp'}, "10.0.0.1")
        clock.advance(minutes=5)
        audit.log(None, AuditAction.LOGIN_FAILED, {'reason': 'bad_password'})
        path = tmp_path / "audit.ndjson"
        assert audit.export_ndjson(path) == 2

        loaded = load_ndjson(path)
        assert [e.to_record() for e in loaded] == [e.to_record() for e in audit.all_events()]

    def test_export_empty(self, store, clock, tmp_path):
        path = tmp_path / "empty.ndjson"
        assert AuditLogger(store, clock=clock).export_ndjson(str(path)) == 0
        assert load_ndjson(path) == []


class TestIntegrity:
    """Hash chain."""

    def test_intact(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        for action in (AuditAction.LOGIN, AuditAction.SETUP_2FA, AuditAction.LOGOUT):
            audit.log(ADMIN_ID, action)
        assert audit.verify_integrity()

    def test_empty_chain_intact(self, store, clock):
        assert AuditLogger(store, clock=clock).verify_integrity()

    def test_tampering_detected(self, store, clock):
        audit = AuditLogger(store, clock=clock)
        audit.log(ADMIN_ID, AuditAction.LOGIN, {'method': 'password'})
        audit.log(ADMIN_ID, AuditAction.LOGOUT)
        audit.all_events()[0].details['method'] = 'backup_code'
        assert not audit.verify_integrity()


class TestFailureIsolation:
    """Audit write failures."""

    def test_log_returns_none(self, clock, caplog):
        audit = AuditLogger(BrokenAuditStore(), clock=clock)
        with caplog.at_level("ERROR"):
            assert audit.log(ADMIN_ID, AuditAction.LOGIN) is None
        assert "Audit write failed" in caplog.text
        assert "admin_login" in caplog.text

    def test_login_still_succeeds(self, settings, verifier, clock, caplog):
        store = BrokenAuditStore()
        store.add_admin(ADMIN_ID, ADMIN_EMAIL, verifier.hash_password(ADMIN_PASSWORD))
        coordinator = AuthenticationCoordinator.from_settings(
            store, settings, passwords=verifier, clock=clock)
        with caplog.at_level("ERROR"):
            result = coordinator.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        assert coordinator.validate_session(result.token).user_id == ADMIN_ID
        assert "Audit write failed" in caplog.text
