"""
Audit Log Tests
----------------
Tests cover:
- Entry append
- Chain integrity
- Tamper detection (including attack simulation)
- Request trail reconstruction
- record_audit_event() with and without a persistent log
"""

import logging
import pytest
from pathlib import Path
import sys
import sqlite3

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.audit import (
    AuditLog, AuditEntry, EventType, Actor, record_audit_event
)


class TestAuditEntryCreation:
    """Tests for AuditEntry basics."""

    def test_entry_defaults(self):
        entry = AuditEntry(request_id="req-123", action="test")

        assert entry.request_id == "req-123"
        assert entry.timestamp is not None
        assert entry.event_type == EventType.TOOL_EXECUTE

    def test_entry_to_dict(self):
        entry = AuditEntry(
            request_id="req-456",
            event_type=EventType.ACCESS_DENIED,
            actor=Actor.EVALUATOR,
            action="access_denied",
            target="create.domain",
            details={"reason": "read-only_access_level"},
        )

        data = entry.to_dict()
        assert data["request_id"] == "req-456"
        assert data["event_type"] == "ACCESS_DENIED"
        assert data["actor"] == "evaluator"
        assert '"reason"' in data["details"]


class TestAuditLogAppend:
    """Tests for audit log append operations."""

    def test_log_entry(self, audit_log):
        entry_hash = audit_log.log(
            event_type=EventType.TOOL_EXECUTE,
            actor=Actor.REGISTRY,
            action="execute",
            request_id="req-001",
            target="echo",
        )

        assert len(entry_hash) == 64  # SHA256 hex

    def test_details_round_trip(self, audit_log):
        audit_log.log(
            EventType.TOOL_EXECUTE, Actor.REGISTRY, "execute", "req-002",
            target="echo", details={"status": "completed", "cache_hit": False},
        )

        entry = audit_log.get_entries()[0]
        assert entry.details == {"status": "completed", "cache_hit": False}
        assert entry.target == "echo"

    def test_stats(self, audit_log):
        audit_log.log(EventType.ACCESS_GRANTED, Actor.EVALUATOR, "access_granted", "r1")
        audit_log.log(EventType.ACCESS_DENIED, Actor.EVALUATOR, "access_denied", "r2")
        audit_log.log(EventType.ACCESS_DENIED, Actor.EVALUATOR, "access_denied", "r3")

        stats = audit_log.get_stats()
        assert stats["total_entries"] == 3
        assert stats["access_denied"] == 2
        assert stats["first_entry"] <= stats["last_entry"]


class TestChainIntegrity:
    """Tests for HMAC chain integrity."""

    def _fill(self, audit_log, count):
        for i in range(count):
            audit_log.log(EventType.TOOL_EXECUTE, Actor.REGISTRY, f"action-{i}", f"req-{i}")

    def test_chain_links_consecutive(self, audit_log):
        self._fill(audit_log, 3)

        entries = audit_log.get_entries()
        assert entries[0].prev_hash == AuditLog.GENESIS_HASH
        assert entries[1].prev_hash == entries[0].entry_hash
        assert entries[2].prev_hash == entries[1].entry_hash

    def test_verify_chain_valid(self, audit_log):
        self._fill(audit_log, 5)

        result = audit_log.verify_chain()
        assert result.valid
        assert result.entries_checked == 5
        assert result.broken_at is None

    def test_verify_partial_range(self, audit_log):
        self._fill(audit_log, 5)

        result = audit_log.verify_chain(from_id=3)
        assert result.valid
        assert result.entries_checked == 3

    def test_verify_empty_chain(self, audit_log):
        result = audit_log.verify_chain()

        assert result.valid
        assert result.entries_checked == 0


class TestTamperDetection:
    """Tests for tamper detection."""

    def _fill(self, audit_log, count):
        for i in range(count):
            audit_log.log(EventType.ACCESS_GRANTED, Actor.EVALUATOR, f"action-{i}", f"req-{i}")

    def test_content_modification_detected(self, audit_log):
        self._fill(audit_log, 3)
        assert audit_log.verify_chain().valid

        conn = sqlite3.connect(audit_log.db_path)
        conn.execute("UPDATE audit_log SET event_type = 'ACCESS_DENIED' WHERE id = 2")
        conn.commit()
        conn.close()

        result = audit_log.verify_chain()
        assert not result.valid
        assert result.broken_at == 2

    def test_middle_entry_deletion_detected(self, audit_log):
        """Deleting an entry and relinking the next one still breaks the chain."""
        self._fill(audit_log, 5)
        entry_2_hash = audit_log.get_entries()[1].entry_hash

        conn = sqlite3.connect(audit_log.db_path)
        conn.execute("DELETE FROM audit_log WHERE id = 3")
        conn.execute("UPDATE audit_log SET prev_hash = ? WHERE id = 4", (entry_2_hash,))
        conn.commit()
        conn.close()

        result = audit_log.verify_chain()
        assert not result.valid
        assert result.broken_at == 4

    def test_wrong_key_fails_verification(self, audit_log):
        self._fill(audit_log, 2)

        other = AuditLog(audit_log.db_path, key=b"some-other-key")
        result = other.verify_chain()
        assert not result.valid
        assert result.broken_at == 1


class TestRequestTrail:
    def test_get_request_trail(self, audit_log):
        """Interleaved requests are separable by request_id."""
        audit_log.log(EventType.ACCESS_GRANTED, Actor.EVALUATOR, "access_granted", "req-A")
        audit_log.log(EventType.ACCESS_GRANTED, Actor.EVALUATOR, "access_granted", "req-B")
        audit_log.log(EventType.TOOL_EXECUTE, Actor.REGISTRY, "execute", "req-A")
        audit_log.log(EventType.TOOL_EXECUTE, Actor.REGISTRY, "execute", "req-B")

        trail = audit_log.get_request_trail("req-A")

        assert len(trail) == 2
        assert all(e.request_id == "req-A" for e in trail)
        assert [e.event_type for e in trail] == [EventType.ACCESS_GRANTED, EventType.TOOL_EXECUTE]


class TestRecordAuditEvent:
    def test_logs_without_persistent_log(self, caplog):
        with caplog.at_level(logging.INFO, logger="bridge.audit"):
            result = record_audit_event(
                None, EventType.ACCESS_GRANTED, Actor.EVALUATOR, "access_granted", "req-1",
                target="get.domain",
            )

        assert result is None
        assert "ACCESS_GRANTED" in caplog.text
        assert caplog.records[-1].request_id == "req-1"

    def test_denials_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="bridge.audit"):
            record_audit_event(None, EventType.ACCESS_DENIED, Actor.EVALUATOR, "access_denied", "req-2")

        assert caplog.records[-1].levelno == logging.WARNING

    def test_persists_when_log_given(self, audit_log):
        entry_hash = record_audit_event(
            audit_log, EventType.TOOL_REGISTERED, Actor.REGISTRY, "register", None, target="echo",
        )

        entry = audit_log.get_entries()[0]
        assert entry.entry_hash == entry_hash
        assert entry.request_id == "-"


class TestKeyManagement:
    def test_different_keys_different_hashes(self, tmp_path):
        log_a = AuditLog(str(tmp_path / "a.db"), key=b"key-A")
        log_b = AuditLog(str(tmp_path / "b.db"), key=b"key-B")

        hash_a = log_a.log(EventType.TOOL_EXECUTE, Actor.REGISTRY, "execute", "req-1")
        hash_b = log_b.log(EventType.TOOL_EXECUTE, Actor.REGISTRY, "execute", "req-1")

        assert hash_a != hash_b

    def test_env_key_loading(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BRIDGE_AUDIT_KEY", "my-secret-key")

        log = AuditLog(str(tmp_path / "env.db"))

        assert log._key == b"my-secret-key"
