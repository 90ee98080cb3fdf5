"""Tests for the audit trail and suspicious activity checks."""

import json
from unittest.mock import patch

import pytest

from app.models import AuditLog, RequestLog
from app.services.audit_service import (
    Actor,
    AuditService,
    determine_risk_level,
    serialize_snapshot,
)
from app.services.duplicate_prevention_service import DuplicatePreventionService

IP = "192.0.2.10"


@pytest.fixture
def audit(db_session, clock, test_settings):
    return AuditService(db_session, clock, test_settings)


@pytest.mark.parametrize(
    "action, table, expected",
    [
        ("DELETE", "Departments", "HIGH"),
        ("CREATE", "Users", "HIGH"),
        ("UPDATE", "UserRoles", "HIGH"),
        ("UPDATE", "Employees", "MEDIUM"),
        ("UPDATE", "Departments", "MEDIUM"),
        ("CREATE", "Departments", "LOW"),
        ("READ", "Employees", "LOW"),
    ],
)
def test_risk_level(action, table, expected):
    assert determine_risk_level(action, table) == expected


def test_serialize_snapshot():
    assert serialize_snapshot(None) is None
    assert serialize_snapshot("raw") == "raw"
    assert serialize_snapshot({"b": 1, "a": None}) == '{"b":1}'
    assert json.loads(serialize_snapshot({"x": object()}))["x"].startswith("<object")


class TestLogAction:
    def test_entry_fields(self, audit, clock, test_settings):
        entry = audit.log_action(
            "Departments",
            "7",
            "UPDATE",
            "user-1",
            "ana@example.com",
            IP,
            old_values={"name": "Ops", "code": "OPS"},
            new_values={"name": "Operations", "code": "OPS"},
            reason="Rename",
            user_agent="pytest",
        )

        assert entry.table_name == "Departments"
        assert entry.record_id == "7"
        assert entry.timestamp == clock.now()
        assert entry.old_values == '{"code":"OPS","name":"Ops"}'
        assert entry.new_values == '{"code":"OPS","name":"Operations"}'
        assert entry.changed_fields == "name"
        assert entry.reason == "Rename"
        assert entry.application_name == test_settings.AUDIT_APPLICATION_NAME
        assert entry.risk_level == "MEDIUM"
        assert entry.is_suspicious_activity is False

    def test_record_uses_actor(self, audit):
        actor = Actor(user_id="user-1", user_name="ana@example.com", ip_address=IP, user_agent="pytest")

        entry = audit.record(actor, "Departments", 3, "CREATE", new_values={"name": "Ops"})

        assert entry.record_id == "3"
        assert entry.user_id == "user-1"
        assert entry.user_name == "ana@example.com"
        assert entry.ip_address == IP
        assert entry.user_agent == "pytest"
        assert entry.changed_fields is None

    def test_anonymous_actor(self, audit):
        entry = audit.record(Actor(), "Departments", 1, "CREATE")

        assert entry.user_id is None
        assert entry.ip_address is None

    def test_failure_is_swallowed(self, audit, db_session):
        with patch.object(db_session, "commit", side_effect=RuntimeError("disk full")):
            assert audit.log_action("Departments", "1", "CREATE", None, None, IP) is None

        assert db_session.query(AuditLog).count() == 0


class TestSuspiciousActivity:
    def test_quiet_actor(self, audit):
        assert audit.is_suspicious_activity("user-1", IP) is False

    def test_action_volume(self, audit, test_settings):
        test_settings.AUDIT_ACTIONS_PER_HOUR_THRESHOLD = 3
        for i in range(3):
            audit.log_action("Departments", str(i), "CREATE", "user-1", None, "10.0.0.1")

        assert audit.is_suspicious_activity("user-1", IP) is True
        assert audit.is_suspicious_activity("user-2", "10.0.0.1") is True
        assert audit.is_suspicious_activity("user-2", IP) is False

    def test_entry_written_over_threshold_is_flagged(self, audit, test_settings):
        test_settings.AUDIT_ACTIONS_PER_HOUR_THRESHOLD = 2
        first = audit.log_action("Departments", "1", "CREATE", "user-1", None, IP)
        second = audit.log_action("Departments", "2", "CREATE", "user-1", None, IP)
        third = audit.log_action("Departments", "3", "CREATE", "user-1", None, IP)

        assert first.is_suspicious_activity is False
        assert second.is_suspicious_activity is False
        assert third.is_suspicious_activity is True

    def test_action_volume_window(self, audit, clock, test_settings):
        test_settings.AUDIT_ACTIONS_PER_HOUR_THRESHOLD = 3
        for i in range(3):
            audit.log_action("Departments", str(i), "CREATE", "user-1", None, IP)

        clock.advance(minutes=61)

        assert audit.is_suspicious_activity("user-1", IP) is False

    def test_blocked_duplicates(self, audit, db_session, clock, test_settings):
        duplicates = DuplicatePreventionService(db_session, clock, test_settings)
        for i in range(test_settings.DUPLICATE_ATTEMPT_THRESHOLD):
            duplicates.log_duplicate_attempt("Department", "X", None, {"n": i}, "user-1", None, "CREATE")

        assert audit.is_suspicious_activity("user-1", IP) is True

    def test_spam_requests(self, audit, db_session, clock, test_settings):
        for _ in range(test_settings.SPAM_REQUESTS_PER_HOUR_THRESHOLD):
            db_session.add(RequestLog(
                ip_address=IP,
                endpoint="/x",
                http_method="POST",
                request_hash="0" * 64,
                timestamp=clock.now(),
                is_spam_detected=True,
                spam_reason="High frequency",
            ))
        db_session.commit()

        assert audit.is_suspicious_activity("user-9", IP) is True

    def test_fails_open(self, audit, db_session):
        with patch.object(db_session, "query", side_effect=RuntimeError("db down")):
            assert audit.is_suspicious_activity("user-1", IP) is False

    def test_mark_suspicious_activity(self, audit):
        entry = audit.mark_suspicious_activity("user-1", IP, "Scripted logins")

        assert entry.table_name == "SECURITY"
        assert entry.record_id == f"user-1:{IP}"
        assert entry.action == "SUSPICIOUS_ACTIVITY"
        assert entry.new_values == '{"Reason":"Scripted logins"}'
        assert entry.reason == "Scripted logins"
        assert entry.risk_level == "LOW"


class TestListLogs:
    def test_filters_and_order(self, audit, clock):
        audit.log_action("Departments", "1", "CREATE", "user-1", None, IP)
        clock.advance(seconds=1)
        audit.log_action("Users", "u", "UPDATE", "user-2", None, IP)
        clock.advance(seconds=1)
        audit.log_action("Departments", "1", "DELETE", "user-1", None, IP)

        assert [e.action for e in audit.list_logs()] == ["DELETE", "UPDATE", "CREATE"]
        assert [e.action for e in audit.list_logs(user_id="user-2")] == ["UPDATE"]
        assert [e.action for e in audit.list_logs(table_name="Departments", limit=1)] == ["DELETE"]
