"""Tests for hash-based duplicate submission detection."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from app.core.hashing import content_hash
from app.models import DuplicateDetectionLog
from app.schemas.departments import DepartmentCreateRequest
from app.services.duplicate_prevention_service import DuplicatePreventionService

IP = "198.51.100.7"


@pytest.fixture
def duplicates(db_session, clock, test_settings):
    return DuplicatePreventionService(db_session, clock, test_settings)


def department(name="Operations", code="OPS"):
    return DepartmentCreateRequest(name=name, department_code=code)


def log_attempt(duplicates, data, user_id="user-1", ip=IP, blocked=True, entity_type="Department"):
    return duplicates.log_duplicate_attempt(
        entity_type, "OPS", None, data, user_id, ip, "CREATE", was_blocked=blocked
    )


class TestDataHash:
    def test_same_content_same_hash(self, duplicates):
        assert duplicates.generate_data_hash(department()) == duplicates.generate_data_hash(department())

    def test_different_content_different_hash(self, duplicates):
        assert duplicates.generate_data_hash(department()) != duplicates.generate_data_hash(department("Finance"))

    def test_models_hash_with_camel_case_keys(self, duplicates):
        expected = content_hash({"name": "Operations", "departmentCode": "OPS"})

        assert duplicates.generate_data_hash(department()) == expected

    def test_unserializable_value_gets_random_hash(self, duplicates):
        first = duplicates.generate_data_hash({"x": object()})
        second = duplicates.generate_data_hash({"x": object()})

        assert len(first) == 32
        assert first != second


class TestDuplicateDetection:
    def test_first_submission_is_not_duplicate(self, duplicates):
        assert duplicates.is_duplicate_data(department(), "Department", "Operations") is False

    def test_logged_attempt_makes_payload_duplicate(self, duplicates):
        log_attempt(duplicates, department())

        assert duplicates.is_duplicate_data(department(), "Department", "Operations") is True
        assert duplicates.is_duplicate_data(department("Finance"), "Department", "Finance") is False

    def test_scoped_by_entity_type(self, duplicates):
        log_attempt(duplicates, department(), entity_type="Team")

        assert duplicates.is_duplicate_data(department(), "Department", "Operations") is False

    def test_lookback_window(self, duplicates, clock):
        log_attempt(duplicates, department())

        clock.advance(hours=24)
        assert duplicates.is_duplicate_data(department(), "Department", "Operations") is True

        clock.advance(seconds=1)
        assert duplicates.is_duplicate_data(department(), "Department", "Operations") is False

    def test_fails_open(self, duplicates, db_session):
        with patch.object(db_session, "query", side_effect=RuntimeError("db down")):
            assert duplicates.is_duplicate_data(department(), "Department", "Operations") is False


class TestAttemptLogging:
    def test_log_entry_fields(self, duplicates, clock):
        entry = duplicates.log_duplicate_attempt(
            "Department",
            "OPS",
            {"name": "Operations"},
            department(),
            "user-1",
            IP,
            "CREATE",
        )

        assert entry.entity_type == "Department"
        assert entry.entity_id == "OPS"
        assert entry.data_hash == duplicates.generate_data_hash(department())
        assert entry.detected_at == clock.now()
        assert entry.original_data == '{"name":"Operations"}'
        assert entry.duplicate_data == '{"departmentCode":"OPS","name":"Operations"}'
        assert entry.detection_method == "BUSINESS_LOGIC"
        assert entry.was_blocked is True
        assert entry.notes == "Duplicate Department attempt detected"

    def test_logging_failure_is_swallowed(self, duplicates, db_session):
        with patch.object(db_session, "commit", side_effect=RuntimeError("disk full")):
            assert log_attempt(duplicates, department()) is None

        assert db_session.query(DuplicateDetectionLog).count() == 0


class TestRecentAttempts:
    def test_threshold(self, duplicates):
        for i in range(4):
            log_attempt(duplicates, {"n": i})
        assert duplicates.has_recent_duplicate_attempts("user-1", IP, timedelta(hours=1)) is False

        log_attempt(duplicates, {"n": 4})
        assert duplicates.has_recent_duplicate_attempts("user-1", IP, timedelta(hours=1)) is True

    def test_user_or_ip_matches(self, duplicates):
        for i in range(3):
            log_attempt(duplicates, {"n": i}, user_id="user-1", ip="10.0.0.1")
        for i in range(2):
            log_attempt(duplicates, {"m": i}, user_id="user-2", ip=IP)

        assert duplicates.count_blocked_attempts("user-1", IP, timedelta(hours=1)) == 5
        assert duplicates.count_blocked_attempts("user-1", None, timedelta(hours=1)) == 3
        assert duplicates.count_blocked_attempts(None, None, timedelta(hours=1)) == 0

    def test_unblocked_attempts_do_not_count(self, duplicates):
        for i in range(5):
            log_attempt(duplicates, {"n": i}, blocked=False)

        assert duplicates.has_recent_duplicate_attempts("user-1", IP, timedelta(hours=1)) is False

    def test_window(self, duplicates, clock):
        for i in range(5):
            log_attempt(duplicates, {"n": i})

        clock.advance(minutes=61)

        assert duplicates.has_recent_duplicate_attempts("user-1", IP, timedelta(hours=1)) is False
