"""Tests for the request ledger, spam detection and ledger rate limits."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from app.core.hashing import content_hash
from app.models import RequestLog
from app.services.anti_spam_service import (
    SPAM_REASON_DUPLICATES,
    SPAM_REASON_HIGH_FREQUENCY,
    AntiSpamService,
)

IP = "198.51.100.4"
PAYLOAD = {"method": "POST", "path": "/api/departments", "body": '{"name":"Ops"}'}


@pytest.fixture
def spam(db_session, clock, test_settings):
    return AntiSpamService(db_session, clock, test_settings)


def seed(spam, count, ip=IP, user_id=None, data=PAYLOAD, endpoint="/api/departments"):
    for _ in range(count):
        spam.log_request(ip, user_id, endpoint, "POST", data, 200, 5)


class TestSpamDetection:
    def test_clean_request(self, spam):
        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is False

    def test_duplicate_payload_threshold(self, spam):
        """The fifth identical payload inside the window marks the next one as spam."""
        seed(spam, 4)
        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is False

        seed(spam, 1)
        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is True

    def test_duplicates_from_any_ip_count(self, spam):
        for i in range(5):
            seed(spam, 1, ip=f"10.0.0.{i}")

        assert spam.is_spam_request("10.0.0.99", None, "/api/departments", PAYLOAD) is True

    def test_duplicate_rule_can_be_skipped(self, spam):
        seed(spam, 5)

        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD, check_duplicates=False) is False

    def test_different_payloads_are_not_duplicates(self, spam):
        for i in range(10):
            seed(spam, 1, data={"n": i})

        assert spam.is_spam_request(IP, None, "/api/departments", {"n": 99}) is False

    def test_ip_frequency(self, spam, test_settings):
        test_settings.SPAM_IP_REQUESTS_PER_MINUTE = 10
        for i in range(10):
            seed(spam, 1, data={"n": i})

        assert spam.is_spam_request(IP, None, "/x", {"n": "new"}) is True
        assert spam.is_spam_request("203.0.113.1", None, "/x", {"n": "new"}) is False

    def test_user_frequency(self, spam, test_settings):
        test_settings.SPAM_USER_REQUESTS_PER_MINUTE = 6
        for i in range(6):
            seed(spam, 1, ip=f"10.0.1.{i}", user_id="user-1", data={"n": i})

        assert spam.is_spam_request("10.0.2.1", "user-1", "/x", {"n": "new"}) is True
        assert spam.is_spam_request("10.0.2.1", "user-2", "/x", {"n": "new"}) is False

    def test_window_slides(self, spam, clock):
        seed(spam, 5)

        clock.advance(seconds=60)
        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is True

        clock.advance(seconds=1)
        assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is False

    def test_fails_open(self, spam):
        with patch.object(spam, "_count", side_effect=RuntimeError("db down")):
            assert spam.is_spam_request(IP, None, "/x", PAYLOAD) is False


class TestRequestLogging:
    def test_log_entry_fields(self, spam, clock):
        entry = spam.log_request(IP, "user-1", "/api/auth/login", "POST", PAYLOAD, 401, 12, "pytest-agent")

        assert entry.ip_address == IP
        assert entry.user_id == "user-1"
        assert entry.endpoint == "/api/auth/login"
        assert entry.http_method == "POST"
        assert entry.request_hash == content_hash(PAYLOAD)
        assert entry.timestamp == clock.now()
        assert entry.user_agent == "pytest-agent"
        assert entry.response_status_code == 401
        assert entry.response_time_ms == 12
        assert entry.is_spam_detected is False
        assert entry.spam_reason is None

    def test_counts_exclude_the_new_row(self, spam):
        seed(spam, 3)

        entry = spam.log_request(IP, None, "/api/departments", "POST", PAYLOAD, 200, 1)

        assert entry.requests_in_last_minute == 3
        assert entry.requests_in_last_hour == 3
        assert entry.duplicate_request_count == 3

    def test_minute_and_hour_counts(self, spam, clock):
        seed(spam, 2)
        clock.advance(minutes=30)
        seed(spam, 1, data={"other": True})

        entry = spam.log_request(IP, None, "/x", "GET", {"third": True}, 200, 1)

        assert entry.requests_in_last_minute == 1
        assert entry.requests_in_last_hour == 3

    def test_high_frequency_reason(self, spam, test_settings):
        test_settings.SPAM_IP_REQUESTS_PER_MINUTE = 3
        for i in range(3):
            seed(spam, 1, data={"n": i})

        entry = spam.log_request(IP, None, "/x", "GET", {"n": "new"}, 200, 1)

        assert entry.is_spam_detected is True
        assert entry.spam_reason == SPAM_REASON_HIGH_FREQUENCY

    def test_duplicate_reason(self, spam, clock, test_settings):
        # Spread over the hour so the per-minute count stays low
        for _ in range(test_settings.SPAM_LOGGED_DUPLICATES_PER_HOUR):
            seed(spam, 1)
            clock.advance(minutes=5)

        entry = spam.log_request(IP, None, "/api/departments", "POST", PAYLOAD, 200, 1)

        assert entry.is_spam_detected is True
        assert entry.spam_reason == SPAM_REASON_DUPLICATES

    def test_high_frequency_wins_over_duplicates(self, spam, test_settings):
        test_settings.SPAM_IP_REQUESTS_PER_MINUTE = 2
        test_settings.SPAM_LOGGED_DUPLICATES_PER_HOUR = 2
        seed(spam, 2)

        entry = spam.log_request(IP, None, "/api/departments", "POST", PAYLOAD, 200, 1)

        assert entry.spam_reason == SPAM_REASON_HIGH_FREQUENCY

    def test_long_values_are_truncated(self, spam):
        entry = spam.log_request(IP, None, "/" + "a" * 300, "GET", None, 200, 1, "b" * 600)

        assert len(entry.endpoint) == 200
        assert len(entry.user_agent) == 500

    def test_none_payload_hashes_like_empty_string(self, spam):
        assert spam.hash_request(None) == spam.hash_request("")

    def test_logging_failure_is_swallowed(self, spam, db_session):
        with patch.object(db_session, "commit", side_effect=RuntimeError("disk full")):
            assert spam.log_request(IP, None, "/x", "GET", PAYLOAD, 200, 1) is None

        assert db_session.query(RequestLog).count() == 0


class TestLedgerRateLimit:
    def test_under_limit(self, spam):
        seed(spam, 59, data=None)

        assert spam.is_rate_limit_exceeded(IP, None) is False

    def test_per_minute_limit(self, spam):
        seed(spam, 60, data=None)

        assert spam.is_rate_limit_exceeded(IP, None) is True

    def test_minute_rolls_over(self, spam, clock):
        seed(spam, 60, data=None)

        clock.advance(seconds=61)

        assert spam.is_rate_limit_exceeded(IP, None) is False

    def test_per_hour_limit(self, spam, clock):
        spam.settings.RATE_LIMIT_PER_HOUR = 20
        for _ in range(4):
            seed(spam, 5, data=None)
            clock.advance(minutes=10)

        assert spam.is_rate_limit_exceeded(IP, None) is True

    def test_explicit_limits(self, spam):
        seed(spam, 3, data=None)

        assert spam.is_rate_limit_exceeded(IP, None, max_requests_per_minute=3) is True
        assert spam.is_rate_limit_exceeded(IP, None, max_requests_per_minute=4) is False

    def test_user_gets_multiplied_allowance(self, spam):
        # Spread across IPs so only the user rule can trigger
        for i in range(119):
            seed(spam, 1, ip=f"10.1.{i // 50}.{i % 50}", user_id="user-1", data=None)

        assert spam.is_rate_limit_exceeded("10.9.9.9", "user-1") is False

        seed(spam, 1, ip="10.8.8.8", user_id="user-1", data=None)
        assert spam.is_rate_limit_exceeded("10.9.9.9", "user-1") is True

    def test_fails_open(self, spam):
        with patch.object(spam, "_count", side_effect=RuntimeError("db down")):
            assert spam.is_rate_limit_exceeded(IP, "user-1") is False


class TestCleanup:
    def test_cleanup_old_logs(self, spam, clock, db_session):
        seed(spam, 3)
        clock.advance(days=31)
        seed(spam, 2)

        assert spam.cleanup_old_logs() == 3
        assert db_session.query(RequestLog).count() == 2

    def test_explicit_retention(self, spam, clock, db_session):
        seed(spam, 1)
        clock.advance(days=2)

        assert spam.cleanup_old_logs(retention_days=3) == 0
        assert spam.cleanup_old_logs(retention_days=1) == 1

    def test_cleanup_failure_returns_zero(self, spam, db_session):
        with patch.object(db_session, "execute", side_effect=RuntimeError("locked")):
            assert spam.cleanup_old_logs() == 0


def test_window_start_uses_injected_clock(spam, clock):
    seed(spam, 5)
    clock.set(clock.now() + timedelta(hours=2))

    assert spam.is_spam_request(IP, None, "/api/departments", PAYLOAD) is False
