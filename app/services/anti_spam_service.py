import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete, func
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.hashing import content_hash
from app.core.policy import fail_open
from app.models import RequestLog

logger = logging.getLogger(__name__)

SPAM_REASON_HIGH_FREQUENCY = "High frequency"
SPAM_REASON_DUPLICATES = "Duplicate requests"


class AntiSpamService:
    """
    Request ledger and the spam / rate-limit checks computed over it.

    Every count is a fresh query against ``request_logs``; nothing is cached,
    so concurrent writers may overshoot a threshold briefly.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings
        self.logger = logger

    def hash_request(self, request_data: Any) -> str:
        return content_hash(request_data if request_data is not None else "")

    def _count(self, *criteria) -> int:
        return self.db.query(func.count(RequestLog.id)).filter(*criteria).scalar() or 0

    @fail_open(default=False, message="Error checking spam")
    def is_spam_request(
        self,
        ip_address: str,
        user_id: Optional[str],
        endpoint: str,
        request_data: Any,
        check_duplicates: bool = True,
    ) -> bool:
        """
        ``check_duplicates=False`` skips the identical-payload rule, for
        requests such as reads that legitimately repeat.
        """
        request_hash = self.hash_request(request_data)
        window_start = self.clock.now() - timedelta(seconds=self.settings.SPAM_WINDOW_SECONDS)

        duplicate_count = self._count(
            RequestLog.request_hash == request_hash,
            RequestLog.timestamp >= window_start,
        ) if check_duplicates else 0
        if duplicate_count >= self.settings.SPAM_DUPLICATE_REQUEST_THRESHOLD:
            logger.warning(
                f"SPAM DETECTED: Duplicate request hash {request_hash} from IP {ip_address} "
                f"on {endpoint}, count: {duplicate_count}"
            )
            return True

        ip_count = self._count(
            RequestLog.ip_address == ip_address,
            RequestLog.timestamp >= window_start,
        )
        if ip_count >= self.settings.SPAM_IP_REQUESTS_PER_MINUTE:
            logger.warning(f"SPAM DETECTED: High frequency requests from IP {ip_address}, count: {ip_count}")
            return True

        if user_id:
            user_count = self._count(
                RequestLog.user_id == user_id,
                RequestLog.timestamp >= window_start,
            )
            if user_count >= self.settings.SPAM_USER_REQUESTS_PER_MINUTE:
                logger.warning(f"SPAM DETECTED: High frequency requests from user {user_id}, count: {user_count}")
                return True

        return False

    @fail_open(default=None, message="Error logging request")
    def log_request(
        self,
        ip_address: str,
        user_id: Optional[str],
        endpoint: str,
        http_method: str,
        request_data: Any,
        status_code: int,
        response_time_ms: int,
        user_agent: Optional[str] = None,
    ) -> Optional[RequestLog]:
        """Append a ledger entry with the window counts observed before it."""
        request_hash = self.hash_request(request_data)
        now = self.clock.now()
        minute_ago = now - timedelta(minutes=1)
        hour_ago = now - timedelta(hours=1)

        requests_in_last_minute = self._count(
            RequestLog.ip_address == ip_address,
            RequestLog.timestamp >= minute_ago,
        )
        requests_in_last_hour = self._count(
            RequestLog.ip_address == ip_address,
            RequestLog.timestamp >= hour_ago,
        )
        duplicate_request_count = self._count(
            RequestLog.request_hash == request_hash,
            RequestLog.timestamp >= hour_ago,
        )

        spam_reason = None
        if requests_in_last_minute >= self.settings.SPAM_IP_REQUESTS_PER_MINUTE:
            spam_reason = SPAM_REASON_HIGH_FREQUENCY
        elif duplicate_request_count >= self.settings.SPAM_LOGGED_DUPLICATES_PER_HOUR:
            spam_reason = SPAM_REASON_DUPLICATES

        entry = RequestLog(
            ip_address=ip_address,
            user_id=user_id,
            endpoint=endpoint[:200],
            http_method=http_method,
            request_hash=request_hash,
            timestamp=now,
            user_agent=user_agent[:500] if user_agent else None,
            response_status_code=status_code,
            response_time_ms=response_time_ms,
            is_spam_detected=spam_reason is not None,
            spam_reason=spam_reason,
            requests_in_last_minute=requests_in_last_minute,
            requests_in_last_hour=requests_in_last_hour,
            duplicate_request_count=duplicate_request_count,
        )
        self.db.add(entry)
        self.db.commit()

        if spam_reason:
            logger.warning(f"SPAM REQUEST LOGGED: {endpoint} from {ip_address} - {spam_reason}")
        return entry

    @fail_open(default=False, message="Error checking rate limit")
    def is_rate_limit_exceeded(
        self,
        ip_address: str,
        user_id: Optional[str],
        max_requests_per_minute: Optional[int] = None,
        max_requests_per_hour: Optional[int] = None,
    ) -> bool:
        """
        IP limits apply as given; authenticated users get
        RATE_LIMIT_USER_MULTIPLIER times the allowance.
        """
        per_minute = max_requests_per_minute or self.settings.RATE_LIMIT_PER_MINUTE
        per_hour = max_requests_per_hour or self.settings.RATE_LIMIT_PER_HOUR
        now = self.clock.now()
        minute_ago = now - timedelta(minutes=1)
        hour_ago = now - timedelta(hours=1)

        ip_minute = self._count(RequestLog.ip_address == ip_address, RequestLog.timestamp >= minute_ago)
        ip_hour = self._count(RequestLog.ip_address == ip_address, RequestLog.timestamp >= hour_ago)
        if ip_minute >= per_minute or ip_hour >= per_hour:
            return True

        if user_id:
            multiplier = self.settings.RATE_LIMIT_USER_MULTIPLIER
            user_minute = self._count(RequestLog.user_id == user_id, RequestLog.timestamp >= minute_ago)
            user_hour = self._count(RequestLog.user_id == user_id, RequestLog.timestamp >= hour_ago)
            if user_minute >= per_minute * multiplier or user_hour >= per_hour * multiplier:
                return True

        return False

    @fail_open(default=0, message="Error cleaning up old request logs")
    def cleanup_old_logs(self, retention_days: Optional[int] = None) -> int:
        days = retention_days if retention_days is not None else self.settings.REQUEST_LOG_RETENTION_DAYS
        cutoff = self.clock.now() - timedelta(days=days)
        result = self.db.execute(delete(RequestLog).where(RequestLog.timestamp < cutoff))
        self.db.commit()
        deleted = int(result.rowcount or 0)
        logger.info(f"Cleaned up {deleted} request logs older than {days} days")
        return deleted
