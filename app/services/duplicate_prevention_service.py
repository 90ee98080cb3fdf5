import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.hashing import canonical_json, content_hash
from app.core.policy import fail_open
from app.models import DuplicateDetectionLog

logger = logging.getLogger(__name__)

DETECTION_METHOD = "BUSINESS_LOGIC"


def _as_text(data: Any) -> Optional[str]:
    if data is None or isinstance(data, str):
        return data
    return canonical_json(data)


class DuplicatePreventionService:
    """Hash-based detection and logging of duplicate data submissions."""

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

    def generate_data_hash(self, data: Any) -> str:
        """
        SHA-256 of the canonical JSON form of ``data``.

        If the object cannot be serialized a random value is returned, which
        never matches an earlier submission.
        """
        try:
            return content_hash(data)
        except Exception as e:
            logger.error(f"Error generating data hash: {e}")
            return uuid.uuid4().hex

    @fail_open(default=False, message="Error checking duplicate data")
    def is_duplicate_data(self, entity: Any, entity_type: str, unique_key: str) -> bool:
        data_hash = self.generate_data_hash(entity)
        since = self.clock.now() - timedelta(hours=self.settings.DUPLICATE_LOOKBACK_HOURS)

        match = self.db.query(DuplicateDetectionLog.id).filter(
            DuplicateDetectionLog.data_hash == data_hash,
            DuplicateDetectionLog.entity_type == entity_type,
            DuplicateDetectionLog.detected_at >= since,
        ).first()
        if match is not None:
            logger.info(f"Duplicate {entity_type} data for key {unique_key} (hash {data_hash})")
        return match is not None

    @fail_open(default=None, message="Error logging duplicate attempt")
    def log_duplicate_attempt(
        self,
        entity_type: str,
        entity_id: str,
        original_data: Any,
        duplicate_data: Any,
        user_id: Optional[str],
        ip_address: Optional[str],
        action: str,
        was_blocked: bool = True,
    ) -> Optional[DuplicateDetectionLog]:
        entry = DuplicateDetectionLog(
            entity_type=entity_type,
            entity_id=str(entity_id)[:50],
            data_hash=self.generate_data_hash(duplicate_data),
            detected_at=self.clock.now(),
            user_id=user_id,
            action=action,
            original_data=_as_text(original_data),
            duplicate_data=_as_text(duplicate_data),
            ip_address=ip_address,
            detection_method=DETECTION_METHOD,
            was_blocked=was_blocked,
            notes=f"Duplicate {entity_type} attempt detected",
        )
        self.db.add(entry)
        self.db.commit()

        logger.warning(
            f"DUPLICATE ATTEMPT: {entity_type} {entity_id} by user {user_id} "
            f"from IP {ip_address} - {action} (blocked={was_blocked})"
        )
        return entry

    @fail_open(default=False, message="Error checking recent duplicate attempts")
    def has_recent_duplicate_attempts(
        self,
        user_id: Optional[str],
        ip_address: Optional[str],
        time_window: timedelta,
    ) -> bool:
        """Blocked attempts by the user OR the IP within ``time_window``."""
        return self.count_blocked_attempts(user_id, ip_address, time_window) >= self.settings.DUPLICATE_ATTEMPT_THRESHOLD

    def count_blocked_attempts(
        self,
        user_id: Optional[str],
        ip_address: Optional[str],
        time_window: timedelta,
    ) -> int:
        actor = []
        if user_id:
            actor.append(DuplicateDetectionLog.user_id == user_id)
        if ip_address:
            actor.append(DuplicateDetectionLog.ip_address == ip_address)
        if not actor:
            return 0

        cutoff = self.clock.now() - time_window
        return self.db.query(func.count(DuplicateDetectionLog.id)).filter(
            or_(*actor),
            DuplicateDetectionLog.detected_at >= cutoff,
            DuplicateDetectionLog.was_blocked.is_(True),
        ).scalar() or 0
