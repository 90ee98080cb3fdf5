import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.hashing import canonical_json
from app.core.policy import fail_open
from app.models import AuditLog, RequestLog
from app.services.duplicate_prevention_service import DuplicatePreventionService

logger = logging.getLogger(__name__)

RISK_HIGH = "HIGH"
RISK_MEDIUM = "MEDIUM"
RISK_LOW = "LOW"

ANONYMOUS_USER = "ANONYMOUS"
UNKNOWN_IP = "UNKNOWN"


@dataclass
class Actor:
    """Who performed an audited action, and from where."""

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def determine_risk_level(action: str, table_name: str) -> str:
    """Deletes and identity tables are HIGH; edits to people/org data MEDIUM."""
    if action == "DELETE" or "User" in table_name or "Role" in table_name:
        return RISK_HIGH
    if action == "UPDATE" and ("Employee" in table_name or "Department" in table_name):
        return RISK_MEDIUM
    return RISK_LOW


def serialize_snapshot(values: Any) -> Optional[str]:
    if values is None:
        return None
    if isinstance(values, str):
        return values
    try:
        return canonical_json(values)
    except TypeError:
        return json.dumps(values, default=str, sort_keys=True)


class AuditService:
    """Append-only audit trail with a risk level and suspicion flag per entry."""

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
        self.duplicates = DuplicatePreventionService(db, clock, settings)

    @fail_open(default=None, message="Error logging audit action")
    def log_action(
        self,
        table_name: str,
        record_id: str,
        action: str,
        user_id: Optional[str],
        user_name: Optional[str],
        ip_address: Optional[str],
        old_values: Any = None,
        new_values: Any = None,
        reason: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AuditLog]:
        entry = AuditLog(
            table_name=table_name,
            record_id=str(record_id)[:50],
            action=action,
            timestamp=self.clock.now(),
            user_id=user_id,
            user_name=user_name,
            ip_address=ip_address,
            old_values=serialize_snapshot(old_values),
            new_values=serialize_snapshot(new_values),
            changed_fields=self._changed_fields(old_values, new_values),
            reason=reason,
            application_name=self.settings.AUDIT_APPLICATION_NAME,
            user_agent=user_agent,
            risk_level=determine_risk_level(action, table_name),
        )
        entry.is_suspicious_activity = self.is_suspicious_activity(
            user_id or ANONYMOUS_USER, ip_address or UNKNOWN_IP
        )

        self.db.add(entry)
        self.db.commit()

        if entry.is_suspicious_activity:
            logger.warning(
                f"SUSPICIOUS ACTIVITY: {action} on {table_name} {record_id} "
                f"by {user_id or ANONYMOUS_USER} from {ip_address or UNKNOWN_IP}"
            )
        return entry

    def record(
        self,
        actor: Actor,
        table_name: str,
        record_id: Any,
        action: str,
        old_values: Any = None,
        new_values: Any = None,
        reason: Optional[str] = None,
    ) -> Optional[AuditLog]:
        return self.log_action(
            table_name,
            str(record_id),
            action,
            actor.user_id,
            actor.user_name,
            actor.ip_address,
            old_values,
            new_values,
            reason,
            actor.user_agent,
        )

    @fail_open(default=False, message="Error checking suspicious activity")
    def is_suspicious_activity(self, user_id: str, ip_address: str) -> bool:
        window = timedelta(hours=1)
        hour_ago = self.clock.now() - window

        recent_actions = self.db.query(func.count(AuditLog.id)).filter(
            or_(AuditLog.user_id == user_id, AuditLog.ip_address == ip_address),
            AuditLog.timestamp >= hour_ago,
        ).scalar() or 0
        if recent_actions >= self.settings.AUDIT_ACTIONS_PER_HOUR_THRESHOLD:
            return True

        blocked_duplicates = self.duplicates.count_blocked_attempts(user_id, ip_address, window)
        if blocked_duplicates >= self.settings.DUPLICATE_ATTEMPT_THRESHOLD:
            return True

        recent_spam = self.db.query(func.count(RequestLog.id)).filter(
            or_(RequestLog.user_id == user_id, RequestLog.ip_address == ip_address),
            RequestLog.timestamp >= hour_ago,
            RequestLog.is_spam_detected.is_(True),
        ).scalar() or 0
        return recent_spam >= self.settings.SPAM_REQUESTS_PER_HOUR_THRESHOLD

    def mark_suspicious_activity(self, user_id: str, ip_address: str, reason: str) -> Optional[AuditLog]:
        return self.log_action(
            "SECURITY",
            f"{user_id}:{ip_address}",
            "SUSPICIOUS_ACTIVITY",
            user_id,
            None,
            ip_address,
            None,
            {"Reason": reason},
            reason,
        )

    def list_logs(
        self,
        user_id: Optional[str] = None,
        table_name: Optional[str] = None,
        suspicious_only: bool = False,
        limit: int = 100,
    ) -> list[AuditLog]:
        query = self.db.query(AuditLog)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if table_name:
            query = query.filter(AuditLog.table_name == table_name)
        if suspicious_only:
            query = query.filter(AuditLog.is_suspicious_activity.is_(True))
        return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()

    @staticmethod
    def _changed_fields(old_values: Any, new_values: Any) -> Optional[str]:
        if not isinstance(old_values, dict) or not isinstance(new_values, dict):
            return None
        changed = sorted(
            k for k in set(old_values) | set(new_values)
            if old_values.get(k) != new_values.get(k)
        )
        return ",".join(changed) if changed else None
