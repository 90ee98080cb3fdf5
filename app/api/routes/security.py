from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_clock, require_admin
from app.core.clock import Clock
from app.core.database import get_db
from app.core.exceptions import InternalServerError
from app.core.sanitization import sanitize_reason
from app.core.token_store import TokenRevocationStore, get_token_store
from app.models import RequestLog, User
from app.schemas.security import (
    AuditLogListResponse,
    AuditLogResponse,
    CleanupResponse,
    RequestLogListResponse,
    RequestLogResponse,
    SuspiciousActivityRequest,
    SuspiciousActivityResponse,
)
from app.services.anti_spam_service import AntiSpamService
from app.services.audit_service import AuditService


router = APIRouter(prefix="/security", tags=["Security"])


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    user_id: Optional[str] = None,
    table_name: Optional[str] = None,
    suspicious_only: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Most recent audit entries first (Administrator only)."""
    logs = AuditService(db, clock).list_logs(user_id, table_name, suspicious_only, limit)
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=len(logs),
    )


@router.get("/request-logs", response_model=RequestLogListResponse)
def list_request_logs(
    ip_address: Optional[str] = None,
    spam_only: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Most recent request ledger entries first (Administrator only)."""
    query = db.query(RequestLog)
    if ip_address:
        query = query.filter(RequestLog.ip_address == ip_address)
    if spam_only:
        query = query.filter(RequestLog.is_spam_detected.is_(True))
    logs = query.order_by(RequestLog.timestamp.desc(), RequestLog.id.desc()).limit(limit).all()
    return RequestLogListResponse(
        logs=[RequestLogResponse.model_validate(entry) for entry in logs],
        total=len(logs),
    )


@router.get("/suspicious", response_model=SuspiciousActivityResponse)
def check_suspicious_activity(
    user_id: str = Query(..., min_length=1),
    ip: str = Query(..., min_length=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Whether a user/IP pair crossed any suspicion threshold in the last hour."""
    return SuspiciousActivityResponse(
        user_id=user_id,
        ip_address=ip,
        is_suspicious=AuditService(db, clock).is_suspicious_activity(user_id, ip),
    )


@router.post("/suspicious", response_model=AuditLogResponse)
def mark_suspicious_activity(
    data: SuspiciousActivityRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Record a manual SUSPICIOUS_ACTIVITY entry in the audit trail."""
    entry = AuditService(db, clock).mark_suspicious_activity(
        data.user_id, data.ip_address, sanitize_reason(data.reason)
    )
    if entry is None:
        raise InternalServerError("Could not record suspicious activity")
    return AuditLogResponse.model_validate(entry)


@router.post("/cleanup", response_model=CleanupResponse)
def run_cleanup(
    retention_days: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    store: TokenRevocationStore = Depends(get_token_store),
):
    """Run request-log retention and revocation purge now instead of waiting for the scheduler."""
    spam = AntiSpamService(db, clock)
    days = retention_days or spam.settings.REQUEST_LOG_RETENTION_DAYS
    deleted = spam.cleanup_old_logs(days)
    purged = store.purge_expired(clock.now())
    return CleanupResponse(
        deleted_request_logs=deleted,
        purged_revocations=purged,
        retention_days=days,
    )
