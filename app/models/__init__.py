from app.models.user import User, UserRole, UserToken
from app.models.token_blacklist import RevokedToken, IssuedToken
from app.models.request_log import RequestLog
from app.models.duplicate_detection_log import DuplicateDetectionLog
from app.models.audit_log import AuditLog
from app.models.department import Department

__all__ = [
    "User",
    "UserRole",
    "UserToken",
    "RevokedToken",
    "IssuedToken",
    "RequestLog",
    "DuplicateDetectionLog",
    "AuditLog",
    "Department",
]
