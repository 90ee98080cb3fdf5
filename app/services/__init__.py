from app.services.user_directory import UserDirectory
from app.services.token_service import TokenService
from app.services.anti_spam_service import AntiSpamService
from app.services.duplicate_prevention_service import DuplicatePreventionService
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService
from app.services.department_service import DepartmentService

__all__ = [
    "UserDirectory",
    "TokenService",
    "AntiSpamService",
    "DuplicatePreventionService",
    "AuditService",
    "AuthService",
    "DepartmentService",
]
