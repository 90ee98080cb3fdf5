import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.results import OperationResult
from app.core.security import get_password_hash, verify_password
from app.models import User, UserRole, UserToken

logger = logging.getLogger(__name__)

AVAILABLE_ROLES = ("Administrator", "Director", "TeamLeader", "Employee")

MIN_PASSWORD_LENGTH = 6


def password_strength_errors(password: str) -> list[str]:
    """Return the password policy violations (empty when the password is acceptable)."""
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not any(c.isupper() for c in password):
        errors.append("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in password):
        errors.append("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in password):
        errors.append("Password must contain at least one number")
    return errors


class UserDirectory:
    """
    User lookup, credentials, roles and per-user named tokens.

    Mutations commit immediately and report failures as an OperationResult
    instead of raising.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == str(user_id)).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def get_by_employee_code(self, employee_code: str) -> Optional[User]:
        return self.db.query(User).filter(User.employee_code == employee_code).first()

    def get_roles(self, user: User) -> list[str]:
        rows = self.db.query(UserRole.role).filter(UserRole.user_id == user.id).all()
        return sorted(r.role for r in rows)

    def check_password(self, user: User, password: str) -> bool:
        if not user.password_hash:
            return False
        return verify_password(password, user.password_hash)

    # Lockout

    def is_locked_out(self, user: User) -> bool:
        return user.lockout_end is not None and self.clock.now() < user.lockout_end

    def access_failed(self, user: User, max_attempts: int, lockout: timedelta) -> OperationResult:
        """
        Count a failed sign-in. Reaching ``max_attempts`` locks the account for
        ``lockout`` and starts the count again; ``max_attempts <= 0`` disables lockout.
        """
        if max_attempts <= 0:
            return OperationResult.success()
        user.access_failed_count = (user.access_failed_count or 0) + 1
        if user.access_failed_count >= max_attempts:
            user.lockout_end = self.clock.now() + lockout
            user.access_failed_count = 0
            logger.warning(f"User {user.id} locked out until {user.lockout_end.isoformat()}")
        return self._commit(f"record failed sign-in for user {user.id}")

    def reset_access_failed_count(self, user: User) -> OperationResult:
        if not user.access_failed_count:
            return OperationResult.success()
        user.access_failed_count = 0
        return self._commit(f"reset failed sign-ins for user {user.id}")

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        employee_code: Optional[str] = None,
    ) -> tuple[OperationResult, Optional[User]]:
        errors = password_strength_errors(password)
        if errors:
            return OperationResult.failed(*errors), None

        email = email.strip().lower()
        user = User(
            email=email,
            user_name=email,
            password_hash=get_password_hash(password),
            full_name=full_name,
            employee_code=employee_code or None,
            is_active=True,
            created_at=self.clock.now(),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create user {email}: {e}")
            return OperationResult.failed("Could not create user"), None
        self.db.refresh(user)
        return OperationResult.success(), user

    def add_to_role(self, user: User, role: str) -> OperationResult:
        if role not in AVAILABLE_ROLES:
            return OperationResult.failed(f"Role '{role}' does not exist")
        exists = self.db.query(UserRole).filter(
            UserRole.user_id == user.id,
            UserRole.role == role,
        ).first()
        if exists:
            return OperationResult.failed(f"User already in role '{role}'")
        self.db.add(UserRole(user_id=user.id, role=role))
        return self._commit(f"add role {role} to user {user.id}")

    def change_password(self, user: User, current_password: str, new_password: str) -> OperationResult:
        if not self.check_password(user, current_password):
            return OperationResult.failed("Incorrect password")
        errors = password_strength_errors(new_password)
        if errors:
            return OperationResult.failed(*errors)
        user.password_hash = get_password_hash(new_password)
        user.updated_at = self.clock.now()
        return self._commit(f"change password for user {user.id}")

    # Named authentication tokens

    def get_authentication_token(self, user: User, login_provider: str, name: str) -> Optional[str]:
        row = self.db.get(UserToken, (user.id, login_provider, name))
        return row.value if row else None

    def set_authentication_token(
        self, user: User, login_provider: str, name: str, value: str
    ) -> OperationResult:
        row = self.db.get(UserToken, (user.id, login_provider, name))
        if row is None:
            row = UserToken(user_id=user.id, login_provider=login_provider, name=name)
            self.db.add(row)
        row.value = value
        row.updated_at = self.clock.now()
        return self._commit(f"store token {login_provider}/{name} for user {user.id}")

    def remove_authentication_token(self, user: User, login_provider: str, name: str) -> OperationResult:
        row = self.db.get(UserToken, (user.id, login_provider, name))
        if row is None:
            return OperationResult.success()
        self.db.delete(row)
        return self._commit(f"remove token {login_provider}/{name} for user {user.id}")

    def _commit(self, what: str) -> OperationResult:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {what}: {e}")
            return OperationResult.failed(str(e))
        return OperationResult.success()
