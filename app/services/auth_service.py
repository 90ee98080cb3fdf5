import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.results import ErrorKind, Result
from app.core.token_store import TokenRevocationStore
from app.models import User
from app.services.token_service import TokenService
from app.services.user_directory import AVAILABLE_ROLES, UserDirectory

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
ACCOUNT_LOCKED = "Account is locked"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


@dataclass
class AuthSession:
    """A signed-in user with a freshly issued token pair."""

    user: User
    roles: list[str]
    token: str
    expires_at: datetime
    refresh_token: str
    message: str = ""


@dataclass
class UserProfile:
    user: User
    roles: list[str] = field(default_factory=list)


class AuthService:
    """
    Registration, login, token refresh, logout and password changes.

    Expected rejections come back as a failed Result; nothing here raises for
    bad input or bad credentials.
    """

    def __init__(
        self,
        db: Session,
        store: TokenRevocationStore,
        clock: Clock = system_clock,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.store = store
        self.clock = clock
        self.settings = settings
        self.directory = UserDirectory(db, clock)
        self.tokens = TokenService(self.directory, store, clock, settings)

    @staticmethod
    def available_roles() -> list[str]:
        return list(AVAILABLE_ROLES)

    def _start_session(self, user: User, message: str) -> Result[AuthSession]:
        roles = self.directory.get_roles(user)
        access = self.tokens.create_access_token(user, roles)
        refresh_token = self.tokens.issue_refresh_token()
        if not self.tokens.set_refresh_token(user, refresh_token):
            return Result.failure(ErrorKind.INFRASTRUCTURE, "Could not store refresh token")
        return Result.success(
            AuthSession(
                user=user,
                roles=roles,
                token=access.token,
                expires_at=access.expires_at,
                refresh_token=refresh_token,
                message=message,
            ),
            message,
        )

    def register(
        self,
        email: str,
        password: str,
        full_name: str,
        role: str,
        employee_code: Optional[str] = None,
    ) -> Result[AuthSession]:
        """Create a user in exactly one role and sign them in."""
        if role not in AVAILABLE_ROLES:
            return Result.failure(
                ErrorKind.VALIDATION,
                "Invalid role",
                [f"Role must be one of: {', '.join(AVAILABLE_ROLES)}"],
            )

        if self.directory.get_by_email(email):
            return Result.failure(
                ErrorKind.CONFLICT, "Email already in use", ["This email is already registered"]
            )

        if employee_code and self.directory.get_by_employee_code(employee_code):
            return Result.failure(
                ErrorKind.CONFLICT, "Employee code already in use", ["This employee code already exists"]
            )

        created, user = self.directory.create_user(email, password, full_name, employee_code)
        if not created.succeeded:
            return Result.failure(ErrorKind.VALIDATION, "Registration failed", created.errors)

        added = self.directory.add_to_role(user, role)
        if not added.succeeded:
            logger.error(f"Failed to add role {role} to new user {user.id}: {', '.join(added.errors)}")
            return Result.failure(ErrorKind.INFRASTRUCTURE, "Registration failed", added.errors)

        logger.info(f"Registered user {user.email} with role {role}")
        return self._start_session(user, "Registration successful")

    def login(self, email: str, password: str) -> Result[AuthSession]:
        user = self.directory.get_by_email(email)
        if user is None or not user.is_active:
            return Result.failure(ErrorKind.UNAUTHENTICATED, INVALID_CREDENTIALS)
        if self.directory.is_locked_out(user):
            logger.warning(f"Rejected login for locked account {user.email}")
            return Result.failure(ErrorKind.UNAUTHENTICATED, ACCOUNT_LOCKED)

        if not self.directory.check_password(user, password):
            logger.info(f"Failed login for {user.email}")
            self.directory.access_failed(
                user,
                self.settings.LOCKOUT_MAX_FAILED_ATTEMPTS,
                timedelta(minutes=self.settings.LOCKOUT_MINUTES),
            )
            # The attempt that reaches the limit is already answered as locked
            if self.directory.is_locked_out(user):
                return Result.failure(ErrorKind.UNAUTHENTICATED, ACCOUNT_LOCKED)
            return Result.failure(ErrorKind.UNAUTHENTICATED, INVALID_CREDENTIALS)

        self.directory.reset_access_failed_count(user)
        return self._start_session(user, "Login successful")

    def refresh(self, email: str, refresh_token: str) -> Result[AuthSession]:
        """
        Exchange a refresh token for a new token pair.

        The stored refresh token is overwritten, so the presented one stops
        working once this succeeds.
        """
        user = self.directory.get_by_email(email)
        if user is None or not user.is_active:
            return Result.failure(ErrorKind.UNAUTHENTICATED, INVALID_REFRESH_TOKEN)
        if not self.tokens.validate_refresh_token(user, refresh_token):
            logger.warning(f"Rejected refresh token for user {user.id}")
            return Result.failure(ErrorKind.UNAUTHENTICATED, INVALID_REFRESH_TOKEN)
        return self._start_session(user, "Token refreshed successfully")

    def logout(self, user: User, claims: dict) -> Result[None]:
        """Revoke the presented access token and forget the refresh token."""
        self.tokens.revoke_token(claims)
        if not self.tokens.remove_refresh_token(user):
            logger.warning(f"Failed to remove refresh token for user {user.id} during logout")
        return Result.success(message="Logout successful")

    def current_user(self, user_id: str) -> Result[UserProfile]:
        user = self.directory.get_by_id(user_id)
        if user is None or not user.is_active:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found or deactivated")
        return Result.success(UserProfile(user, self.directory.get_roles(user)))

    def change_password(self, user: User, current_password: str, new_password: str) -> Result[None]:
        """Change the password, then invalidate every session of the user."""
        changed = self.directory.change_password(user, current_password, new_password)
        if not changed.succeeded:
            return Result.failure(ErrorKind.VALIDATION, "Password change failed", changed.errors)

        revoked = self.store.revoke_all_for_user(user.id)
        self.tokens.revoke_all(user)
        logger.info(f"Password changed for user {user.id}; revoked {revoked} token(s)")
        return Result.success(message="Password changed successfully. Please login again.")
