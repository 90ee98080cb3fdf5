from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ForbiddenError, InvalidTokenError, TokenRevokedError
from app.core.middleware import get_client_ip
from app.core.token_store import TokenRevocationStore, get_token_store
from app.models import User
from app.services.audit_service import Actor
from app.services.token_service import TokenService
from app.services.user_directory import UserDirectory


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_token_service(
    db: Session = Depends(get_db),
    store: TokenRevocationStore = Depends(get_token_store),
    clock: Clock = Depends(get_clock),
) -> TokenService:
    return TokenService(UserDirectory(db, clock), store, clock, settings)


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenService = Depends(get_token_service),
) -> dict:
    """
    Validated claims of the presented bearer token.
    Raises InvalidTokenError / TokenRevokedError when the token is not usable.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidTokenError("Not authenticated")

    result = tokens.decode_access_token(credentials.credentials)
    if not result.ok:
        if result.message == "revoked":
            raise TokenRevokedError()
        if result.message == "expired":
            raise InvalidTokenError("Token has expired")
        raise InvalidTokenError()
    return result.value


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    claims: dict = Depends(get_current_claims),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """
    Dependency to get the current authenticated user from JWT token.
    Raises InvalidTokenError if the user is gone or deactivated.
    """
    user = tokens.directory.get_by_id(claims["sub"])
    if user is None or not user.is_active:
        raise InvalidTokenError()

    if settings.ENFORCE_SINGLE_SESSION and not tokens.is_current_access_token(user, credentials.credentials):
        raise TokenRevokedError("Token has been superseded by a newer session")

    # Keys the per-user rate limiter
    request.state.user = user
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Dependency factory: the current user must hold at least one of ``roles``."""

    def checker(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        held = set(UserDirectory(db).get_roles(current_user))
        if not held.intersection(roles):
            raise ForbiddenError(f"Requires one of roles: {', '.join(roles)}")
        return current_user

    return checker


require_admin = require_roles("Administrator")


def get_actor(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> Actor:
    """Audit identity of the current request."""
    return Actor(
        user_id=current_user.id,
        user_name=current_user.user_name,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
