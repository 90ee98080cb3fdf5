from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import (
    get_actor,
    get_client_ip,
    get_clock,
    get_current_claims,
    get_current_user,
)
from app.core.clock import Clock
from app.core.database import get_db
from app.core.exceptions import InvalidTokenError, ValidationError, raise_for_result
from app.core.results import ErrorKind
from app.core.rate_limit import limiter, public_limiter
from app.core.sanitization import (
    MAX_LENGTHS,
    sanitize_code,
    sanitize_email,
    sanitize_name,
    validate_code,
    validate_email,
)
from app.core.token_store import TokenRevocationStore, get_token_store
from app.models import User
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RolesResponse,
    UserInfo,
)
from app.services.audit_service import Actor, AuditService
from app.services.auth_service import AuthService, AuthSession


router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_auth_service(
    db: Session = Depends(get_db),
    store: TokenRevocationStore = Depends(get_token_store),
    clock: Clock = Depends(get_clock),
) -> AuthService:
    return AuthService(db, store, clock)


def _user_info(user: User, roles: list[str]) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        employee_code=user.employee_code,
        roles=roles,
        is_active=user.is_active,
        created_at=user.created_at,
    )


def _auth_response(session: AuthSession) -> AuthResponse:
    return AuthResponse(
        message=session.message,
        token=session.token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user=_user_info(session.user, session.roles),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@public_limiter.limit("5/minute")  # Strict rate limit for registration
def register(
    request: Request,
    data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new user in one role.
    Returns JWT token, refresh token and user info.
    """
    email = sanitize_email(data.email)
    if not validate_email(email):
        raise ValidationError("Invalid email format")

    employee_code = None
    if data.employee_code:
        employee_code = sanitize_code(data.employee_code, MAX_LENGTHS["employee_code"])
        if not validate_code(employee_code):
            raise ValidationError("Invalid employee code format")

    result = service.register(
        email=email,
        password=data.password,
        full_name=sanitize_name(data.full_name),
        role=data.role,
        employee_code=employee_code,
    )
    raise_for_result(result, "User")

    session = result.value
    AuditService(service.db, service.clock).record(
        Actor(session.user.id, session.user.user_name, get_client_ip(request), request.headers.get("user-agent")),
        "Users",
        session.user.id,
        "CREATE",
        new_values={"email": session.user.email, "roles": session.roles},
    )
    return _auth_response(session)


@router.post("/login", response_model=AuthResponse)
@public_limiter.limit("10/minute")  # Strict rate limit for login
def login(
    request: Request,
    data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate user and return JWT token.
    """
    result = service.login(sanitize_email(data.email), data.password)
    raise_for_result(result)
    return _auth_response(result.value)


@router.post("/refresh", response_model=AuthResponse)
@public_limiter.limit("30/minute")
def refresh_access_token(
    request: Request,
    data: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new access/refresh pair.
    The presented refresh token stops working afterwards.
    """
    result = service.refresh(sanitize_email(data.email), data.refresh_token.strip())
    if not result.ok and result.error == ErrorKind.UNAUTHENTICATED:
        raise InvalidTokenError(result.message)
    raise_for_result(result)
    return _auth_response(result.value)


@router.post("/logout", response_model=MessageResponse)
def logout(
    current_user: User = Depends(get_current_user),
    claims: dict = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
):
    """
    Revoke the presented access token and the stored refresh token.
    """
    result = service.logout(current_user, claims)
    raise_for_result(result)
    return MessageResponse(message=result.message)


@router.get("/me", response_model=UserInfo)
def get_current_user_info(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    Get current authenticated user's info including roles.
    """
    result = service.current_user(current_user.id)
    raise_for_result(result, "User")
    profile = result.value
    return _user_info(profile.user, profile.roles)


@router.post("/change-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def change_password(
    request: Request,
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    actor: Actor = Depends(get_actor),
    service: AuthService = Depends(get_auth_service),
):
    """
    Change the current user's password.
    Every session of the user is revoked; the client must log in again.
    """
    result = service.change_password(current_user, data.current_password, data.new_password)
    raise_for_result(result)

    AuditService(service.db, service.clock).record(
        actor, "Users", current_user.id, "UPDATE", reason="Password changed"
    )
    return MessageResponse(message=result.message)


@router.get("/roles", response_model=RolesResponse)
def get_roles():
    """List the roles a user can be registered with."""
    return RolesResponse(roles=AuthService.available_roles())
