import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.results import ErrorKind, Result
from app.core.security import (
    MS_ROLE_CLAIM,
    ROLE_CLAIM,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    to_timestamp,
    tokens_match,
)
from app.core.token_store import TokenRevocationStore
from app.models import User
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

# Provider-scoped slots in the user token store
TOKEN_PROVIDER = "JwtBearer"
ACCESS_TOKEN_NAME = "AccessToken"
REFRESH_TOKEN_NAME = "RefreshToken"


@dataclass
class AccessToken:
    token: str
    jti: str
    expires_at: datetime


class TokenService:
    """
    Issues and validates JWT access tokens and opaque refresh tokens.

    Access tokens are self-contained; a copy of the latest one is kept in the
    user token store for single-session checks. Refresh tokens are random and
    only valid while they match the single stored value.
    """

    def __init__(
        self,
        directory: UserDirectory,
        store: TokenRevocationStore,
        clock: Clock = system_clock,
        settings: Settings = default_settings,
    ):
        self.directory = directory
        self.store = store
        self.clock = clock
        self.settings = settings

    # Access tokens

    def build_claims(self, user: User, roles: list[str], jti: str) -> dict:
        claims = {
            "sub": user.id,
            "jti": jti,
            "email": user.email or "",
            "unique_name": user.user_name or "",
            "FullName": user.full_name or "",
            "EmployeeCode": user.employee_code or "",
            "UserId": user.id,
        }
        role_list = list(roles)
        claims[ROLE_CLAIM] = role_list
        claims[MS_ROLE_CLAIM] = role_list
        return claims

    def create_access_token(self, user: User, roles: list[str]) -> AccessToken:
        now = self.clock.now()
        expires_at = now + timedelta(hours=self.settings.ACCESS_TOKEN_EXPIRE_HOURS)
        jti = str(uuid.uuid4())

        token = create_access_token(self.build_claims(user, roles, jti), now, expires_at, self.settings)
        issued = AccessToken(token=token, jti=jti, expires_at=expires_at)

        self._persist_access_token(user, issued)
        self._track(user, issued)
        return issued

    def issue(self, user: User, roles: list[str]) -> str:
        """Sign a bearer token for ``user``. Persistence failures do not fail issuance."""
        return self.create_access_token(user, roles).token

    def _persist_access_token(self, user: User, issued: AccessToken) -> None:
        payload = json.dumps({"token": issued.token, "expires_at": issued.expires_at.isoformat()})
        try:
            result = self.directory.set_authentication_token(
                user, TOKEN_PROVIDER, ACCESS_TOKEN_NAME, payload
            )
        except Exception as e:
            logger.warning(f"Failed to persist access token for user {user.id}: {e}")
            return
        if not result.succeeded:
            logger.warning(
                f"Failed to persist access token for user {user.id}: {', '.join(result.errors)}"
            )

    def _track(self, user: User, issued: AccessToken) -> None:
        try:
            self.store.track(user.id, issued.jti, issued.expires_at)
        except Exception as e:
            logger.warning(f"Failed to track token {issued.jti} for user {user.id}: {e}")

    def decode_access_token(self, token: str) -> Result[dict]:
        """
        Full validation of a presented bearer token.

        Signature, issuer and audience, then expiry against the injected
        clock, then the JTI against the revocation store.
        """
        try:
            claims = decode_access_token(token, self.settings)
        except JWTError as e:
            logger.debug(f"Rejected malformed token: {e}")
            return Result.failure(ErrorKind.UNAUTHENTICATED, "invalid")

        exp = claims.get("exp")
        if exp is None or self._timestamp_now() >= int(exp):
            return Result.failure(ErrorKind.UNAUTHENTICATED, "expired")

        jti = claims.get("jti")
        if not jti or not claims.get("sub"):
            return Result.failure(ErrorKind.UNAUTHENTICATED, "invalid")

        if self.store.is_revoked(jti):
            return Result.failure(ErrorKind.UNAUTHENTICATED, "revoked")

        return Result.success(claims)

    def revoke_token(self, claims: dict) -> None:
        """Revoke the JTI carried by an already-validated claim set."""
        jti = claims.get("jti")
        if not jti:
            return
        exp = claims.get("exp")
        expires_at = datetime.fromtimestamp(int(exp), timezone.utc).replace(tzinfo=None) if exp is not None else None
        self.store.revoke(jti, expires_at)
        logger.info(f"Revoked token {jti} for user {claims.get('sub')}")

    def get_stored_access_token(self, user: User) -> Optional[tuple[str, datetime]]:
        """Stored ``(token, expiry)``; a malformed payload counts as absent."""
        raw = self.directory.get_authentication_token(user, TOKEN_PROVIDER, ACCESS_TOKEN_NAME)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return data["token"], datetime.fromisoformat(data["expires_at"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed stored access token for user {user.id}: {e}")
            return None

    def is_access_token_valid(self, user: User) -> bool:
        stored = self.get_stored_access_token(user)
        if stored is None:
            return False
        _, expires_at = stored
        return self.clock.now() < expires_at

    def is_current_access_token(self, user: User, token: str) -> bool:
        """Whether ``token`` is the user's latest stored, unexpired token."""
        stored = self.get_stored_access_token(user)
        if stored is None:
            return False
        stored_token, expires_at = stored
        return self.clock.now() < expires_at and tokens_match(stored_token, token)

    # Refresh tokens

    def issue_refresh_token(self) -> str:
        """Opaque refresh token. The caller persists it with set_refresh_token."""
        return generate_refresh_token()

    def set_refresh_token(self, user: User, refresh_token: str) -> bool:
        result = self.directory.set_authentication_token(
            user, TOKEN_PROVIDER, REFRESH_TOKEN_NAME, refresh_token
        )
        if not result.succeeded:
            logger.warning(f"Failed to store refresh token for user {user.id}: {', '.join(result.errors)}")
        return result.succeeded

    def get_refresh_token(self, user: User) -> Optional[str]:
        return self.directory.get_authentication_token(user, TOKEN_PROVIDER, REFRESH_TOKEN_NAME)

    def remove_refresh_token(self, user: User) -> bool:
        return self.directory.remove_authentication_token(
            user, TOKEN_PROVIDER, REFRESH_TOKEN_NAME
        ).succeeded

    def validate_refresh_token(self, user: User, refresh_token: str) -> bool:
        """Exact match against the single stored value. Any error means not valid."""
        try:
            return tokens_match(self.get_refresh_token(user), refresh_token)
        except Exception as e:
            logger.error(f"Error validating refresh token for user {getattr(user, 'id', None)}: {e}")
            return False

    def revoke_all(self, user: User) -> None:
        """Delete the stored access and refresh tokens of ``user``."""
        stored = self.get_stored_access_token(user)
        if stored is not None:
            logger.info(f"Removing stored access token for user {user.id} (expires {stored[1].isoformat()})")
        self.directory.remove_authentication_token(user, TOKEN_PROVIDER, ACCESS_TOKEN_NAME)
        self.directory.remove_authentication_token(user, TOKEN_PROVIDER, REFRESH_TOKEN_NAME)

    def _timestamp_now(self) -> int:
        return to_timestamp(self.clock.now())
