import base64
import calendar
import hmac
import secrets
from datetime import datetime
from typing import Optional

from jose import jwt
from passlib.context import CryptContext

from app.core.config import Settings, settings as default_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Role claim names; roles are written under both for client compatibility
ROLE_CLAIM = "role"
MS_ROLE_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"

REFRESH_TOKEN_BYTES = 32


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def to_timestamp(value: datetime) -> int:
    """Naive-UTC datetime to a POSIX timestamp."""
    return calendar.timegm(value.utctimetuple())


def create_access_token(
    claims: dict,
    issued_at: datetime,
    expires_at: datetime,
    settings: Settings = default_settings,
) -> str:
    """Sign a claim set with the key, issuer and audience of ``settings``."""
    to_encode = claims.copy()
    to_encode.update({
        "iat": to_timestamp(issued_at),
        "nbf": to_timestamp(issued_at),
        "exp": to_timestamp(expires_at),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, settings: Settings = default_settings) -> dict:
    """
    Verify signature, issuer and audience and return the claims.

    Expiry is not checked here; callers compare ``exp`` against their clock.
    Raises JWTError when the token is malformed or the signature is wrong.
    """
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
        options={"verify_exp": False, "verify_nbf": False},
    )


def generate_refresh_token() -> str:
    """32 random bytes, base64-encoded."""
    return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


def tokens_match(expected: Optional[str], candidate: Optional[str]) -> bool:
    """Constant-time exact comparison; absent values never match."""
    if not expected or not candidate:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
