"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from app.core.config import settings


def get_user_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting.
    Uses the user resolved by ``get_current_user`` (signature already
    verified), otherwise the socket address.
    """
    user = getattr(request.state, "user", None)
    if user is not None and getattr(user, "id", None):
        return f"user:{user.id}"

    return get_remote_address(request)


def get_ip_address(request: Request) -> str:
    """Get IP address for rate limiting public routes."""
    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=["1000/minute"],  # Default for authenticated users
    storage_uri=settings.REDIS_URL or "memory://",
)

# Separate limiter for public and pre-auth routes (stricter)
public_limiter = Limiter(
    key_func=get_ip_address,
    default_limits=["100/minute"],
    storage_uri=settings.REDIS_URL or "memory://",
)
