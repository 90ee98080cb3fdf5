"""Custom exceptions and error handling for the SSS Workforce API."""

from typing import NoReturn

from fastapi import HTTPException, status

from app.core.results import ErrorKind, Result


class WorkforceException(HTTPException):
    """Base exception for the SSS Workforce API."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str | None = None,
        errors: list[str] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.errors = errors or []


# Authentication Errors (401, 403)
class InvalidCredentialsError(WorkforceException):
    """Raised when login credentials are invalid."""

    def __init__(self, detail: str = "Invalid email or password", errors: list[str] | None = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_CREDENTIALS",
            errors=errors,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenError(WorkforceException):
    """Raised when a bearer or refresh token is malformed, expired or unknown."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_TOKEN",
            headers={"WWW-Authenticate": "Bearer"},
        )


class TokenRevokedError(WorkforceException):
    """Raised when a token's JTI has been revoked."""

    def __init__(self, detail: str = "Token has been revoked"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="TOKEN_REVOKED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(WorkforceException):
    """Raised when user lacks permission for an action."""

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
        )


# Resource Errors (404, 409)
class NotFoundError(WorkforceException):
    """Raised when a resource is not found."""

    def __init__(self, resource: str = "Resource", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} not found",
            error_code="NOT_FOUND",
        )


class AlreadyExistsError(WorkforceException):
    """Raised when trying to create a resource that already exists."""

    def __init__(self, resource: str = "Resource", detail: str | None = None, errors: list[str] | None = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or f"{resource} already exists",
            error_code="ALREADY_EXISTS",
            errors=errors,
        )


class DuplicateSubmissionError(WorkforceException):
    """Raised when the same data was submitted again within the lookback window."""

    def __init__(self, detail: str = "Duplicate submission detected"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="DUPLICATE_SUBMISSION",
        )


# Validation Errors (400)
class ValidationError(WorkforceException):
    """Raised when input validation fails."""

    def __init__(self, detail: str = "Invalid input", errors: list[str] | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VALIDATION_ERROR",
            errors=errors,
        )


# Rate Limiting (429)
class RateLimitExceededError(WorkforceException):
    """Raised when rate limit is exceeded."""

    def __init__(self, detail: str = "Rate limit exceeded. Please try again later.", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="RATE_LIMIT_EXCEEDED",
            headers={"Retry-After": str(retry_after)},
        )


# Server Errors (500, 503)
class InternalServerError(WorkforceException):
    """Raised for unexpected server errors."""

    def __init__(self, detail: str = "An unexpected error occurred"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="INTERNAL_ERROR",
        )


def raise_for_result(result: Result, resource: str = "Resource") -> None:
    """Translate a failed service Result into the matching HTTP exception."""
    if result.ok:
        return
    _raise(result, resource)


def _raise(result: Result, resource: str) -> NoReturn:
    kind = result.error
    if kind == ErrorKind.VALIDATION:
        raise ValidationError(result.message, result.errors)
    if kind == ErrorKind.NOT_FOUND:
        raise NotFoundError(resource, result.message or None)
    if kind == ErrorKind.CONFLICT:
        raise AlreadyExistsError(resource, result.message or None, result.errors)
    if kind == ErrorKind.DUPLICATE:
        raise DuplicateSubmissionError(result.message or "Duplicate submission detected")
    if kind == ErrorKind.UNAUTHENTICATED:
        raise InvalidCredentialsError(result.message, result.errors)
    if kind == ErrorKind.FORBIDDEN:
        raise ForbiddenError(result.message)
    raise InternalServerError(result.message or "An unexpected error occurred")
