"""Explicit success/failure values returned by the service layer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DUPLICATE = "duplicate"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INFRASTRUCTURE = "infrastructure"


@dataclass
class Result(Generic[T]):
    """
    Outcome of a service call.

    Expected rejections (bad credentials, duplicates, validation) come back as
    a failed Result with an ErrorKind so callers can tell them apart from
    infrastructure failures.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None, message: str = "") -> "Result[T]":
        return cls(value=value, message=message)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        errors: Optional[list[str]] = None,
    ) -> "Result[T]":
        return cls(error=kind, message=message, errors=list(errors or []))


@dataclass
class OperationResult:
    """Success flag plus error descriptions, as returned by the user directory."""

    succeeded: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> "OperationResult":
        return cls(succeeded=False, errors=list(errors))
