"""
Failure policy for the abuse-detection services.

Spam, rate-limit, duplicate and suspicion checks never block traffic because
of their own internal failures: an exception is logged and the check reports
"no violation". Logging operations report nothing on failure.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def fail_open(default: Any = False, message: str = "Security check failed") -> Callable[[F], F]:
    """
    Decorate a service method so any exception returns ``default``.

    The service's own logger is used when the instance exposes ``logger``;
    otherwise the decorated function's module logger.
    """

    def decorator(func: F) -> F:
        fallback_logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception:
                owner = args[0] if args else None
                log = getattr(owner, "logger", None) or fallback_logger
                log.exception(f"{message} in {func.__qualname__}; failing open")
                rollback = getattr(getattr(owner, "db", None), "rollback", None)
                if rollback is not None:
                    try:
                        rollback()
                    except Exception:
                        log.exception("Rollback after failed security check also failed")
                return default

        wrapper.fail_open_default = default
        return wrapper  # type: ignore[return-value]

    return decorator
