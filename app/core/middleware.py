"""Security middleware for the SSS Workforce API."""

import json
import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.clock import get_clock
from app.core.config import settings
from app.core.database import get_db
from app.core.token_store import get_token_store
from app.services.anti_spam_service import AntiSpamService
from app.services.token_service import TokenService
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "frame-ancestors 'none'; "
            "base-uri 'self'; "
            "form-action 'self'"
        )

        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Cache control for API responses
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
            response.headers["Pragma"] = "no-cache"

        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """Reject oversized bodies and unexpected content types."""

    # Maximum request body size (10MB)
    MAX_BODY_SIZE = 10 * 1024 * 1024

    ALLOWED_CONTENT_TYPES = (
        "application/json",
        "application/x-www-form-urlencoded",
        "multipart/form-data",
    )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > self.MAX_BODY_SIZE
            except ValueError:
                return _json_response(400, {"detail": "Invalid Content-Length header"})
            if too_large:
                return _json_response(413, {"detail": "Request body too large"})

        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if content_type and not any(t in content_type for t in self.ALLOWED_CONTENT_TYPES):
                return _json_response(415, {"detail": "Unsupported content type"})

        return await call_next(request)


class SpamPreventionMiddleware(BaseHTTPMiddleware):
    """
    Ledger-based spam gate.

    Each request is checked against the request ledger before it reaches a
    handler and appended to the ledger afterwards. Ledger work is blocking
    ORM code, so it runs in the threadpool on a session of its own; a
    failing write never changes the response.

    A request is attributed to a user only when its bearer token passes full
    validation. Anything else is anonymous and counted by IP alone.
    """

    MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")
    SKIPPED_PATHS = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico")
    RETRY_AFTER_SECONDS = 300

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not settings.SPAM_PREVENTION_ENABLED or self._should_skip(request):
            return await call_next(request)

        started = time.perf_counter()
        ip_address = get_client_ip(request)
        endpoint = request.url.path
        user_agent = request.headers.get("user-agent")
        body_sample = await self._read_body_sample(request)
        user_id = await run_in_threadpool(self._verified_user_id, request)
        request_data = {
            "method": request.method,
            "path": endpoint,
            "query": str(request.query_params),
            "body": body_sample,
            "user": user_id,
        }

        is_spam = await run_in_threadpool(
            self._run, request, "is_spam_request", ip_address, user_id, endpoint, request_data,
            request.method in self.MUTATING_METHODS,
        )
        if is_spam:
            logger.warning(f"Blocked spam request from {ip_address} to {request.method} {endpoint}")
            await run_in_threadpool(
                self._run, request, "log_request", ip_address, user_id, endpoint, request.method,
                request_data, 429, _elapsed_ms(started), user_agent,
            )
            return _json_response(
                429,
                {
                    "detail": "Too many requests detected. Please slow down.",
                    "error_code": "SPAM_DETECTED",
                    "retry_after": self.RETRY_AFTER_SECONDS,
                },
                headers={
                    "X-Spam-Detected": "true",
                    "X-Rate-Limit-Exceeded": "true",
                    "Retry-After": str(self.RETRY_AFTER_SECONDS),
                },
            )

        response = await call_next(request)

        await run_in_threadpool(
            self._run, request, "log_request", ip_address, user_id, endpoint, request.method,
            request_data, response.status_code, _elapsed_ms(started), user_agent,
        )
        return response

    def _should_skip(self, request: Request) -> bool:
        if request.method == "OPTIONS":
            return True
        path = request.url.path
        return any(path == p or path.startswith(p + "/") for p in self.SKIPPED_PATHS)

    async def _read_body_sample(self, request: Request) -> str:
        if request.method not in ("POST", "PUT", "PATCH"):
            return ""
        # Starlette caches the body, so the handler can still read it
        body = await request.body()
        return body[: settings.SPAM_BODY_SAMPLE_BYTES].decode("utf-8", errors="replace")

    def _verified_user_id(self, request: Request) -> Optional[str]:
        """``sub`` of a valid, unrevoked bearer token, else None."""
        token = _bearer_token(request)
        if not token:
            return None

        overrides = request.app.dependency_overrides
        clock = overrides.get(get_clock, get_clock)()
        store = overrides.get(get_token_store, get_token_store)()
        sessions = overrides.get(get_db, get_db)()
        try:
            db = next(sessions)
            result = TokenService(UserDirectory(db, clock), store, clock, settings).decode_access_token(token)
        except Exception:
            logger.exception(f"Token check failed for {request.url.path}; treating request as anonymous")
            return None
        finally:
            sessions.close()
        return result.value["sub"] if result.ok else None

    def _run(self, request: Request, method: str, *args):
        """Call an AntiSpamService method on a session of its own."""
        overrides = request.app.dependency_overrides
        clock = overrides.get(get_clock, get_clock)()
        sessions = overrides.get(get_db, get_db)()
        try:
            db = next(sessions)
            return getattr(AntiSpamService(db, clock, settings), method)(*args)
        except Exception:
            logger.exception(f"Spam prevention {method} failed for {request.url.path}; failing open")
            return None
        finally:
            sessions.close()


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    if not authorization.lower().startswith("bearer "):
        return None
    return authorization[7:].strip() or None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _json_response(status_code: int, content: dict, headers: Optional[dict] = None) -> Response:
    return Response(
        content=json.dumps(content),
        status_code=status_code,
        media_type="application/json",
        headers=headers,
    )
