"""
JWT ID revocation stores.

A JTI, once revoked, is rejected by ``get_current_user`` even if the token's
signature and expiry are still valid. Issuers ``track`` every JTI they mint so
``revoke_all_for_user`` can invalidate every session of a user (password
change).
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings

logger = logging.getLogger(__name__)


class TokenRevocationStore(ABC):
    """Contract shared by the in-memory and database stores."""

    @abstractmethod
    def revoke(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        """Revoke one JTI. Idempotent."""

    @abstractmethod
    def is_revoked(self, jti: str) -> bool:
        ...

    @abstractmethod
    def track(self, user_id: str, jti: str, expires_at: Optional[datetime] = None) -> None:
        """Record that ``jti`` was issued to ``user_id``."""

    @abstractmethod
    def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every tracked JTI of a user and forget the index entry."""

    def purge_expired(self, now: datetime) -> int:
        """Drop entries whose tokens can no longer validate. Returns rows removed."""
        return 0


class InMemoryTokenRevocationStore(TokenRevocationStore):
    """
    Process-local store.

    Revocations live for the lifetime of the process and are lost on restart;
    they are not shared between instances.
    """

    def __init__(self):
        self._revoked: set[str] = set()
        self._user_tokens: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def revoke(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._revoked.add(jti)

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._revoked

    def track(self, user_id: str, jti: str, expires_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._user_tokens.setdefault(user_id, set()).add(jti)

    def revoke_all_for_user(self, user_id: str) -> int:
        with self._lock:
            tokens = self._user_tokens.pop(user_id, None)
            if not tokens:
                return 0
            self._revoked.update(tokens)
            return len(tokens)

    def tracked_for_user(self, user_id: str) -> set[str]:
        with self._lock:
            return set(self._user_tokens.get(user_id, ()))


class DatabaseTokenRevocationStore(TokenRevocationStore):
    """
    Store backed by the ``revoked_tokens`` and ``issued_tokens`` tables.

    Each operation uses its own short-lived session from ``session_factory``
    so revocation state is visible to every application instance.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from app.core.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def revoke(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        from app.models.token_blacklist import RevokedToken, IssuedToken

        db = self._session_factory()
        try:
            if db.get(RevokedToken, jti) is not None:
                return
            issued = db.execute(
                select(IssuedToken).where(IssuedToken.jti == jti)
            ).scalar_one_or_none()
            db.add(RevokedToken(
                jti=jti,
                user_id=issued.user_id if issued else None,
                expires_at=expires_at or (issued.expires_at if issued else None),
            ))
            try:
                db.commit()
            except IntegrityError:
                # Concurrent revoke of the same JTI
                db.rollback()
        finally:
            db.close()

    def is_revoked(self, jti: str) -> bool:
        from app.models.token_blacklist import RevokedToken

        db = self._session_factory()
        try:
            return db.get(RevokedToken, jti) is not None
        finally:
            db.close()

    def track(self, user_id: str, jti: str, expires_at: Optional[datetime] = None) -> None:
        from app.models.token_blacklist import IssuedToken

        db = self._session_factory()
        try:
            db.add(IssuedToken(user_id=user_id, jti=jti, expires_at=expires_at))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
        finally:
            db.close()

    def revoke_all_for_user(self, user_id: str) -> int:
        from app.models.token_blacklist import RevokedToken, IssuedToken

        db = self._session_factory()
        try:
            issued = db.execute(
                select(IssuedToken).where(IssuedToken.user_id == user_id)
            ).scalars().all()
            if not issued:
                return 0

            for row in issued:
                if db.get(RevokedToken, row.jti) is None:
                    db.add(RevokedToken(jti=row.jti, user_id=user_id, expires_at=row.expires_at))
            db.execute(delete(IssuedToken).where(IssuedToken.user_id == user_id))
            db.commit()
            return len(issued)
        finally:
            db.close()

    def purge_expired(self, now: datetime) -> int:
        from app.models.token_blacklist import RevokedToken, IssuedToken

        db = self._session_factory()
        try:
            revoked = db.execute(
                delete(RevokedToken).where(
                    RevokedToken.expires_at.is_not(None),
                    RevokedToken.expires_at < now,
                )
            )
            issued = db.execute(
                delete(IssuedToken).where(
                    IssuedToken.expires_at.is_not(None),
                    IssuedToken.expires_at < now,
                )
            )
            db.commit()
            return int(revoked.rowcount or 0) + int(issued.rowcount or 0)
        finally:
            db.close()


_store: Optional[TokenRevocationStore] = None
_store_lock = threading.Lock()


def build_token_store(backend: Optional[str] = None) -> TokenRevocationStore:
    backend = backend or settings.TOKEN_REVOCATION_BACKEND
    if backend == "database":
        return DatabaseTokenRevocationStore()
    if backend != "memory":
        logger.warning(f"Unknown TOKEN_REVOCATION_BACKEND '{backend}', using in-memory store")
    return InMemoryTokenRevocationStore()


def get_token_store() -> TokenRevocationStore:
    """Process-wide revocation store (FastAPI dependency)."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = build_token_store()
    return _store


def set_token_store(store: Optional[TokenRevocationStore]) -> None:
    """Replace the process-wide store (startup wiring and tests)."""
    global _store
    with _store_lock:
        _store = store
