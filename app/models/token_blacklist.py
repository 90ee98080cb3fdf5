"""Token revocation tables used by the database-backed revocation store."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Index, Integer

from app.core.database import Base


class RevokedToken(Base):
    """Stores revoked JWT IDs."""

    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)  # JWT ID
    user_id = Column(String(36), nullable=True, index=True)
    revoked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # NULL = keep forever

    # Index for cleanup of expired tokens
    __table_args__ = (
        Index("ix_revoked_tokens_expires_at", "expires_at"),
    )


class IssuedToken(Base):
    """Per-user index of issued JWT IDs, consumed by bulk revocation."""

    __tablename__ = "issued_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False)
    jti = Column(String(64), nullable=False, unique=True)
    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_issued_tokens_user_id", "user_id"),
        Index("ix_issued_tokens_expires_at", "expires_at"),
    )
