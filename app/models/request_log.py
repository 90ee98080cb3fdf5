from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, String

from app.core.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
LogId = BigInteger().with_variant(Integer(), "sqlite")


class RequestLog(Base):
    """One row per inbound request, used for spam and rate-limit windows."""
    __tablename__ = "request_logs"

    id = Column(LogId, primary_key=True, autoincrement=True)
    ip_address = Column(String(45), nullable=False)  # IPv6 fits
    user_id = Column(String(450), nullable=True)
    endpoint = Column(String(200), nullable=False)
    http_method = Column(String(10), nullable=False)
    request_hash = Column(String(64), nullable=False)  # SHA-256 hex
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    user_agent = Column(String(500), nullable=True)

    response_status_code = Column(Integer, nullable=False, default=0)
    response_time_ms = Column(BigInteger, nullable=False, default=0)

    is_spam_detected = Column(Boolean, nullable=False, default=False)
    spam_reason = Column(String(100), nullable=True)

    # Window counts observed when the row was written
    requests_in_last_minute = Column(Integer, nullable=False, default=0)
    requests_in_last_hour = Column(Integer, nullable=False, default=0)
    duplicate_request_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_request_logs_ip_timestamp", "ip_address", "timestamp"),
        Index("ix_request_logs_user_timestamp", "user_id", "timestamp"),
        Index("ix_request_logs_hash_timestamp", "request_hash", "timestamp"),
        Index("ix_request_logs_timestamp", "timestamp"),
    )

    def __repr__(self):
        return f"<RequestLog {self.http_method} {self.endpoint} from {self.ip_address} at {self.timestamp}>"
