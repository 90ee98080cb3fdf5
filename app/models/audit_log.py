from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from app.core.database import Base
from app.models.request_log import LogId


class AuditLog(Base):
    """Append-only record of a sensitive action."""
    __tablename__ = "audit_logs"

    id = Column(LogId, primary_key=True, autoincrement=True)
    table_name = Column(String(100), nullable=False)
    record_id = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)  # CREATE, UPDATE, DELETE, READ, ...
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    user_id = Column(String(450), nullable=True)
    user_name = Column(String(256), nullable=True)
    ip_address = Column(String(45), nullable=True)

    old_values = Column(Text, nullable=True)  # JSON
    new_values = Column(Text, nullable=True)  # JSON
    changed_fields = Column(Text, nullable=True)

    reason = Column(Text, nullable=True)
    application_name = Column(String(100), nullable=True, default="SSS.BE")
    user_agent = Column(String(500), nullable=True)

    risk_level = Column(String(20), nullable=True)  # LOW, MEDIUM, HIGH
    is_suspicious_activity = Column(Boolean, nullable=False, default=False)
    security_notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_user_timestamp", "user_id", "timestamp"),
        Index("ix_audit_logs_ip_timestamp", "ip_address", "timestamp"),
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} {self.table_name}:{self.record_id}>"
