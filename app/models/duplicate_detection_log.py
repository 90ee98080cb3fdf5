from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from app.core.database import Base
from app.models.request_log import LogId


class DuplicateDetectionLog(Base):
    """Duplicate-data submission attempt, blocked or observed."""
    __tablename__ = "duplicate_detection_logs"

    id = Column(LogId, primary_key=True, autoincrement=True)
    entity_type = Column(String(100), nullable=False)  # Department, Employee, ...
    entity_id = Column(String(50), nullable=False)  # ID or unique key being duplicated
    data_hash = Column(String(64), nullable=False)
    detected_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    user_id = Column(String(450), nullable=True)
    action = Column(String(50), nullable=False)  # CREATE, UPDATE

    original_data = Column(Text, nullable=True)
    duplicate_data = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)

    # INDEX_VIOLATION | HASH_MATCH | BUSINESS_LOGIC
    detection_method = Column(String(50), nullable=True)
    was_blocked = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_duplicate_logs_hash_type", "data_hash", "entity_type", "detected_at"),
        Index("ix_duplicate_logs_user", "user_id", "detected_at"),
        Index("ix_duplicate_logs_ip", "ip_address", "detected_at"),
    )

    def __repr__(self):
        return f"<DuplicateDetectionLog {self.entity_type} {self.entity_id} blocked={self.was_blocked}>"
