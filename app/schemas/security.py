from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: int
    table_name: str
    record_id: str
    action: str
    timestamp: datetime
    user_id: Optional[str]
    user_name: Optional[str]
    ip_address: Optional[str]
    old_values: Optional[str]
    new_values: Optional[str]
    changed_fields: Optional[str]
    reason: Optional[str]
    risk_level: Optional[str]
    is_suspicious_activity: bool

    model_config = {"from_attributes": True}


class RequestLogResponse(BaseModel):
    id: int
    ip_address: str
    user_id: Optional[str]
    endpoint: str
    http_method: str
    request_hash: str
    timestamp: datetime
    response_status_code: int
    response_time_ms: int
    is_spam_detected: bool
    spam_reason: Optional[str]
    requests_in_last_minute: int
    requests_in_last_hour: int
    duplicate_request_count: int

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int


class RequestLogListResponse(BaseModel):
    logs: List[RequestLogResponse]
    total: int


class SuspiciousActivityRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=450)
    ip_address: str = Field(..., min_length=1, max_length=45)
    reason: str = Field(..., min_length=1, max_length=1000)


class SuspiciousActivityResponse(BaseModel):
    user_id: str
    ip_address: str
    is_suspicious: bool


class CleanupResponse(BaseModel):
    deleted_request_logs: int
    purged_revocations: int
    retention_days: int
