from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


class DepartmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    department_code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=500)


class DepartmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    department_code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    department_code: Optional[str]
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class DepartmentListResponse(BaseModel):
    departments: List[DepartmentResponse]
    total: int
