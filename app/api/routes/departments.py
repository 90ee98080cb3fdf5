from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_clock, get_current_user, require_roles
from app.core.clock import Clock
from app.core.database import get_db
from app.core.exceptions import ValidationError, raise_for_result
from app.core.sanitization import (
    MAX_LENGTHS,
    sanitize_code,
    sanitize_description,
    sanitize_name,
    validate_code,
)
from app.models import User
from app.schemas.auth import MessageResponse
from app.schemas.departments import (
    DepartmentCreateRequest,
    DepartmentListResponse,
    DepartmentResponse,
    DepartmentUpdateRequest,
)
from app.services.audit_service import Actor
from app.services.department_service import DepartmentService


router = APIRouter(prefix="/departments", tags=["Departments"])

require_manager = require_roles("Administrator", "Director")


def get_department_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> DepartmentService:
    return DepartmentService(db, clock)


def _sanitize(data):
    if data.name is not None:
        data.name = sanitize_name(data.name, MAX_LENGTHS["department_name"])
        if not data.name:
            raise ValidationError("Department name is required")
    if data.department_code:
        data.department_code = sanitize_code(data.department_code, MAX_LENGTHS["department_code"])
        if not validate_code(data.department_code):
            raise ValidationError("Invalid department code format")
    if data.description is not None:
        data.description = sanitize_description(data.description)
    return data


@router.get("", response_model=DepartmentListResponse)
def list_departments(
    search: Optional[str] = Query(None, max_length=100),
    include_inactive: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: DepartmentService = Depends(get_department_service),
):
    """List departments, active only unless asked otherwise."""
    departments, total = service.list_departments(search, include_inactive, skip, limit)
    return DepartmentListResponse(
        departments=[DepartmentResponse.model_validate(d) for d in departments],
        total=total,
    )


@router.get("/{department_id}", response_model=DepartmentResponse)
def get_department(
    department_id: int,
    current_user: User = Depends(get_current_user),
    service: DepartmentService = Depends(get_department_service),
):
    result = service.get(department_id)
    raise_for_result(result, "Department")
    return DepartmentResponse.model_validate(result.value)


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(
    data: DepartmentCreateRequest,
    current_user: User = Depends(require_manager),
    actor: Actor = Depends(get_actor),
    service: DepartmentService = Depends(get_department_service),
):
    """
    Create a department.
    Rejects a name or code already in use, and payloads that were already
    blocked as duplicates within the lookback window.
    """
    result = service.create(_sanitize(data), actor)
    raise_for_result(result, "Department")
    return DepartmentResponse.model_validate(result.value)


@router.put("/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: int,
    data: DepartmentUpdateRequest,
    current_user: User = Depends(require_manager),
    actor: Actor = Depends(get_actor),
    service: DepartmentService = Depends(get_department_service),
):
    result = service.update(department_id, _sanitize(data), actor)
    raise_for_result(result, "Department")
    return DepartmentResponse.model_validate(result.value)


@router.delete("/{department_id}", response_model=MessageResponse)
def delete_department(
    department_id: int,
    current_user: User = Depends(require_manager),
    actor: Actor = Depends(get_actor),
    service: DepartmentService = Depends(get_department_service),
):
    """Deactivate a department (Administrator or Director)."""
    result = service.delete(department_id, actor)
    raise_for_result(result, "Department")
    return MessageResponse(message=result.message)
