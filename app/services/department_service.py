import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import Settings, settings as default_settings
from app.core.results import ErrorKind, Result
from app.models import Department
from app.schemas.departments import DepartmentCreateRequest, DepartmentUpdateRequest
from app.services.audit_service import Actor, AuditService
from app.services.duplicate_prevention_service import DuplicatePreventionService

logger = logging.getLogger(__name__)

ENTITY_TYPE = "Department"
AUDIT_TABLE = "Departments"


def department_snapshot(department: Department) -> dict:
    return {
        "name": department.name,
        "department_code": department.department_code,
        "description": department.description,
        "is_active": department.is_active,
    }


class DepartmentService:
    """Department CRUD with duplicate detection and an audit entry per change."""

    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings
        self.audit = AuditService(db, clock, settings)
        self.duplicates = DuplicatePreventionService(db, clock, settings)

    def list_departments(
        self,
        search: Optional[str] = None,
        include_inactive: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[Department], int]:
        query = self.db.query(Department)
        if not include_inactive:
            query = query.filter(Department.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Department.name.ilike(pattern),
                Department.department_code.ilike(pattern),
                Department.description.ilike(pattern),
            ))
        total = query.count()
        departments = query.order_by(Department.name).offset(skip).limit(limit).all()
        return departments, total

    def get(self, department_id: int) -> Result[Department]:
        department = self.db.get(Department, department_id)
        if department is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Department not found")
        return Result.success(department)

    def _find_conflict(
        self,
        name: Optional[str],
        department_code: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> Optional[tuple[Department, str]]:
        if name:
            query = self.db.query(Department).filter(
                func.lower(Department.name) == name.lower(),
                Department.is_active.is_(True),
            )
            if exclude_id is not None:
                query = query.filter(Department.id != exclude_id)
            existing = query.first()
            if existing:
                return existing, "Department name already exists"
        if department_code:
            query = self.db.query(Department).filter(Department.department_code == department_code)
            if exclude_id is not None:
                query = query.filter(Department.id != exclude_id)
            existing = query.first()
            if existing:
                return existing, "Department code already exists"
        return None

    def create(self, data: DepartmentCreateRequest, actor: Actor) -> Result[Department]:
        # A payload that already produced a blocked attempt is rejected outright
        if self.duplicates.is_duplicate_data(data, ENTITY_TYPE, data.name):
            self.duplicates.log_duplicate_attempt(
                ENTITY_TYPE, "0", None, data, actor.user_id, actor.ip_address, "CREATE"
            )
            return Result.failure(ErrorKind.DUPLICATE, "Duplicate department submission detected")

        conflict = self._find_conflict(data.name, data.department_code)
        if conflict:
            existing, message = conflict
            self.duplicates.log_duplicate_attempt(
                ENTITY_TYPE,
                str(existing.id),
                department_snapshot(existing),
                data,
                actor.user_id,
                actor.ip_address,
                "CREATE",
            )
            return Result.failure(ErrorKind.CONFLICT, message, [message])

        department = Department(
            name=data.name,
            department_code=data.department_code or None,
            description=data.description,
            is_active=True,
            created_at=self.clock.now(),
        )
        self.db.add(department)
        failure = self._commit(f"create department {data.name}")
        if failure:
            return failure
        self.db.refresh(department)

        self.audit.record(actor, AUDIT_TABLE, department.id, "CREATE", new_values=department_snapshot(department))
        logger.info(f"Department {department.name} created successfully")
        return Result.success(department, "Department created successfully")

    def update(self, department_id: int, data: DepartmentUpdateRequest, actor: Actor) -> Result[Department]:
        department = self.db.get(Department, department_id)
        if department is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Department not found")

        changes = data.model_dump(exclude_unset=True)
        for required in ("name", "is_active"):
            if changes.get(required, False) is None:
                del changes[required]
        conflict = self._find_conflict(
            changes.get("name") if changes.get("name") != department.name else None,
            changes.get("department_code") if changes.get("department_code") != department.department_code else None,
            exclude_id=department.id,
        )
        if conflict:
            existing, message = conflict
            self.duplicates.log_duplicate_attempt(
                ENTITY_TYPE,
                str(existing.id),
                department_snapshot(existing),
                data,
                actor.user_id,
                actor.ip_address,
                "UPDATE",
            )
            return Result.failure(ErrorKind.CONFLICT, message, [message])

        before = department_snapshot(department)
        for key, value in changes.items():
            setattr(department, key, value)
        department.updated_at = self.clock.now()
        failure = self._commit(f"update department {department_id}")
        if failure:
            return failure
        self.db.refresh(department)

        self.audit.record(
            actor, AUDIT_TABLE, department.id, "UPDATE",
            old_values=before, new_values=department_snapshot(department),
        )
        return Result.success(department, "Department updated successfully")

    def delete(self, department_id: int, actor: Actor) -> Result[None]:
        """Soft delete: the row stays, marked inactive."""
        department = self.db.get(Department, department_id)
        if department is None or not department.is_active:
            return Result.failure(ErrorKind.NOT_FOUND, "Department not found")

        before = department_snapshot(department)
        department.is_active = False
        department.updated_at = self.clock.now()
        failure = self._commit(f"delete department {department_id}")
        if failure:
            return failure

        self.audit.record(actor, AUDIT_TABLE, department_id, "DELETE", old_values=before)
        logger.info(f"Department {department.name} deleted successfully")
        return Result.success(message="Department deleted successfully")

    def _commit(self, what: str) -> Optional[Result]:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {what}: {e}")
            return Result.failure(ErrorKind.INFRASTRUCTURE, f"Could not {what}")
        return None
