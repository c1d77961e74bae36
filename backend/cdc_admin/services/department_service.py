"""
Department Service
Departments sit at the top of the enrollment hierarchy
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import DuplicateError, DependencyError, ResourceNotFoundError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.department import Department
from cdc_admin.models.student import Student
from cdc_admin.schemas.course import CourseResponse
from cdc_admin.schemas.department import DepartmentCreate, DepartmentUpdate, DepartmentResponse
from cdc_admin.services.authorization import Principal, require_admin
from cdc_admin.utils.rounding import round_half_up
from cdc_admin.utils.serialization import to_dict


class DepartmentService:
    """Department CRUD, stats and overview"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def get_department(self, department_id: str) -> Department:
        department = await self.db.get(Department, department_id)
        if not department:
            raise ResourceNotFoundError("Department", department_id)
        return department

    async def _check_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[str] = None):
        if name is not None:
            query = select(Department.id).where(Department.name == name)
            if exclude_id:
                query = query.where(Department.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise DuplicateError("Department with this name already exists", field="name")
        if code is not None:
            query = select(Department.id).where(Department.code == code)
            if exclude_id:
                query = query.where(Department.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise DuplicateError("Department with this code already exists", field="code")

    @staticmethod
    def _duplicate(exc) -> DuplicateError:
        return DuplicateError("Department with this name or code already exists")

    async def create_department(self, principal: Principal, data: DepartmentCreate) -> Department:
        require_admin(principal)
        await self._check_unique(data.name, data.code)

        department = Department(
            **data.model_dump(exclude={"contact_info", "location"}),
            contact_info=data.contact_info.model_dump() if data.contact_info else None,
            location=data.location.model_dump() if data.location else None,
            created_by_id=principal.user_id,
            **self.clock.timestamps(),
        )
        async with unique_write(self.db, self._duplicate):
            self.db.add(department)

        logger.log_domain_event("Hierarchy", "department_created", department_id=department.id)
        return department

    async def list_departments(self, active: Optional[bool] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        course_count = (
            select(func.count(Course.id))
            .where(Course.department_id == Department.id)
            .correlate(Department)
            .scalar_subquery()
        )
        query = select(Department, course_count.label("course_count")).order_by(Department.name)
        if active is not None:
            query = query.where(Department.is_active == active)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                func.lower(Department.name).like(pattern),
                func.lower(Department.code).like(pattern),
                func.lower(Department.description).like(pattern),
            ))

        result = await self.db.execute(query)
        return [
            to_dict(DepartmentResponse, department, course_count=count or 0)
            for department, count in result.all()
        ]

    async def get_department_detail(self, department_id: str) -> Dict[str, Any]:
        department = await self.get_department(department_id)
        courses = (await self.db.execute(
            select(Course).where(Course.department_id == department_id).order_by(Course.name)
        )).scalars().all()
        return to_dict(
            DepartmentResponse, department,
            courses=[to_dict(CourseResponse, c) for c in courses],
        )

    async def update_department(self, principal: Principal, department_id: str, data: DepartmentUpdate) -> Department:
        require_admin(principal)
        department = await self.get_department(department_id)
        changes = data.model_dump(exclude_unset=True)

        await self._check_unique(
            changes.get("name") if changes.get("name") != department.name else None,
            changes.get("code") if changes.get("code") != department.code else None,
            exclude_id=department_id,
        )

        async with unique_write(self.db, self._duplicate):
            for field, value in changes.items():
                setattr(department, field, value)

        logger.log_domain_event("Hierarchy", "department_updated", department_id=department_id)
        return department

    async def delete_department(self, principal: Principal, department_id: str) -> None:
        require_admin(principal)
        department = await self.get_department(department_id)

        course_count = (await self.db.execute(
            select(func.count(Course.id)).where(Course.department_id == department_id)
        )).scalar() or 0
        if course_count:
            raise DependencyError(
                "Cannot delete department with existing courses. Please delete or reassign courses first.",
                dependents=course_count,
            )

        await self.db.delete(department)
        await self.db.flush()
        logger.log_domain_event("Hierarchy", "department_deleted", department_id=department_id)

    async def get_department_stats(self, department_id: str) -> Dict[str, Any]:
        department = await self.get_department(department_id)
        row = (await self.db.execute(
            select(
                func.count(Course.id),
                func.count(Course.id).filter(Course.is_active.is_(True)),
                func.avg(Course.fee_amount),
                func.sum(Course.fee_amount),
            ).where(Course.department_id == department_id)
        )).one()
        total, active, average_fees, total_fees = row
        return {
            "department": to_dict(DepartmentResponse, department),
            "stats": {
                "total_courses": total or 0,
                "active_courses": active or 0,
                "average_fees": round_half_up(average_fees or 0, 2),
                "total_fees": total_fees or 0,
            },
        }

    async def get_overview(self, principal: Principal) -> Dict[str, Any]:
        require_admin(principal)
        course_count = (
            select(func.count(Course.id)).where(Course.department_id == Department.id)
            .correlate(Department).scalar_subquery()
        )
        batch_count = (
            select(func.count(Batch.id)).join(Course, Course.id == Batch.course_id)
            .where(Course.department_id == Department.id)
            .correlate(Department).scalar_subquery()
        )
        student_count = (
            select(func.count(Student.id)).where(Student.department_id == Department.id)
            .correlate(Department).scalar_subquery()
        )
        result = await self.db.execute(
            select(Department, course_count, batch_count, student_count).order_by(Department.name)
        )
        return {
            "departments": [
                to_dict(
                    DepartmentResponse, department,
                    course_count=courses or 0,
                    batch_count=batches or 0,
                    student_count=students or 0,
                )
                for department, courses, batches, students in result.all()
            ]
        }
