"""
Course Service
Courses belong to a department and own batches
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_, asc, desc
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import DuplicateError, DependencyError, ResourceNotFoundError, ValidationError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.department import Department
from cdc_admin.models.student import Student
from cdc_admin.schemas.batch import BatchResponse
from cdc_admin.schemas.course import CourseCreate, CourseUpdate, CourseResponse
from cdc_admin.services.authorization import Principal, require_admin
from cdc_admin.utils.pagination import paginate
from cdc_admin.utils.rounding import round_half_up, percentage
from cdc_admin.utils.serialization import to_dict

SORTABLE_FIELDS = {
    "name": Course.name,
    "code": Course.code,
    "createdAt": Course.created_at,
    "created_at": Course.created_at,
    "fees": Course.fee_amount,
    "duration": Course.duration_months,
    "level": Course.level,
}

DUPLICATE_CODE_MESSAGE = "Course with this code already exists in this department"


def _batch_count_subquery():
    return (
        select(func.count(Batch.id)).where(Batch.course_id == Course.id)
        .correlate(Course).scalar_subquery()
    )


class CourseService:
    """Course CRUD, stats and overview"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def get_course(self, course_id: str) -> Course:
        course = await self.db.get(Course, course_id)
        if not course:
            raise ResourceNotFoundError("Course", course_id)
        return course

    async def _require_department(self, department_id: str) -> Department:
        department = await self.db.get(Department, department_id)
        if not department:
            raise ResourceNotFoundError("Department", department_id)
        return department

    async def _check_code(self, department_id: str, code: str, exclude_id: Optional[str] = None):
        query = select(Course.id).where(Course.department_id == department_id, Course.code == code)
        if exclude_id:
            query = query.where(Course.id != exclude_id)
        if (await self.db.execute(query)).first():
            raise DuplicateError(DUPLICATE_CODE_MESSAGE, field="code")

    @staticmethod
    def _fields(data) -> Dict[str, Any]:
        # Nested models are stored as plain JSON
        return data.model_dump(exclude_unset=True, mode="json")

    async def create_course(self, principal: Principal, data: CourseCreate) -> Course:
        require_admin(principal)
        await self._require_department(data.department_id)
        await self._check_code(data.department_id, data.code)

        fields = data.model_dump(mode="json")
        fields.update(level=data.level, category=data.category, fee_currency=data.fee_currency)
        course = Course(**fields, created_by_id=principal.user_id, **self.clock.timestamps())
        async with unique_write(self.db, lambda exc: DuplicateError(DUPLICATE_CODE_MESSAGE, field="code")):
            self.db.add(course)

        logger.log_domain_event("Hierarchy", "course_created", course_id=course.id, department_id=course.department_id)
        return course

    async def list_courses(
        self,
        department_id: Optional[str] = None,
        active: Optional[bool] = None,
        level: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "name",
        sort_order: str = "asc",
        page: int = 1,
        limit: Optional[int] = 10,
    ) -> Dict[str, Any]:
        query = select(Course)
        if department_id:
            query = query.where(Course.department_id == department_id)
        if active is not None:
            query = query.where(Course.is_active == active)
        if level:
            query = query.where(Course.level == level)
        if category:
            query = query.where(Course.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                func.lower(Course.name).like(pattern),
                func.lower(Course.code).like(pattern),
                func.lower(Course.description).like(pattern),
            ))

        column = SORTABLE_FIELDS.get(sort_by, Course.name)
        query = query.order_by(desc(column) if sort_order == "desc" else asc(column), Course.id)

        page_data = await paginate(self.db, query, page, limit)
        counts = await self._batch_counts([c.id for c in page_data["items"]])
        return {
            "courses": [to_dict(CourseResponse, c, batch_count=counts.get(c.id, 0)) for c in page_data["items"]],
            "pagination": page_data["pagination"],
        }

    async def _batch_counts(self, course_ids: List[str]) -> Dict[str, int]:
        if not course_ids:
            return {}
        result = await self.db.execute(
            select(Batch.course_id, func.count(Batch.id))
            .where(Batch.course_id.in_(course_ids))
            .group_by(Batch.course_id)
        )
        return {course_id: count for course_id, count in result.all()}

    async def get_course_detail(self, course_id: str) -> Dict[str, Any]:
        course = await self.get_course(course_id)
        department = await self.db.get(Department, course.department_id)
        batches = (await self.db.execute(
            select(Batch).where(Batch.course_id == course_id).order_by(Batch.start_date.desc())
        )).scalars().all()
        return to_dict(
            CourseResponse, course,
            department_name=department.name.value if department else None,
            batches=[to_dict(BatchResponse, b) for b in batches],
        )

    async def update_course(self, principal: Principal, course_id: str, data: CourseUpdate) -> Course:
        require_admin(principal)
        course = await self.get_course(course_id)
        changes = self._fields(data)
        for enum_field in ("level", "category", "fee_currency"):
            if enum_field in changes:
                changes[enum_field] = getattr(data, enum_field)

        department_id = changes.get("department_id", course.department_id)
        if department_id != course.department_id:
            await self._require_department(department_id)
        code = changes.get("code", course.code)
        if code != course.code or department_id != course.department_id:
            await self._check_code(department_id, code, exclude_id=course_id)

        if changes.get("installment_count") and not changes.get("installments_allowed", course.installments_allowed):
            raise ValidationError("Installments are not allowed for this course", field="installment_count")

        async with unique_write(self.db, lambda exc: DuplicateError(DUPLICATE_CODE_MESSAGE, field="code")):
            for field, value in changes.items():
                setattr(course, field, value)

        logger.log_domain_event("Hierarchy", "course_updated", course_id=course_id)
        return course

    async def delete_course(self, principal: Principal, course_id: str) -> None:
        require_admin(principal)
        course = await self.get_course(course_id)

        batch_count = (await self.db.execute(
            select(func.count(Batch.id)).where(Batch.course_id == course_id)
        )).scalar() or 0
        if batch_count:
            raise DependencyError(
                "Cannot delete course with existing batches. Please delete or reassign batches first.",
                dependents=batch_count,
            )

        await self.db.delete(course)
        await self.db.flush()
        logger.log_domain_event("Hierarchy", "course_deleted", course_id=course_id)

    async def list_by_department(self, department_id: str, active: Optional[bool] = True) -> List[Dict[str, Any]]:
        await self._require_department(department_id)
        query = select(Course, _batch_count_subquery()).where(Course.department_id == department_id)
        if active is not None:
            query = query.where(Course.is_active == active)
        result = await self.db.execute(query.order_by(Course.name))
        return [to_dict(CourseResponse, c, batch_count=count or 0) for c, count in result.all()]

    async def get_course_stats(self, course_id: str) -> Dict[str, Any]:
        course = await self.get_course(course_id)

        batches = (await self.db.execute(select(Batch).where(Batch.course_id == course_id))).scalars().all()
        total_batches = len(batches)
        finished_batches = sum(1 for b in batches if b.is_finished)
        active_batches = sum(1 for b in batches if not b.is_finished and not b.is_archived)

        total_students, active_students, revenue, potential = (await self.db.execute(
            select(
                func.count(Student.id),
                func.count(Student.id).filter(Student.is_active.is_(True)),
                func.coalesce(func.sum(Student.fees_paid), 0),
                func.coalesce(func.sum(Student.total_fees), 0),
            ).where(Student.course_id == course_id)
        )).one()

        capacity = total_batches * course.max_students_per_batch
        return {
            "course": to_dict(CourseResponse, course),
            "stats": {
                "total_batches": total_batches,
                "active_batches": active_batches,
                "finished_batches": finished_batches,
                "total_students": total_students,
                "active_students": active_students,
                "average_batch_size": round_half_up(total_students / total_batches, 1) if total_batches else 0,
                "utilization_rate": percentage(total_students, capacity, 1),
                "revenue": {
                    "total": revenue,
                    "potential": potential,
                    "efficiency": percentage(revenue, potential, 1),
                },
                "capacity": {
                    "max_students_per_batch": course.max_students_per_batch,
                    "current_utilization": percentage(total_students, capacity, 1),
                    "available_slots": max(0, capacity - total_students),
                },
            },
        }

    async def get_overview(self, principal: Principal) -> Dict[str, Any]:
        require_admin(principal)
        student_count = (
            select(func.count(Student.id)).where(Student.course_id == Course.id)
            .correlate(Course).scalar_subquery()
        )
        active_batch_count = (
            select(func.count(Batch.id))
            .where(Batch.course_id == Course.id, Batch.is_finished.is_(False), Batch.is_archived.is_(False))
            .correlate(Course).scalar_subquery()
        )
        result = await self.db.execute(
            select(Course, Department.name, _batch_count_subquery(), student_count, active_batch_count)
            .join(Department, Department.id == Course.department_id)
            .order_by(Course.name)
        )
        return {
            "courses": [
                to_dict(
                    CourseResponse, course,
                    department_name=dept_name.value if dept_name else None,
                    batch_count=batches or 0,
                    student_count=students or 0,
                    active_batch_count=active or 0,
                )
                for course, dept_name, batches, students, active in result.all()
            ]
        }
