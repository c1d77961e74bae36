"""
Student Service

Students carry flat department/course/batch references. Every write checks
that the three agree (batch.course == course, course.department ==
department) before anything is stored.
"""

import re
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func, or_, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import (
    AuthorizationError, CapacityError, CDCAdminError, DuplicateError,
    HierarchyMismatchError, ResourceNotFoundError, ValidationError,
)
from cdc_admin.core.logging_config import logger
from cdc_admin.models.attendance import Attendance
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.department import Department
from cdc_admin.models.lab import Booking
from cdc_admin.models.project import ProjectSubmission
from cdc_admin.models.student import Student
from cdc_admin.models.user import User
from cdc_admin.schemas.student import StudentCreate, StudentUpdate, StudentResponse
from cdc_admin.services.attendance_service import status_counts
from cdc_admin.services.authorization import (
    Principal, require, require_found, require_staff, can_write_student,
)
from cdc_admin.services.project_analytics_service import purge_submissions, recompute_projects
from cdc_admin.services.submission_storage import SubmissionStorage, get_submission_storage
from cdc_admin.utils.rounding import percentage
from cdc_admin.utils.serialization import to_dict

TRAILING_NUMBER = re.compile(r"(\d+)$")
TEMP_STUDENT_ID_PREFIX = "TEMP-"


def next_roll_number(roll_numbers: Iterable[Optional[str]]) -> str:
    """
    Smallest positive integer not used as a trailing number in ``roll_numbers``.

    Gaps are filled first ({1, 2, 4} -> "3"); otherwise max + 1.
    """
    taken = set()
    for roll in roll_numbers:
        match = TRAILING_NUMBER.search(str(roll or "").strip())
        if match:
            taken.add(int(match.group(1)))

    candidate = 1
    while candidate in taken:
        candidate += 1
    return str(candidate)


def temporary_student_id() -> str:
    return f"{TEMP_STUDENT_ID_PREFIX}{uuid.uuid4().hex[:8].upper()}"


def _unique_violation(exc) -> DuplicateError:
    text = str(getattr(exc, "orig", exc)).lower()
    if "email" in text:
        return DuplicateError("Student with this email already exists", field="email")
    if "student_id" in text:
        return DuplicateError("Student ID already exists", field="student_id")
    return DuplicateError("Roll number already exists in this batch", field="roll_no")


class StudentService:
    """Student enrollment, updates and reporting"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None, storage: Optional[SubmissionStorage] = None):
        self.db = db
        self.clock = clock or get_clock()
        self.storage = storage or get_submission_storage()

    async def get_student(self, student_id: str) -> Student:
        student = await self.db.get(Student, student_id)
        if not student:
            raise ResourceNotFoundError("Student", student_id)
        return student

    async def validate_hierarchy(
        self, department_id: str, course_id: str, batch_id: str
    ) -> Tuple[Department, Course, Batch]:
        department = await self.db.get(Department, department_id)
        if not department:
            raise ResourceNotFoundError("Department", department_id)
        if not department.is_active:
            raise ValidationError("Department is not active", field="department_id")

        course = await self.db.get(Course, course_id)
        if not course:
            raise ResourceNotFoundError("Course", course_id)
        if course.department_id != department.id:
            raise HierarchyMismatchError(
                "Course does not belong to the selected department",
                course_id=course_id, department_id=department_id,
            )

        batch = await self.db.get(Batch, batch_id)
        if not batch:
            raise ResourceNotFoundError("Batch", batch_id)
        if batch.course_id != course.id:
            raise HierarchyMismatchError(
                "Batch does not belong to the selected course",
                batch_id=batch_id, course_id=course_id,
            )
        return department, course, batch

    async def _ensure_unique(
        self,
        batch_id: str,
        roll_no: Optional[str] = None,
        email: Optional[str] = None,
        student_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        checks = []
        if roll_no is not None:
            checks.append((
                select(Student.id).where(Student.batch_id == batch_id, Student.roll_no == roll_no),
                DuplicateError("Roll number already exists in this batch", field="roll_no"),
            ))
        if email:
            checks.append((
                select(Student.id).where(Student.email == email),
                DuplicateError("Student with this email already exists", field="email"),
            ))
        if student_id:
            checks.append((
                select(Student.id).where(Student.student_id == student_id),
                DuplicateError("Student ID already exists", field="student_id"),
            ))
        for query, error in checks:
            if exclude_id:
                query = query.where(Student.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise error

    async def _ensure_capacity(self, batch: Batch) -> None:
        count = (await self.db.execute(
            select(func.count(Student.id)).where(Student.batch_id == batch.id)
        )).scalar() or 0
        if count >= batch.max_students:
            raise CapacityError(
                f"Batch is full ({count}/{batch.max_students} students)",
                batch_id=batch.id, max_students=batch.max_students,
            )

    async def next_roll_number_for_batch(self, batch_id: str) -> Dict[str, Any]:
        if not await self.db.get(Batch, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        rolls = (await self.db.execute(
            select(Student.roll_no).where(Student.batch_id == batch_id)
        )).scalars().all()
        return {
            "next_roll_number": next_roll_number(rolls),
            "total_students": len(rolls),
            "batch_id": batch_id,
        }

    async def create_student(self, principal: Principal, data: StudentCreate) -> Student:
        require_staff(principal)
        batch = require_found(principal, await self.db.get(Batch, data.batch_id), "Batch", data.batch_id)
        require(can_write_student(principal, batch), "Not authorized to add students to this batch")
        await self.validate_hierarchy(data.department_id, data.course_id, data.batch_id)

        fields = data.model_dump()
        if principal.is_admin:
            student_id = fields.get("student_id") or None
        else:
            student_id = temporary_student_id()
        fields["student_id"] = student_id

        roll_no = fields.get("roll_no") or (await self.next_roll_number_for_batch(batch.id))["next_roll_number"]
        fields["roll_no"] = roll_no
        if fields.get("admission_date") is None:
            fields["admission_date"] = self.clock.now()
        else:
            fields["admission_date"] = self.clock.to_local_datetime(fields["admission_date"])

        await self._ensure_capacity(batch)
        await self._ensure_unique(batch.id, roll_no=roll_no, email=fields.get("email"), student_id=student_id)

        student = Student(**fields, created_by_id=principal.user_id, **self.clock.timestamps())
        async with unique_write(self.db, _unique_violation):
            self.db.add(student)

        logger.log_domain_event("Hierarchy", "student_created", student_id=student.id, batch_id=batch.id)
        return student

    async def bulk_create(self, principal: Principal, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create students row by row; invalid rows are reported by index"""
        require_staff(principal)
        created: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for index, row in enumerate(rows):
            try:
                data = StudentCreate.model_validate(row)
                student = await self.create_student(principal, data)
            except PydanticValidationError as e:
                message = "; ".join(
                    str(err["msg"]).removeprefix("Value error, ") for err in e.errors()
                )
                errors.append({"index": index, "message": message})
                continue
            except CDCAdminError as e:
                errors.append({"index": index, "message": e.message, "code": e.code})
                continue
            created.append(to_dict(StudentResponse, student))

        logger.log_domain_event("Hierarchy", "students_bulk_created", created_count=len(created), failed_count=len(errors))
        return {
            "created": created,
            "errors": errors,
            "message": f"{len(created)} students created, {len(errors)} failed",
        }

    async def list_students(
        self,
        principal: Principal,
        department_id: Optional[str] = None,
        course_id: Optional[str] = None,
        batch_id: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        query = select(Student)
        if not principal.is_admin:
            own_batches = select(Batch.id).where(Batch.created_by_id == principal.user_id)
            query = query.where(Student.batch_id.in_(own_batches))
        if department_id:
            query = query.where(Student.department_id == department_id)
        if course_id:
            query = query.where(Student.course_id == course_id)
        if batch_id:
            query = query.where(Student.batch_id == batch_id)
        if is_active is not None:
            query = query.where(Student.is_active == is_active)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                func.lower(Student.name).like(pattern),
                func.lower(Student.email).like(pattern),
                func.lower(Student.student_id).like(pattern),
                func.lower(Student.roll_no).like(pattern),
            ))

        students = (await self.db.execute(query.order_by(Student.name))).scalars().all()
        return [to_dict(StudentResponse, s) for s in students]

    async def list_by_batch(self, batch_id: str) -> List[Dict[str, Any]]:
        if not await self.db.get(Batch, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        students = (await self.db.execute(
            select(Student).where(Student.batch_id == batch_id).order_by(Student.roll_no, Student.name)
        )).scalars().all()
        return [to_dict(StudentResponse, s) for s in students]

    async def list_by_department(self, department_id: str) -> List[Dict[str, Any]]:
        if not await self.db.get(Department, department_id):
            raise ResourceNotFoundError("Department", department_id)
        students = (await self.db.execute(
            select(Student).where(Student.department_id == department_id).order_by(Student.name)
        )).scalars().all()
        return [to_dict(StudentResponse, s) for s in students]

    async def update_student(self, principal: Principal, student_id: str, data: StudentUpdate) -> Student:
        require_staff(principal)
        student = await self.db.get(Student, student_id)
        current_batch = await self.db.get(Batch, student.batch_id) if student else None
        require_found(principal, current_batch, "Student", student_id)
        require(can_write_student(principal, current_batch), "Not authorized to modify this student")

        changes = data.model_dump(exclude_unset=True)
        for required in (
            "name", "roll_no", "department_id", "course_id", "batch_id",
            "fees_paid", "total_fees", "payment_status", "is_active",
        ):
            if required in changes and changes[required] is None:
                changes.pop(required)

        if "student_id" in changes and changes["student_id"] != student.student_id:
            if not principal.is_admin:
                raise AuthorizationError("Only admins can change the student ID")

        department_id = changes.get("department_id", student.department_id)
        course_id = changes.get("course_id", student.course_id)
        batch_id = changes.get("batch_id", student.batch_id)
        if (department_id, course_id, batch_id) != (student.department_id, student.course_id, student.batch_id):
            _, _, new_batch = await self.validate_hierarchy(department_id, course_id, batch_id)
            if new_batch.id != student.batch_id:
                require(can_write_student(principal, new_batch), "Not authorized to move students into this batch")
                await self._ensure_capacity(new_batch)

        fees_paid = changes.get("fees_paid", student.fees_paid)
        total_fees = changes.get("total_fees", student.total_fees)
        if fees_paid > total_fees:
            raise ValidationError("Fees paid cannot exceed total fees", field="fees_paid")

        roll_no = changes.get("roll_no", student.roll_no)
        await self._ensure_unique(
            batch_id,
            roll_no=roll_no if (roll_no != student.roll_no or batch_id != student.batch_id) else None,
            email=changes.get("email") if changes.get("email") != student.email else None,
            student_id=changes.get("student_id") if changes.get("student_id") != student.student_id else None,
            exclude_id=student.id,
        )

        async with unique_write(self.db, _unique_violation):
            for field, value in changes.items():
                setattr(student, field, value)

        logger.log_domain_event("Hierarchy", "student_updated", student_id=student.id)
        return student

    async def delete_student(self, principal: Principal, student_id: str) -> Dict[str, int]:
        """Delete a student together with their attendance and project submissions"""
        require_staff(principal)
        student = await self.db.get(Student, student_id)
        batch = await self.db.get(Batch, student.batch_id) if student else None
        require_found(principal, batch, "Student", student_id)
        require(can_write_student(principal, batch), "Not authorized to delete this student")

        purged = await purge_submissions(self.db, ProjectSubmission.student_id == student_id)
        attendance_deleted = (await self.db.execute(
            delete(Attendance).where(Attendance.student_id == student_id)
        )).rowcount
        await self.db.execute(update(Booking).where(Booking.student_id == student_id).values(student_id=None))
        await self.db.execute(update(User).where(User.student_record_id == student_id).values(student_record_id=None))
        await self.db.delete(student)
        await self.db.flush()
        await recompute_projects(self.db, purged["project_ids"], self.clock)
        await self.storage.remove(purged["files"])

        logger.log_domain_event(
            "Hierarchy", "student_deleted", student_id=student_id,
            attendance_deleted=attendance_deleted, submissions_deleted=purged["deleted"],
        )
        return {"attendance_deleted": attendance_deleted, "submissions_deleted": purged["deleted"]}

    async def get_student_detail(self, student_id: str) -> Dict[str, Any]:
        student = await self.get_student(student_id)
        department = await self.db.get(Department, student.department_id)
        course = await self.db.get(Course, student.course_id)
        batch = await self.db.get(Batch, student.batch_id)
        return to_dict(
            StudentResponse, student,
            department_name=department.name.value if department else None,
            course_name=course.name if course else None,
            batch_name=batch.name if batch else None,
        )

    async def get_student_stats(self, student_id: str) -> Dict[str, Any]:
        student = await self.get_student(student_id)
        statuses = (await self.db.execute(
            select(Attendance.status).where(Attendance.student_id == student_id)
        )).scalars().all()
        counts = status_counts(statuses)
        total = len(statuses)
        return {
            "student": to_dict(StudentResponse, student),
            "attendance": {
                "total": total,
                "present": counts["present"],
                "absent": counts["absent"],
                "late": counts["late"],
                "rate": percentage(counts["present"], total, 1),
            },
            "fees": {
                "total_fees": student.total_fees,
                "fees_paid": student.fees_paid,
                "pending_fees": max(0, student.total_fees - student.fees_paid),
                "payment_status": student.payment_status,
            },
        }

    async def get_overview(self, principal: Principal) -> Dict[str, Any]:
        query = (
            select(Student, Department.name, Course.name, Batch.name)
            .join(Department, Department.id == Student.department_id)
            .join(Course, Course.id == Student.course_id)
            .join(Batch, Batch.id == Student.batch_id)
            .order_by(Student.name)
        )
        if not principal.is_admin:
            query = query.where(Batch.created_by_id == principal.user_id)
        rows = (await self.db.execute(query)).all()

        attendance = (await self.db.execute(
            select(Attendance.student_id, Attendance.status)
            .where(Attendance.student_id.in_([s.id for s, _, _, _ in rows]))
        )).all() if rows else []
        per_student: Dict[str, List] = {}
        for sid, status in attendance:
            per_student.setdefault(sid, []).append(status)

        students = []
        for student, dept_name, course_name, batch_name in rows:
            statuses = per_student.get(student.id, [])
            counts = status_counts(statuses)
            students.append(to_dict(
                StudentResponse, student,
                department_name=dept_name.value if dept_name else None,
                course_name=course_name,
                batch_name=batch_name,
                attendance_rate=percentage(counts["present"], len(statuses), 1),
            ))
        return {"students": students, "total": len(students)}
