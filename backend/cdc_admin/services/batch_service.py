"""
Batch Service
Batches are owned by the teacher who created them
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.exceptions import CapacityError, ResourceNotFoundError, ValidationError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.attendance import Attendance
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.department import Department
from cdc_admin.models.lab import Booking
from cdc_admin.models.project import ProjectSubmission
from cdc_admin.models.student import Student
from cdc_admin.models.user import User
from cdc_admin.schemas.batch import BatchCreate, BatchUpdate, BatchResponse
from cdc_admin.schemas.student import StudentResponse
from cdc_admin.services.attendance_service import corrected_batch_stats
from cdc_admin.services.authorization import (
    Principal, require, require_found, require_staff, can_write_batch,
)
from cdc_admin.services.project_analytics_service import purge_batch_projects, purge_submissions, recompute_projects
from cdc_admin.services.submission_storage import SubmissionStorage, get_submission_storage
from cdc_admin.utils.rounding import percentage
from cdc_admin.utils.serialization import to_dict

ATTENDANCE_WINDOW_DAYS = 30


def apply_finished_flag(batch: Batch, finished: bool, now) -> None:
    """Finishing a batch stamps end_date if it has none; reopening clears it"""
    if finished and batch.end_date is None:
        if now <= batch.start_date:
            raise ValidationError("Cannot finish a batch before its start date", field="start_date")
        batch.end_date = now
    elif not finished:
        batch.end_date = None
    batch.is_finished = finished


class BatchService:
    """Batch CRUD, finish toggle, stats and overview"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None, storage: Optional[SubmissionStorage] = None):
        self.db = db
        self.clock = clock or get_clock()
        self.storage = storage or get_submission_storage()

    async def get_batch(self, batch_id: str) -> Batch:
        batch = await self.db.get(Batch, batch_id)
        if not batch:
            raise ResourceNotFoundError("Batch", batch_id)
        return batch

    async def _writable_batch(self, principal: Principal, batch_id: str) -> Batch:
        batch = require_found(principal, await self.db.get(Batch, batch_id), "Batch", batch_id)
        require(can_write_batch(principal, batch), "Not authorized to modify this batch")
        return batch

    async def _student_count(self, batch_id: str) -> int:
        return (await self.db.execute(
            select(func.count(Student.id)).where(Student.batch_id == batch_id)
        )).scalar() or 0

    async def create_batch(self, principal: Principal, data: BatchCreate) -> Batch:
        require_staff(principal)
        course = await self.db.get(Course, data.course_id)
        if not course:
            raise ResourceNotFoundError("Course", data.course_id)

        fields = data.model_dump()
        if fields.get("max_students") is None:
            fields["max_students"] = course.max_students_per_batch
        fields["start_date"] = self.clock.to_local_datetime(data.start_date)
        if data.end_date:
            fields["end_date"] = self.clock.to_local_datetime(data.end_date)

        batch = Batch(**fields, created_by_id=principal.user_id, **self.clock.timestamps())
        self.db.add(batch)
        await self.db.flush()

        logger.log_domain_event("Hierarchy", "batch_created", batch_id=batch.id, course_id=course.id)
        return batch

    async def _with_counts(self, batches: List[Batch]) -> List[Dict[str, Any]]:
        if not batches:
            return []
        counts = dict((await self.db.execute(
            select(Student.batch_id, func.count(Student.id))
            .where(Student.batch_id.in_([b.id for b in batches]))
            .group_by(Student.batch_id)
        )).all())

        since = self.clock.today() - timedelta(days=ATTENDANCE_WINDOW_DAYS)
        rows = []
        for batch in batches:
            stats = await corrected_batch_stats(self.db, batch.id, start=since)
            rows.append(to_dict(
                BatchResponse, batch,
                student_count=counts.get(batch.id, 0),
                attendance_percentage=stats["present_percentage"],
            ))
        return rows

    async def list_batches(
        self,
        principal: Principal,
        course_id: Optional[str] = None,
        is_finished: Optional[bool] = None,
        is_archived: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        query = select(Batch)
        if not principal.is_admin:
            query = query.where(Batch.created_by_id == principal.user_id)
        if course_id:
            query = query.where(Batch.course_id == course_id)
        if is_finished is not None:
            query = query.where(Batch.is_finished == is_finished)
        if is_archived is not None:
            query = query.where(Batch.is_archived == is_archived)

        batches = (await self.db.execute(query.order_by(Batch.created_at.desc()))).scalars().all()
        return await self._with_counts(list(batches))

    async def get_batch_detail(self, batch_id: str) -> Dict[str, Any]:
        batch = await self.get_batch(batch_id)
        course = await self.db.get(Course, batch.course_id)
        return to_dict(
            BatchResponse, batch,
            course_name=course.name if course else None,
            student_count=await self._student_count(batch_id),
        )

    async def update_batch(self, principal: Principal, batch_id: str, data: BatchUpdate) -> Batch:
        batch = await self._writable_batch(principal, batch_id)
        changes = data.model_dump(exclude_unset=True)
        for field in ("start_date", "end_date"):
            if changes.get(field):
                changes[field] = self.clock.to_local_datetime(changes[field])

        start = changes.get("start_date") or batch.start_date
        end = changes["end_date"] if "end_date" in changes else batch.end_date
        if end is not None and end <= start:
            raise ValidationError("End date must be after start date", field="end_date")

        if changes.get("max_students") is not None:
            current = await self._student_count(batch_id)
            if changes["max_students"] < current:
                raise CapacityError(
                    f"Cannot reduce capacity below current student count ({current})",
                    student_count=current,
                )

        for field, value in changes.items():
            if value is None and field in ("name", "academic_year", "section", "timing", "start_date", "max_students"):
                continue
            setattr(batch, field, value)
        await self.db.flush()

        logger.log_domain_event("Hierarchy", "batch_updated", batch_id=batch_id)
        return batch

    async def delete_batch(self, principal: Principal, batch_id: str) -> Dict[str, int]:
        """Delete a batch with its students, their attendance and the batch's projects"""
        batch = await self._writable_batch(principal, batch_id)

        student_ids = select(Student.id).where(Student.batch_id == batch_id)
        purged = await purge_batch_projects(self.db, batch_id)
        # Submissions students made while in an earlier batch
        moved = await purge_submissions(self.db, ProjectSubmission.student_id.in_(student_ids))
        attendance_deleted = (await self.db.execute(
            delete(Attendance).where(Attendance.batch_id == batch_id)
        )).rowcount
        attendance_deleted += (await self.db.execute(
            delete(Attendance).where(Attendance.student_id.in_(student_ids))
        )).rowcount
        await self.db.execute(
            update(Booking).where(Booking.batch_id == batch_id).values(batch_id=None)
        )
        await self.db.execute(
            update(Booking).where(Booking.student_id.in_(student_ids)).values(student_id=None)
        )
        await self.db.execute(
            update(User).where(User.student_record_id.in_(student_ids)).values(student_record_id=None)
        )
        students_deleted = (await self.db.execute(
            delete(Student).where(Student.batch_id == batch_id)
        )).rowcount

        await self.db.delete(batch)
        await self.db.flush()
        await recompute_projects(self.db, purged["project_ids"] | moved["project_ids"], self.clock)
        await self.storage.remove(purged["files"] + moved["files"])

        counts = {
            "students_deleted": students_deleted,
            "attendance_deleted": attendance_deleted,
            "projects_deleted": purged["projects_deleted"],
            "submissions_deleted": purged["deleted"] + moved["deleted"],
        }
        logger.log_domain_event("Hierarchy", "batch_deleted", batch_id=batch_id, **counts)
        return counts

    async def toggle_finished(self, principal: Principal, batch_id: str) -> Batch:
        batch = await self._writable_batch(principal, batch_id)
        apply_finished_flag(batch, not batch.is_finished, self.clock.now())
        await self.db.flush()

        logger.log_domain_event("Hierarchy", "batch_finished_toggled", batch_id=batch_id, is_finished=batch.is_finished)
        return batch

    async def list_students(self, batch_id: str) -> List[Dict[str, Any]]:
        await self.get_batch(batch_id)
        students = (await self.db.execute(
            select(Student).where(Student.batch_id == batch_id).order_by(Student.roll_no, Student.name)
        )).scalars().all()
        return [to_dict(StudentResponse, s) for s in students]

    async def list_by_course(self, principal: Principal, course_id: str) -> List[Dict[str, Any]]:
        if not await self.db.get(Course, course_id):
            raise ResourceNotFoundError("Course", course_id)
        return await self.list_batches(principal, course_id=course_id)

    async def list_by_department(self, principal: Principal, department_id: str) -> List[Dict[str, Any]]:
        if not await self.db.get(Department, department_id):
            raise ResourceNotFoundError("Department", department_id)
        query = (
            select(Batch).join(Course, Course.id == Batch.course_id)
            .where(Course.department_id == department_id)
        )
        if not principal.is_admin:
            query = query.where(Batch.created_by_id == principal.user_id)
        batches = (await self.db.execute(query.order_by(Batch.created_at.desc()))).scalars().all()
        return await self._with_counts(list(batches))

    async def get_batch_stats(self, batch_id: str) -> Dict[str, Any]:
        batch = await self.get_batch(batch_id)
        total, active = (await self.db.execute(
            select(
                func.count(Student.id),
                func.count(Student.id).filter(Student.is_active.is_(True)),
            ).where(Student.batch_id == batch_id)
        )).one()
        attendance = await corrected_batch_stats(self.db, batch_id)

        return {
            "batch": to_dict(BatchResponse, batch),
            "students": {
                "total": total,
                "active": active,
                "capacity": batch.max_students,
                "utilization": percentage(total, batch.max_students, 1),
            },
            "attendance": {
                "present": attendance["present_count"],
                "absent": attendance["absent_count"],
                "late": attendance["late_count"],
                "total": attendance["total_records"],
                "rate": attendance["present_percentage"],
            },
        }

    async def get_overview(self, principal: Principal) -> Dict[str, Any]:
        student_count = (
            select(func.count(Student.id)).where(Student.batch_id == Batch.id)
            .correlate(Batch).scalar_subquery()
        )
        query = (
            select(Batch, Course.name, Department.name, User.name, student_count)
            .join(Course, Course.id == Batch.course_id)
            .join(Department, Department.id == Course.department_id)
            .outerjoin(User, User.id == Batch.created_by_id)
            .order_by(Batch.created_at.desc())
        )
        if not principal.is_admin:
            query = query.where(Batch.created_by_id == principal.user_id)

        result = await self.db.execute(query)
        return {
            "batches": [
                to_dict(
                    BatchResponse, batch,
                    student_count=students or 0,
                    course_name=course_name,
                    department_name=dept_name.value if dept_name else None,
                    teacher_name=teacher_name,
                )
                for batch, course_name, dept_name, teacher_name, students in result.all()
            ]
        }
