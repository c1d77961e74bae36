"""
Dashboard Service

Read-only aggregation for the admin dashboard and attendance analytics.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.exceptions import ValidationError
from cdc_admin.models.attendance import Attendance, AttendanceStatus
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.department import Department, DepartmentName
from cdc_admin.models.lab import PC, PCStatus, Booking, BookingStatus
from cdc_admin.models.student import Student
from cdc_admin.models.user import User, UserRole
from cdc_admin.services.attendance_service import status_counts
from cdc_admin.services.authorization import Principal, require_admin
from cdc_admin.utils.rounding import percentage

TREND_DAYS = 7


def _count(model, *criteria):
    return select(func.count(model.id)).where(*criteria).scalar_subquery()


class DashboardService:
    """Dashboard summary and attendance analytics"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def _overview_counts(self) -> Dict[str, int]:
        # One round trip; an AsyncSession cannot run statements concurrently
        result = await self.db.execute(select(
            _count(Student).label("total_students"),
            _count(User, User.role == UserRole.TEACHER, User.is_active.is_(True)).label("total_teachers"),
            _count(Batch).label("total_batches"),
            _count(Course).label("total_courses"),
            _count(Department).label("total_departments"),
            _count(Batch, Batch.is_finished.is_(False), Batch.is_archived.is_(False)).label("active_batches"),
            _count(PC).label("total_pcs"),
            _count(PC, PC.status == PCStatus.ACTIVE).label("active_pcs"),
        ))
        return {key: value or 0 for key, value in result.one()._mapping.items()}

    async def _bookings_on(self, day: date) -> int:
        return (await self.db.execute(
            select(func.count(Booking.id)).where(Booking.date == day, Booking.status != BookingStatus.CANCELLED)
        )).scalar() or 0

    async def _trends(self, today: date) -> List[Dict[str, Any]]:
        start = today - timedelta(days=TREND_DAYS - 1)
        present_rows = await self.db.execute(
            select(Attendance.date, func.count(Attendance.id))
            .where(Attendance.date.between(start, today), Attendance.status == AttendanceStatus.PRESENT)
            .group_by(Attendance.date)
        )
        present = dict(present_rows.all())
        booking_rows = await self.db.execute(
            select(Booking.date, func.count(Booking.id))
            .where(Booking.date.between(start, today), Booking.status != BookingStatus.CANCELLED)
            .group_by(Booking.date)
        )
        bookings = dict(booking_rows.all())

        series = []
        for offset in range(TREND_DAYS):
            day = start + timedelta(days=offset)
            series.append({
                "date": day.isoformat(),
                "attendance": present.get(day, 0),
                "bookings": bookings.get(day, 0),
            })
        return series

    async def _department_rollups(self) -> List[Dict[str, Any]]:
        departments = (await self.db.execute(select(Department).order_by(Department.name))).scalars().all()
        rows = []
        for department in departments:
            counts = (await self.db.execute(select(
                _count(Course, Course.department_id == department.id).label("courses"),
                select(func.count(Batch.id))
                .join(Course, Course.id == Batch.course_id)
                .where(Course.department_id == department.id)
                .scalar_subquery().label("batches"),
                _count(Student, Student.department_id == department.id).label("students"),
            ))).one()
            rows.append({
                "id": department.id,
                "name": DepartmentName(department.name).value,
                "code": department.code,
                "courses": counts.courses or 0,
                "batches": counts.batches or 0,
                "students": counts.students or 0,
            })
        return rows

    async def dashboard_summary(self, principal: Principal) -> Dict[str, Any]:
        require_admin(principal)
        today = self.clock.today()
        overview = await self._overview_counts()

        statuses = (await self.db.execute(
            select(Attendance.status).where(Attendance.date == today)
        )).scalars().all()
        attendance_today = status_counts(statuses)
        attendance_today["total"] = len(statuses)
        attendance_today["rate"] = percentage(attendance_today["present"], len(statuses), 1)

        bookings_today = await self._bookings_on(today)
        active_classes = (await self.db.execute(
            select(func.count(func.distinct(Attendance.batch_id))).where(Attendance.date == today)
        )).scalar() or 0

        return {
            "overview": overview,
            "today": {
                "attendance": attendance_today,
                "lab": {
                    "bookings": bookings_today,
                    "active_pcs": overview["active_pcs"],
                    "utilization": percentage(bookings_today, overview["active_pcs"]),
                },
                "active_classes": active_classes,
            },
            "trends": await self._trends(today),
            "departments": await self._department_rollups(),
            "last_updated": self.clock.now(),
        }

    async def attendance_analytics(
        self,
        principal: Principal,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        department_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Attendance counts over a date range, optionally narrowed to one department's batches"""
        require_admin(principal)
        if start_date and end_date and end_date < start_date:
            raise ValidationError("End date must not be before start date", field="end_date")

        query = select(Attendance.status)
        if start_date:
            query = query.where(Attendance.date >= start_date)
        if end_date:
            query = query.where(Attendance.date <= end_date)
        if department_id:
            batch_ids = (
                select(Batch.id)
                .join(Course, Course.id == Batch.course_id)
                .where(Course.department_id == department_id)
            )
            query = query.where(Attendance.batch_id.in_(batch_ids))

        statuses = (await self.db.execute(query)).scalars().all()
        counts = status_counts(statuses)
        return {
            "analytics": {
                "total_records": len(statuses),
                "present_count": counts["present"],
                "absent_count": counts["absent"],
                "late_count": counts["late"],
                "present_percentage": percentage(counts["present"], len(statuses), 1),
            },
            "filters": {
                "start_date": start_date,
                "end_date": end_date,
                "department_id": department_id,
            },
        }
