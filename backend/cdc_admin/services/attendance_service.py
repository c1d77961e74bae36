"""
Attendance Service

One record per (student, local day). Marking is an upsert: a second mark for
the same day updates the existing row in place. Rates are "corrected": a
student with no record on a day that was marked for the batch counts as
absent, so the denominator is students x distinct marked days.
"""

from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.exceptions import ResourceNotFoundError, ValidationError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.attendance import Attendance, AttendanceStatus
from cdc_admin.models.batch import Batch
from cdc_admin.models.student import Student
from cdc_admin.schemas.attendance import AttendanceMark, AttendanceBulkMark, AttendanceResponse
from cdc_admin.services.authorization import Principal, require, require_found, can_write_attendance
from cdc_admin.utils.rounding import round_half_up, percentage
from cdc_admin.utils.serialization import to_dict


def status_counts(statuses: Iterable[AttendanceStatus]) -> Dict[str, int]:
    counts = {"present": 0, "absent": 0, "late": 0}
    for status in statuses:
        counts[AttendanceStatus(status).value] += 1
    return counts


async def corrected_batch_stats(
    db: AsyncSession,
    batch_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, Any]:
    """Counts and corrected percentages for one batch over an optional day range"""
    query = select(Attendance.date, Attendance.status).where(Attendance.batch_id == batch_id)
    if start:
        query = query.where(Attendance.date >= start)
    if end:
        query = query.where(Attendance.date <= end)
    rows = (await db.execute(query)).all()

    counts = status_counts(status for _, status in rows)
    unique_dates = {day for day, _ in rows}
    student_count = (await db.execute(
        select(func.count(Student.id)).where(Student.batch_id == batch_id)
    )).scalar() or 0
    expected_total = student_count * len(unique_dates)

    return {
        "total_records": len(rows),
        "present_count": counts["present"],
        "absent_count": counts["absent"],
        "late_count": counts["late"],
        "present_percentage": percentage(counts["present"], expected_total, 1),
        "absent_percentage": percentage(counts["absent"], expected_total, 1),
        "late_percentage": percentage(counts["late"], expected_total, 1),
        "unique_dates_count": len(unique_dates),
        "student_count": student_count,
        "expected_total_records": expected_total,
        "average_attendance": percentage(counts["present"], expected_total, 1),
    }


class AttendanceService:
    """Attendance marking and reporting"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def _writable_batch(self, principal: Principal, batch_id: str) -> Batch:
        batch = require_found(principal, await self.db.get(Batch, batch_id), "Batch", batch_id)
        require(can_write_attendance(principal, batch), "Not authorized to mark attendance for this batch")
        return batch

    async def _find(self, student_id: str, day: date) -> Optional[Attendance]:
        result = await self.db.execute(
            select(Attendance).where(Attendance.student_id == student_id, Attendance.date == day)
        )
        return result.scalar_one_or_none()

    async def _upsert(
        self,
        student: Student,
        batch: Batch,
        day: date,
        status: AttendanceStatus,
        remarks: Optional[str],
        marked_by: str,
    ) -> Tuple[Attendance, bool]:
        if student.batch_id != batch.id:
            raise ValidationError("Student does not belong to this batch", field="student_id")

        existing = await self._find(student.id, day)
        if existing is None:
            record = Attendance(
                student_id=student.id,
                batch_id=batch.id,
                date=day,
                status=status,
                remarks=remarks,
                marked_by_id=marked_by,
                **self.clock.timestamps(),
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(record)
                    await self.db.flush()
                return record, True
            except IntegrityError:
                # A concurrent mark won the insert; fall through to update it
                existing = await self._find(student.id, day)
                if existing is None:
                    raise

        existing.batch_id = batch.id
        existing.status = status
        existing.remarks = remarks
        existing.marked_by_id = marked_by
        await self.db.flush()
        return existing, False

    async def mark_attendance(self, principal: Principal, data: AttendanceMark) -> Tuple[Dict[str, Any], bool]:
        """Mark one student for one day; returns the record and whether it was created"""
        batch = await self._writable_batch(principal, data.batch_id)
        student = await self.db.get(Student, data.student_id)
        if not student:
            raise ResourceNotFoundError("Student", data.student_id)

        day = self.clock.to_local_day(data.date)
        record, created = await self._upsert(student, batch, day, data.status, data.remarks, principal.user_id)

        logger.log_domain_event(
            "Attendance", "attendance_created" if created else "attendance_updated",
            student_id=student.id, batch_id=batch.id, day=day.isoformat(), status=record.status.value,
        )
        return to_dict(AttendanceResponse, record), created

    async def bulk_mark(self, principal: Principal, data: AttendanceBulkMark) -> Dict[str, Any]:
        """Upsert a day's marks for a batch; a failing row is reported and does not stop the rest"""
        batch = await self._writable_batch(principal, data.batch_id)
        day = self.clock.to_local_day(data.date)

        results: List[Dict[str, Any]] = []
        created = updated = failed = 0
        for entry in data.records:
            student = await self.db.get(Student, entry.student_id)
            if not student:
                failed += 1
                results.append({"student_id": entry.student_id, "error": "Student not found"})
                continue
            try:
                record, was_created = await self._upsert(
                    student, batch, day, entry.status, entry.remarks, principal.user_id
                )
            except ValidationError as e:
                failed += 1
                results.append({"student_id": entry.student_id, "error": e.message})
                continue

            if was_created:
                created += 1
            else:
                updated += 1
            results.append(to_dict(AttendanceResponse, record, created=was_created))

        logger.log_domain_event(
            "Attendance", "bulk_marked", batch_id=batch.id, day=day.isoformat(),
            created_count=created, updated_count=updated, failed_count=failed,
        )
        return {
            "attendance_results": results,
            "summary": {
                "attendance_records_processed": created + updated,
                "created": created,
                "updated": updated,
                "failed": failed,
            },
            "message": f"Attendance processed for {created + updated} students",
        }

    async def get_batch_attendance(self, batch_id: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """Every student of the batch with their record for the day, or None"""
        if not await self.db.get(Batch, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        day = day or self.clock.today()

        students = (await self.db.execute(
            select(Student).where(Student.batch_id == batch_id).order_by(Student.roll_no, Student.name)
        )).scalars().all()
        records = (await self.db.execute(
            select(Attendance).where(Attendance.batch_id == batch_id, Attendance.date == day)
        )).scalars().all()
        by_student = {r.student_id: r for r in records}

        return [
            {
                "student": {"id": s.id, "name": s.name, "roll_no": s.roll_no},
                "attendance": to_dict(AttendanceResponse, by_student[s.id]) if s.id in by_student else None,
            }
            for s in students
        ]

    async def get_student_history(
        self, student_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        if not await self.db.get(Student, student_id):
            raise ResourceNotFoundError("Student", student_id)
        query = select(Attendance).where(Attendance.student_id == student_id)
        if start:
            query = query.where(Attendance.date >= start)
        if end:
            query = query.where(Attendance.date <= end)
        records = (await self.db.execute(query.order_by(Attendance.date.desc()))).scalars().all()
        return [to_dict(AttendanceResponse, r) for r in records]

    async def get_batch_stats(
        self, batch_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> Dict[str, Any]:
        if not await self.db.get(Batch, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        return await corrected_batch_stats(self.db, batch_id, start, end)

    async def get_today_summary(self, principal: Principal) -> Dict[str, Any]:
        today = self.clock.today()
        batch_query = select(Batch.id)
        if not principal.is_admin:
            batch_query = batch_query.where(Batch.created_by_id == principal.user_id)
        batch_ids = list((await self.db.execute(batch_query)).scalars().all())

        summary = {
            "total_students": 0,
            "present_today": 0,
            "absent_today": 0,
            "late_today": 0,
            "attendance_rate": 0,
            "batches_with_attendance": 0,
            "total_batches": len(batch_ids),
            "date": today.isoformat(),
        }
        if not batch_ids:
            return summary

        records = (await self.db.execute(
            select(Attendance.batch_id, Attendance.status)
            .where(Attendance.batch_id.in_(batch_ids), Attendance.date == today)
        )).all()
        total_students = (await self.db.execute(
            select(func.count(Student.id)).where(Student.batch_id.in_(batch_ids))
        )).scalar() or 0

        counts = status_counts(status for _, status in records)
        summary.update(
            total_students=total_students,
            present_today=counts["present"],
            absent_today=counts["absent"],
            late_today=counts["late"],
            attendance_rate=percentage(counts["present"], total_students, 1),
            batches_with_attendance=len({batch_id for batch_id, _ in records}),
        )
        return summary

    async def _range_counts(self, start: date, end: date) -> Dict[str, Any]:
        rows = (await self.db.execute(
            select(Attendance.date, Attendance.student_id, Attendance.status)
            .where(Attendance.date >= start, Attendance.date <= end)
        )).all()
        counts = status_counts(status for _, _, status in rows)
        return {
            "total_records": len(rows),
            "present_count": counts["present"],
            "absent_count": counts["absent"],
            "late_count": counts["late"],
            "unique_dates_count": len({day for day, _, _ in rows}),
            "unique_students_count": len({student for _, student, _ in rows}),
        }

    async def get_overall_analytics(
        self, days: int = 30, start: Optional[date] = None, end: Optional[date] = None
    ) -> Dict[str, Any]:
        """Present rate for a period compared with the period of equal length before it"""
        end = end or self.clock.today()
        start = start or end - timedelta(days=max(1, days) - 1)
        if start > end:
            raise ValidationError("Start date must not be after end date", field="start_date")
        length = (end - start).days + 1

        current = await self._range_counts(start, end)
        previous = await self._range_counts(start - timedelta(days=length), start - timedelta(days=1))

        current_rate = percentage(current["present_count"], current["total_records"], 1)
        previous_rate = percentage(previous["present_count"], previous["total_records"], 1)
        total = current["total_records"]
        return {
            **current,
            "present_percentage": current_rate,
            "absent_percentage": percentage(current["absent_count"], total, 1),
            "late_percentage": percentage(current["late_count"], total, 1),
            "average_attendance": current_rate,
            "trend": round_half_up(current_rate - previous_rate, 1),
            "period_comparison": {
                "current": current_rate,
                "previous": previous_rate,
                "improvement": round_half_up(current_rate - previous_rate, 1),
            },
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }

    async def get_trends(self, days: int = 14) -> List[Dict[str, Any]]:
        """Daily present rate for the last ``days`` days, oldest first"""
        today = self.clock.today()
        start = today - timedelta(days=max(1, days) - 1)
        rows = (await self.db.execute(
            select(Attendance.date, Attendance.status).where(Attendance.date >= start, Attendance.date <= today)
        )).all()

        by_day: Dict[date, List[AttendanceStatus]] = {}
        for day, status in rows:
            by_day.setdefault(day, []).append(status)

        trends = []
        for offset in range((today - start).days + 1):
            day = start + timedelta(days=offset)
            counts = status_counts(by_day.get(day, []))
            total = sum(counts.values())
            trends.append({
                "date": day.isoformat(),
                "percentage": percentage(counts["present"], total, 1),
                "present": counts["present"],
                "total": total,
                "absent": counts["absent"],
                "late": counts["late"],
            })
        return trends
