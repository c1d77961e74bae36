from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_current_teacher, get_current_admin
from cdc_admin.schemas.attendance import AttendanceMark, AttendanceBulkMark
from cdc_admin.services.attendance_service import AttendanceService
from cdc_admin.services.authorization import Principal

router = APIRouter()


@router.post("")
async def mark_attendance(
    data: AttendanceMark,
    response: Response,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Mark one student for one day; 201 when new, 200 when the day was already marked"""
    attendance, created = await AttendanceService(db, clock).mark_attendance(principal, data)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {
        "attendance": attendance,
        "message": "Attendance marked successfully" if created else "Attendance updated successfully",
    }


@router.post("/bulk")
async def bulk_mark_attendance(
    data: AttendanceBulkMark,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).bulk_mark(principal, data)


@router.get("/batch/{batch_id}")
async def batch_attendance(
    batch_id: str,
    day: Optional[date] = Query(None, alias="date"),
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).get_batch_attendance(batch_id, day)


@router.get("/student/{student_id}")
async def student_attendance(
    student_id: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).get_student_history(student_id, start_date, end_date)


@router.get("/stats/batch/{batch_id}")
async def batch_attendance_stats(
    batch_id: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Percentages are of the expected record count, students x marked days"""
    return await AttendanceService(db, clock).get_batch_stats(batch_id, start_date, end_date)


@router.get("/today/summary")
async def today_summary(
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).get_today_summary(principal)


@router.get("/analytics/overall")
async def overall_analytics(
    days: int = Query(30, ge=1, le=365),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).get_overall_analytics(days, start_date, end_date)


@router.get("/analytics/trends")
async def attendance_trends(
    days: int = Query(14, ge=1, le=365),
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await AttendanceService(db, clock).get_trends(days)
