from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_current_teacher
from cdc_admin.schemas.student import StudentCreate, StudentUpdate, StudentBulkCreate, StudentResponse
from cdc_admin.services.authorization import Principal
from cdc_admin.services.student_service import StudentService
from cdc_admin.services.submission_storage import SubmissionStorage, get_submission_storage

router = APIRouter()


@router.get("")
async def list_students(
    department: Optional[str] = Query(None),
    course: Optional[str] = Query(None),
    batch: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).list_students(
        principal,
        department_id=department,
        course_id=course,
        batch_id=batch,
        search=search,
        is_active=is_active,
    )


@router.get("/overview")
async def student_overview(
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).get_overview(principal)


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_students(
    data: StudentBulkCreate,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Create many students; each row succeeds or fails on its own"""
    return await StudentService(db, clock).bulk_create(principal, data.students)


@router.get("/department/{department_id}")
async def students_by_department(
    department_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).list_by_department(department_id)


@router.get("/batch/{batch_id}/next-roll-number")
async def next_roll_number(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).next_roll_number_for_batch(batch_id)


@router.get("/batch/{batch_id}")
async def students_by_batch(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).list_by_batch(batch_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=StudentResponse)
async def create_student(
    data: StudentCreate,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).create_student(principal, data)


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).get_student_detail(student_id)


@router.get("/{student_id}/stats")
async def get_student_stats(
    student_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).get_student_stats(student_id)


@router.put("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: str,
    data: StudentUpdate,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await StudentService(db, clock).update_student(principal, student_id, data)


@router.delete("/{student_id}")
async def delete_student(
    student_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    storage: SubmissionStorage = Depends(get_submission_storage)
):
    removed = await StudentService(db, clock, storage).delete_student(principal, student_id)
    return {"message": "Student deleted successfully", **removed}
