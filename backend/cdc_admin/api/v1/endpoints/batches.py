from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_current_teacher
from cdc_admin.schemas.batch import BatchCreate, BatchUpdate, BatchResponse
from cdc_admin.services.authorization import Principal
from cdc_admin.services.batch_service import BatchService
from cdc_admin.services.submission_storage import SubmissionStorage, get_submission_storage

router = APIRouter()


@router.get("")
async def list_batches(
    course: Optional[str] = Query(None, description="Course ID"),
    is_finished: Optional[bool] = Query(None, alias="isFinished"),
    is_archived: Optional[bool] = Query(None, alias="isArchived"),
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Teachers see their own batches, admins see all"""
    return await BatchService(db, clock).list_batches(
        principal, course_id=course, is_finished=is_finished, is_archived=is_archived
    )


@router.get("/overview")
async def batch_overview(
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).get_overview(principal)


@router.get("/course/{course_id}")
async def batches_by_course(
    course_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).list_by_course(principal, course_id)


@router.get("/department/{department_id}")
async def batches_by_department(
    department_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).list_by_department(principal, department_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BatchResponse)
async def create_batch(
    data: BatchCreate,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).create_batch(principal, data)


@router.get("/{batch_id}")
async def get_batch(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).get_batch_detail(batch_id)


@router.get("/{batch_id}/students")
async def batch_students(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).list_students(batch_id)


@router.get("/{batch_id}/stats")
async def batch_stats(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).get_batch_stats(batch_id)


@router.put("/{batch_id}/toggle-finished", response_model=BatchResponse)
async def toggle_finished(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Flip the finished flag; finishing stamps the end date"""
    return await BatchService(db, clock).toggle_finished(principal, batch_id)


@router.put("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: str,
    data: BatchUpdate,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await BatchService(db, clock).update_batch(principal, batch_id, data)


@router.delete("/{batch_id}")
async def delete_batch(
    batch_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    storage: SubmissionStorage = Depends(get_submission_storage)
):
    """Delete the batch with its students, attendance, projects and submissions"""
    removed = await BatchService(db, clock, storage).delete_batch(principal, batch_id)
    return {"message": "Batch deleted successfully", **removed}
