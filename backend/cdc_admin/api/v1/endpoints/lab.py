"""
Lab Endpoints

PC inventory and the booking grid. Any signed-in user may book; PC
inventory changes are admin-only.
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.models.batch import TimeSlot
from cdc_admin.models.lab import PCStatus, BookingStatus
from cdc_admin.modules.auth.dependencies import get_principal, get_current_admin, get_current_teacher
from cdc_admin.schemas.lab import (
    LabRow,
    PCCreate,
    PCUpdate,
    PCResponse,
    BookingCreate,
    BookingUpdate,
    ApplyPreviousRequest,
    ClearBulkRequest,
)
from cdc_admin.services.authorization import Principal
from cdc_admin.services.lab_service import LabService

router = APIRouter()


# ==================== Lab ====================

@router.get("/info")
async def lab_info(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return LabService(db, clock).lab_info()


@router.get("/stats/overview")
async def lab_stats(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).stats_overview()


@router.get("/availability/{day}")
async def availability(
    day: date,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).availability(day)


# ==================== PCs ====================

@router.get("/pcs")
async def list_pcs(
    row: Optional[LabRow] = Query(None),
    pc_status: Optional[PCStatus] = Query(None, alias="status"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).list_pcs(row=row, status=pc_status)


@router.get("/pcs/by-row")
async def pcs_by_row(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).pcs_by_row()


@router.post("/pcs/create-sample", status_code=status.HTTP_201_CREATED)
async def create_sample_pcs(
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Fill the lab grid with PC{row}{position} machines, skipping numbers that exist"""
    return await LabService(db, clock).create_sample_pcs(principal)


@router.delete("/pcs/clear-all")
async def clear_all_pcs(
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).clear_all_pcs(principal)


@router.post("/pcs", status_code=status.HTTP_201_CREATED, response_model=PCResponse)
async def create_pc(
    data: PCCreate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).create_pc(principal, data)


@router.get("/pcs/{pc_id}", response_model=PCResponse)
async def get_pc(
    pc_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).get_pc(pc_id)


@router.put("/pcs/{pc_id}", response_model=PCResponse)
async def update_pc(
    pc_id: str,
    data: PCUpdate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).update_pc(principal, pc_id, data)


@router.delete("/pcs/{pc_id}")
async def delete_pc(
    pc_id: str,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    removed = await LabService(db, clock).delete_pc(principal, pc_id)
    return {"message": "PC deleted successfully", "bookings_deleted": removed}


# ==================== Bookings ====================

@router.get("/bookings")
async def list_bookings(
    day: Optional[date] = Query(None, alias="date"),
    time_slot: Optional[TimeSlot] = Query(None, alias="timeSlot"),
    pc: Optional[str] = Query(None),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).list_bookings(
        day=day, time_slot=time_slot, pc_id=pc, status=booking_status
    )


@router.get("/bookings/previous")
async def previous_day_bookings(
    day: Optional[date] = Query(None, alias="date"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).previous_day_bookings(day)


@router.get("/bookings/with-attendance")
async def bookings_with_attendance(
    day: date = Query(..., alias="date"),
    time_slot: Optional[TimeSlot] = Query(None, alias="timeSlot"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).bookings_with_attendance(day, time_slot)


@router.post("/bookings/apply-previous")
async def apply_previous(
    data: ApplyPreviousRequest,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Copy a day's bookings onto another day; taken slots are skipped"""
    return await LabService(db, clock).apply_previous(principal, data.target_date, data.source_date)


@router.delete("/bookings/clear-bulk")
async def clear_bulk(
    data: ClearBulkRequest,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).clear_bulk(principal, data.date, data.time_slots, data.pc_ids)


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).create_booking(principal, data)


@router.get("/bookings/{booking_id}")
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).get_booking_detail(booking_id)


@router.put("/bookings/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).update_booking(principal, booking_id, data)


@router.delete("/bookings/{booking_id}")
async def delete_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_teacher),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await LabService(db, clock).delete_booking(principal, booking_id)
