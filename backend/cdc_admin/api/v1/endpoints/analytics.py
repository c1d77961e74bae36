from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_current_admin
from cdc_admin.services.authorization import Principal
from cdc_admin.services.dashboard_service import DashboardService

router = APIRouter()


@router.get("/dashboard-summary")
async def dashboard_summary(
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Institute-wide counts, today's activity and the 7-day trend"""
    return await DashboardService(db, clock).dashboard_summary(principal)


@router.get("/attendance")
async def attendance_analytics(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    department: Optional[str] = Query(None, description="Department ID"),
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await DashboardService(db, clock).attendance_analytics(
        principal, start_date=start_date, end_date=end_date, department_id=department
    )
