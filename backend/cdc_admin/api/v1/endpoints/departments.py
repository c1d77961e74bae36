from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_principal, get_current_admin
from cdc_admin.schemas.department import DepartmentCreate, DepartmentUpdate, DepartmentResponse
from cdc_admin.services.authorization import Principal
from cdc_admin.services.department_service import DepartmentService

router = APIRouter()


@router.get("")
async def list_departments(
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    """List departments with their course counts"""
    return await DepartmentService(db).list_departments(active=active, search=search)


@router.get("/overview")
async def department_overview(
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await DepartmentService(db).get_overview(principal)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DepartmentResponse)
async def create_department(
    data: DepartmentCreate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await DepartmentService(db, clock).create_department(principal, data)


@router.get("/{department_id}")
async def get_department(
    department_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await DepartmentService(db).get_department_detail(department_id)


@router.get("/{department_id}/stats")
async def get_department_stats(
    department_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await DepartmentService(db).get_department_stats(department_id)


@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: str,
    data: DepartmentUpdate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await DepartmentService(db).update_department(principal, department_id, data)


@router.delete("/{department_id}")
async def delete_department(
    department_id: str,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    await DepartmentService(db).delete_department(principal, department_id)
    return {"message": "Department deleted successfully"}
