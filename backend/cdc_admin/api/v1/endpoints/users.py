from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.modules.auth.dependencies import get_principal, get_current_admin
from cdc_admin.schemas.user import UserLogin, Token, UserResponse, TeacherCreate, TeacherUpdate
from cdc_admin.services.authorization import Principal
from cdc_admin.services.user_service import UserService, InvalidCredentials

router = APIRouter()


@router.post("/login", response_model=Token)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Exchange email and password for an access token"""
    try:
        return await UserService(db, clock).login(credentials.email, credentials.password)
    except InvalidCredentials as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).get_profile(principal)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def create_teacher(
    data: TeacherCreate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a teacher account (admin only)"""
    return await UserService(db).create_teacher(principal, data)


@router.get("/teachers")
async def list_teachers(
    active: Optional[bool] = Query(None),
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).list_teachers(principal, active)


@router.put("/teachers/{teacher_id}", response_model=UserResponse)
async def update_teacher(
    teacher_id: str,
    data: TeacherUpdate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).update_teacher(principal, teacher_id, data)


@router.delete("/teachers/{teacher_id}")
async def deactivate_teacher(
    teacher_id: str,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).deactivate_teacher(principal, teacher_id)
