from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.models.course import CourseLevel, CourseCategory
from cdc_admin.modules.auth.dependencies import get_principal, get_current_admin
from cdc_admin.schemas.course import CourseCreate, CourseUpdate, CourseResponse
from cdc_admin.services.authorization import Principal
from cdc_admin.services.course_service import CourseService
from cdc_admin.utils.pagination import parse_limit

router = APIRouter()


@router.get("")
async def list_courses(
    department: Optional[str] = Query(None, description="Department ID"),
    active: Optional[bool] = Query(None),
    level: Optional[CourseLevel] = Query(None),
    category: Optional[CourseCategory] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: Optional[str] = Query(None, description="Page size; 0 or 'all' returns everything"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    """List courses with filtering, sorting and pagination"""
    return await CourseService(db).list_courses(
        department_id=department,
        active=active,
        level=level,
        category=category,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=parse_limit(limit),
    )


@router.get("/overview")
async def course_overview(
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService(db).get_overview(principal)


@router.get("/department/{department_id}")
async def courses_by_department(
    department_id: str,
    active: Optional[bool] = Query(True),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService(db).list_by_department(department_id, active)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CourseResponse)
async def create_course(
    data: CourseCreate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return await CourseService(db, clock).create_course(principal, data)


@router.get("/{course_id}")
async def get_course(
    course_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService(db).get_course_detail(course_id)


@router.get("/{course_id}/stats")
async def get_course_stats(
    course_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService(db).get_course_stats(course_id)


@router.put("/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: str,
    data: CourseUpdate,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService(db).update_course(principal, course_id, data)


@router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    principal: Principal = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    await CourseService(db).delete_course(principal, course_id)
    return {"message": "Course deleted successfully"}
