from fastapi import APIRouter
from cdc_admin.api.v1.endpoints import (
    users,
    departments,
    courses,
    batches,
    students,
    attendance,
    lab,
    projects,
    notifications,
    analytics,
)

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(departments.router, prefix="/departments", tags=["Departments"])
api_router.include_router(courses.router, prefix="/courses", tags=["Courses"])
api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(students.router, prefix="/students", tags=["Students"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(lab.router, prefix="/lab", tags=["Lab"])
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
