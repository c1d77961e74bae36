"""
Project Endpoints

Final projects for finished batches, their submissions, grading,
completion and analytics.
"""

from fastapi import APIRouter, Depends, Request, status, Query
from fastapi.responses import FileResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.core.exceptions import ValidationError
from cdc_admin.models.project import ProjectStatus, SubmissionStatus
from cdc_admin.modules.auth.dependencies import get_principal, get_current_teacher
from cdc_admin.schemas.project import (
    ProjectCreate,
    ProjectUpdate,
    SubmissionCreate,
    GradeRequest,
    SubmissionStatusUpdate,
    CompleteRequest,
)
from cdc_admin.services.authorization import Principal
from cdc_admin.services.project_analytics_service import ProjectAnalyticsService
from cdc_admin.services.project_service import ProjectService
from cdc_admin.services.submission_storage import SubmissionStorage, get_submission_storage

router = APIRouter()


def _service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    storage: SubmissionStorage = Depends(get_submission_storage),
) -> ProjectService:
    return ProjectService(db, clock, storage)


def _analytics(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectAnalyticsService:
    return ProjectAnalyticsService(db, clock)


async def _read_submission(request: Request):
    """Accept multipart form data with files[] or a plain JSON body"""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            fields = {
                key: value for key, value in form.items()
                if key not in ("files", "files[]") and isinstance(value, str)
            }
            uploads = [
                f for f in form.getlist("files") + form.getlist("files[]")
                if not isinstance(f, str) and f.filename
            ]
            return SubmissionCreate.model_validate(fields), uploads
        body = await request.body()
        return (SubmissionCreate.model_validate_json(body) if body else SubmissionCreate()), []
    except PydanticValidationError as e:
        message = "; ".join(str(err["msg"]).removeprefix("Value error, ") for err in e.errors())
        raise ValidationError(message)


# ==================== Projects ====================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    """Assign a project to a finished batch"""
    return await service.create_project(principal, data)


@router.get("")
async def list_projects(
    project_status: Optional[ProjectStatus] = Query(None, alias="status"),
    batch: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    return await service.list_projects(principal, status=project_status, batch_id=batch)


@router.get("/finished-batches")
async def finished_batches(
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.finished_batches(principal)


@router.get("/dashboard")
async def project_dashboard(
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.dashboard(principal)


@router.get("/my-projects")
async def my_projects(
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    return await service.my_projects(principal)


@router.get("/student/{student_id}")
async def student_projects(
    student_id: str,
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    return await service.student_projects(principal, student_id)


# ==================== Analytics ====================

@router.get("/analytics/batch-comparison")
async def batch_comparison(
    principal: Principal = Depends(get_current_teacher),
    analytics: ProjectAnalyticsService = Depends(_analytics)
):
    return await analytics.batch_comparison(principal)


@router.get("/analytics/student-performance/{student_id}")
async def student_performance(
    student_id: str,
    principal: Principal = Depends(get_principal),
    analytics: ProjectAnalyticsService = Depends(_analytics)
):
    return await analytics.student_performance(principal, student_id)


# ==================== Submissions ====================

@router.get("/submissions/all")
async def all_submissions(
    submission_status: Optional[SubmissionStatus] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.all_submissions(principal, status=submission_status)


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    return await service.get_submission(principal, submission_id)


@router.put("/submissions/{submission_id}/status")
async def update_submission_status(
    submission_id: str,
    data: SubmissionStatusUpdate,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.update_status(principal, submission_id, data.status, data.feedback)


@router.put("/submissions/{submission_id}/grade")
async def grade_submission(
    submission_id: str,
    data: GradeRequest,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    """Grade a submission; final score, ranks and analytics are recomputed"""
    return await service.grade_submission(principal, submission_id, data)


@router.delete("/submissions/{submission_id}")
async def delete_submission(
    submission_id: str,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.delete_submission(principal, submission_id)


@router.get("/submissions/{submission_id}/download/{file_name}")
async def download_submission_file(
    submission_id: str,
    file_name: str,
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    path, record = await service.resolve_download(principal, submission_id, file_name)
    return FileResponse(
        path,
        filename=record.get("original_name") or file_name,
        media_type=record.get("type") or "application/octet-stream",
    )


# ==================== Single project ====================

@router.get("/{project_id}")
async def get_project(
    project_id: str,
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    return await service.get_project(principal, project_id)


@router.put("/{project_id}")
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.update_project(principal, project_id, data)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.delete_project(principal, project_id)


@router.post("/{project_id}/submit", status_code=status.HTTP_201_CREATED)
async def submit_project(
    project_id: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    service: ProjectService = Depends(_service)
):
    """Submit work as multipart (files[] plus fields) or as JSON without files"""
    data, uploads = await _read_submission(request)
    return await service.submit(principal, project_id, data, uploads)


@router.get("/{project_id}/submissions")
async def project_submissions(
    project_id: str,
    submission_status: Optional[SubmissionStatus] = Query(None, alias="status"),
    sort_by: str = Query("submittedDate", alias="sortBy"),
    order: str = Query("desc"),
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.list_submissions(
        principal, project_id, status=submission_status, sort_by=sort_by, order=order
    )


@router.get("/{project_id}/completion-status")
async def completion_status(
    project_id: str,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.completion_status(principal, project_id)


@router.put("/{project_id}/complete")
async def complete_project(
    project_id: str,
    data: Optional[CompleteRequest] = None,
    principal: Principal = Depends(get_current_teacher),
    service: ProjectService = Depends(_service)
):
    return await service.complete_project(principal, project_id, data or CompleteRequest())


@router.get("/{project_id}/analytics")
async def project_analytics(
    project_id: str,
    principal: Principal = Depends(get_current_teacher),
    analytics: ProjectAnalyticsService = Depends(_analytics)
):
    return await analytics.get_project_analytics(principal, project_id)
