# Pydantic schemas
from cdc_admin.schemas.user import UserLogin, UserResponse, Token, TeacherCreate, TeacherUpdate
from cdc_admin.schemas.department import DepartmentCreate, DepartmentUpdate, DepartmentResponse
from cdc_admin.schemas.course import CourseCreate, CourseUpdate, CourseResponse
from cdc_admin.schemas.batch import BatchCreate, BatchUpdate, BatchResponse
from cdc_admin.schemas.student import StudentCreate, StudentUpdate, StudentBulkCreate, StudentResponse
from cdc_admin.schemas.attendance import (
    AttendanceMark,
    AttendanceBulkRecord,
    AttendanceBulkMark,
    AttendanceResponse,
)
from cdc_admin.schemas.lab import (
    PCCreate,
    PCUpdate,
    PCResponse,
    BookingCreate,
    BookingUpdate,
    BookingResponse,
    ApplyPreviousRequest,
    ClearBulkRequest,
)
from cdc_admin.schemas.project import (
    ProjectCreate,
    ProjectUpdate,
    ProjectResponse,
    SubmissionCreate,
    GradeRequest,
    SubmissionStatusUpdate,
    CompleteRequest,
)
from cdc_admin.schemas.notification import NotificationCreate, NotificationResponse

__all__ = [
    "UserLogin", "UserResponse", "Token", "TeacherCreate", "TeacherUpdate",
    "DepartmentCreate", "DepartmentUpdate", "DepartmentResponse",
    "CourseCreate", "CourseUpdate", "CourseResponse",
    "BatchCreate", "BatchUpdate", "BatchResponse",
    "StudentCreate", "StudentUpdate", "StudentBulkCreate", "StudentResponse",
    "AttendanceMark", "AttendanceBulkRecord", "AttendanceBulkMark", "AttendanceResponse",
    "PCCreate", "PCUpdate", "PCResponse", "BookingCreate", "BookingUpdate", "BookingResponse",
    "ApplyPreviousRequest", "ClearBulkRequest",
    "ProjectCreate", "ProjectUpdate", "ProjectResponse", "SubmissionCreate", "GradeRequest",
    "SubmissionStatusUpdate", "CompleteRequest",
    "NotificationCreate", "NotificationResponse",
]
