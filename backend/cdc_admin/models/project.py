from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Float, Text, JSON, ForeignKey, Index, text
)
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class ProjectStatus(str, enum.Enum):
    DRAFT = "draft"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# Statuses that count as "the batch already has a project"
ACTIVE_PROJECT_STATUSES = (ProjectStatus.ASSIGNED, ProjectStatus.IN_PROGRESS, ProjectStatus.COMPLETED)


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    GRADED = "graded"
    RETURNED = "returned"
    RESUBMITTED = "resubmitted"


class SubmissionTiming(str, enum.Enum):
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"


class DeliverableType(str, enum.Enum):
    DOCUMENT = "document"
    CODE = "code"
    PRESENTATION = "presentation"
    VIDEO = "video"
    IMAGE = "image"
    ANY = "any"


class Project(Base):
    """Final project assigned to a finished batch"""
    __tablename__ = "projects"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=False, index=True)
    course_id = Column(GUID, ForeignKey("courses.id"), nullable=False)

    assigned_date = Column(DateTime, nullable=False)
    deadline_date = Column(DateTime, nullable=False)

    requirements = Column(JSON, default=list)  # [{"title", "description", "mandatory"}]
    deliverables = Column(JSON, default=list)  # [{"name", "file_type", "max_size_mb", "mandatory"}]
    resources = Column(JSON, default=list)  # [{"title", "url", "description"}]
    instructions = Column(Text, nullable=True)

    max_score = Column(Integer, default=100, nullable=False)
    weight_project_score = Column(Integer, default=70, nullable=False)
    weight_attendance_score = Column(Integer, default=20, nullable=False)
    weight_submission_timing = Column(Integer, default=10, nullable=False)

    status = Column(value_enum(ProjectStatus, "project_status"), default=ProjectStatus.ASSIGNED, nullable=False)
    assigned_by_id = Column(GUID, nullable=False)  # users.id

    completed_date = Column(DateTime, nullable=True)
    completed_by_id = Column(GUID, nullable=True)
    completion_notes = Column(String(500), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def weightage(self) -> dict:
        return {
            "project_score": self.weight_project_score,
            "attendance_score": self.weight_attendance_score,
            "submission_timing": self.weight_submission_timing,
        }

    def __repr__(self):
        return f"<Project {self.title}>"


_ACTIVE_SUBMISSION = text("is_active")


class ProjectSubmission(Base):
    """A student's submission for a project, with derived timing and score fields"""
    __tablename__ = "project_submissions"
    __table_args__ = (
        Index(
            "uq_submission_project_student", "project_id", "student_id",
            unique=True, sqlite_where=text("is_active = 1"), postgresql_where=_ACTIVE_SUBMISSION,
        ),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id"), nullable=False, index=True)
    student_id = Column(GUID, ForeignKey("students.id"), nullable=False, index=True)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=False)

    submitted_date = Column(DateTime, nullable=False)
    files = Column(JSON, default=list)  # [{"original_name", "file_name", "path", "size", "type", "uploaded_at"}]
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    score = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    graded_by_id = Column(GUID, nullable=True)
    graded_date = Column(DateTime, nullable=True)
    reviewed_by_id = Column(GUID, nullable=True)
    reviewed_date = Column(DateTime, nullable=True)

    status = Column(value_enum(SubmissionStatus, "submission_status"), default=SubmissionStatus.SUBMITTED, nullable=False)
    submission_timing = Column(value_enum(SubmissionTiming, "submission_timing"), nullable=False)
    days_from_deadline = Column(Integer, nullable=False)  # positive = early, negative = late

    attendance_score = Column(Integer, default=0, nullable=False)
    final_score = Column(Integer, nullable=True)
    rank = Column(Integer, nullable=True)

    version = Column(Integer, default=1, nullable=False)
    previous_submission_id = Column(GUID, ForeignKey("project_submissions.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ProjectSubmission {self.project_id} {self.student_id} {self.status}>"


class ProjectAnalytics(Base):
    """Derived per-project statistics; rebuilt from the submission set after every grade change"""
    __tablename__ = "project_analytics"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id"), unique=True, nullable=False)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=False)

    total_students = Column(Integer, default=0, nullable=False)
    submitted_count = Column(Integer, default=0, nullable=False)
    pending_count = Column(Integer, default=0, nullable=False)
    graded_count = Column(Integer, default=0, nullable=False)

    submission_stats = Column(JSON, default=dict)  # {"early", "on_time", "late"}
    score_stats = Column(JSON, default=dict)  # {"average", "highest", "lowest", "median"}
    attendance_stats = Column(JSON, default=dict)
    final_score_stats = Column(JSON, default=dict)
    grade_distribution = Column(JSON, default=dict)
    top_performers = Column(JSON, default=list)  # [{"student_id", "submission_id", "final_score", "rank"}]

    completion_rate = Column(Integer, default=0, nullable=False)
    on_time_submission_rate = Column(Integer, default=0, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ProjectAnalytics {self.project_id}>"
