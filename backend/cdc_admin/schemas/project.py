from pydantic import BaseModel, Field, ConfigDict, AliasChoices, model_validator
from typing import Optional, List
from datetime import datetime

from cdc_admin.models.project import ProjectStatus, SubmissionStatus, DeliverableType


class Requirement(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    mandatory: bool = True


class Deliverable(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    file_type: DeliverableType = DeliverableType.ANY
    max_size_mb: int = Field(50, ge=1, le=500)
    mandatory: bool = True


class Resource(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    url: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)


class Weightage(BaseModel):
    project_score: int = Field(70, ge=0, le=100)
    attendance_score: int = Field(20, ge=0, le=100)
    submission_timing: int = Field(10, ge=0, le=100)


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    batch_id: str
    course_id: Optional[str] = None
    assigned_date: Optional[datetime] = None
    deadline_date: datetime
    requirements: List[Requirement] = []
    deliverables: List[Deliverable] = []
    resources: List[Resource] = []
    instructions: Optional[str] = Field(None, max_length=1000)
    max_score: int = Field(100, ge=1, le=100)
    weightage: Weightage = Weightage()
    status: ProjectStatus = ProjectStatus.ASSIGNED


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    assigned_date: Optional[datetime] = None
    deadline_date: Optional[datetime] = None
    requirements: Optional[List[Requirement]] = None
    deliverables: Optional[List[Deliverable]] = None
    resources: Optional[List[Resource]] = None
    instructions: Optional[str] = Field(None, max_length=1000)
    max_score: Optional[int] = Field(None, ge=1, le=100)
    weightage: Optional[Weightage] = None
    status: Optional[ProjectStatus] = None


class SubmissionCreate(BaseModel):
    """JSON form of a submission; multipart uploads carry the same fields as form data"""
    student_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=1000)
    submission_date: Optional[datetime] = None


class GradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: float = Field(..., ge=0, validation_alias=AliasChoices("score", "grade"))
    feedback: Optional[str] = Field(None, max_length=2000)


class SubmissionStatusUpdate(BaseModel):
    status: SubmissionStatus
    feedback: Optional[str] = Field(None, max_length=2000)


class CompleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    force_complete: bool = Field(False, validation_alias=AliasChoices("force_complete", "forceComplete"))
    completion_notes: Optional[str] = Field(
        None, max_length=500, validation_alias=AliasChoices("completion_notes", "completionNotes")
    )


class ProjectResponse(BaseModel):
    id: str
    title: str
    description: str
    batch_id: str
    course_id: str
    assigned_date: datetime
    deadline_date: datetime
    requirements: List[dict] = []
    deliverables: List[dict] = []
    resources: List[dict] = []
    instructions: Optional[str] = None
    max_score: int
    weightage: dict
    status: ProjectStatus
    assigned_by_id: str
    completed_date: Optional[datetime] = None
    completed_by_id: Optional[str] = None
    completion_notes: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode='before')
    @classmethod
    def default_lists(cls, data):
        if isinstance(data, dict):
            for key in ("requirements", "deliverables", "resources"):
                if data.get(key) is None:
                    data[key] = []
        return data
