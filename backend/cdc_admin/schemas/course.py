from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime

from cdc_admin.models.course import CourseLevel, CourseCategory, Currency


class SyllabusModule(BaseModel):
    module: str
    topics: List[str] = Field(default_factory=list)
    duration: Optional[str] = None


class Certification(BaseModel):
    provided: bool = True
    certificate_name: Optional[str] = None
    issuing_authority: Optional[str] = None


class Software(BaseModel):
    name: str
    version: Optional[str] = None
    required: bool = True


class CourseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=20)
    department_id: str
    description: Optional[str] = Field(None, max_length=1000)
    duration_months: int = Field(..., ge=1, le=60)
    duration_hours: Optional[int] = Field(None, ge=1)
    fee_amount: float = Field(..., ge=0)
    fee_currency: Currency = Currency.INR
    installments_allowed: bool = True
    installment_count: int = Field(1, ge=1, le=12)
    prerequisites: List[str] = Field(default_factory=list)
    syllabus: List[SyllabusModule] = Field(default_factory=list)
    certification: Optional[Certification] = None
    level: CourseLevel = CourseLevel.BEGINNER
    category: CourseCategory
    software: List[Software] = Field(default_factory=list)
    is_active: bool = True
    max_students_per_batch: int = Field(20, ge=1, le=50)

    @field_validator('code')
    @classmethod
    def uppercase_code(cls, v):
        return v.upper().strip()


class CourseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    department_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    duration_months: Optional[int] = Field(None, ge=1, le=60)
    duration_hours: Optional[int] = Field(None, ge=1)
    fee_amount: Optional[float] = Field(None, ge=0)
    fee_currency: Optional[Currency] = None
    installments_allowed: Optional[bool] = None
    installment_count: Optional[int] = Field(None, ge=1, le=12)
    prerequisites: Optional[List[str]] = None
    syllabus: Optional[List[SyllabusModule]] = None
    certification: Optional[Certification] = None
    level: Optional[CourseLevel] = None
    category: Optional[CourseCategory] = None
    software: Optional[List[Software]] = None
    is_active: Optional[bool] = None
    max_students_per_batch: Optional[int] = Field(None, ge=1, le=50)

    @field_validator('code')
    @classmethod
    def uppercase_code(cls, v):
        return v.upper().strip() if v else v


class CourseResponse(BaseModel):
    id: str
    name: str
    code: str
    department_id: str
    description: Optional[str] = None
    duration_months: int
    duration_hours: Optional[int] = None
    fee_amount: float
    fee_currency: Currency
    installments_allowed: bool
    installment_count: int
    prerequisites: Optional[list] = None
    syllabus: Optional[list] = None
    certification: Optional[dict] = None
    level: CourseLevel
    category: CourseCategory
    software: Optional[list] = None
    is_active: bool
    max_students_per_batch: int
    created_by_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
