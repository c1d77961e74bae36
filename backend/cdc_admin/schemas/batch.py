from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional
from datetime import datetime

from cdc_admin.models.batch import TimeSlot


class BatchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    course_id: str
    academic_year: str = Field(..., min_length=1, max_length=20)
    section: str = Field(..., min_length=1, max_length=20)
    timing: TimeSlot
    start_date: datetime
    end_date: Optional[datetime] = None
    max_students: Optional[int] = Field(None, ge=1, le=50)

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BatchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    academic_year: Optional[str] = Field(None, min_length=1, max_length=20)
    section: Optional[str] = Field(None, min_length=1, max_length=20)
    timing: Optional[TimeSlot] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_students: Optional[int] = Field(None, ge=1, le=50)
    is_archived: Optional[bool] = None


class BatchResponse(BaseModel):
    id: str
    name: str
    course_id: str
    academic_year: str
    section: str
    timing: TimeSlot
    start_date: datetime
    end_date: Optional[datetime] = None
    max_students: int
    created_by_id: str
    is_archived: bool
    is_finished: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
