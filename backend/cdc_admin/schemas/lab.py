from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Literal
from datetime import datetime, date

from cdc_admin.models.batch import TimeSlot
from cdc_admin.models.lab import PCStatus, BookingStatus
from cdc_admin.schemas.attendance import DayInput

LabRow = Literal["1", "2", "3", "4"]


class PCSpecs(BaseModel):
    processor: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    graphics: Optional[str] = None
    monitor: Optional[str] = None


class PCCreate(BaseModel):
    pc_number: str = Field(..., min_length=1, max_length=20)
    row: LabRow
    position: int = Field(..., ge=1)
    status: PCStatus = PCStatus.ACTIVE
    specs: Optional[PCSpecs] = None
    notes: Optional[str] = None

    @field_validator('pc_number')
    @classmethod
    def uppercase_pc_number(cls, v):
        return v.upper().strip()


class PCUpdate(BaseModel):
    pc_number: Optional[str] = Field(None, min_length=1, max_length=20)
    row: Optional[LabRow] = None
    position: Optional[int] = Field(None, ge=1)
    status: Optional[PCStatus] = None
    specs: Optional[PCSpecs] = None
    last_maintenance: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator('pc_number')
    @classmethod
    def uppercase_pc_number(cls, v):
        return v.upper().strip() if v else v


class PCResponse(BaseModel):
    id: str
    pc_number: str
    row: str
    position: int
    status: PCStatus
    specs: Optional[dict] = None
    last_maintenance: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    pc_id: str
    date: DayInput
    time_slot: TimeSlot
    student_name: str = Field(..., min_length=1, max_length=255)
    student_id: Optional[str] = None
    batch_id: Optional[str] = None
    booked_for: Optional[str] = Field(None, max_length=255)
    teacher_name: Optional[str] = Field(None, max_length=255)
    purpose: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    pc_id: Optional[str] = None
    date: Optional[DayInput] = None
    time_slot: Optional[TimeSlot] = None
    status: Optional[BookingStatus] = None
    purpose: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class BookingResponse(BaseModel):
    id: str
    pc_id: str
    date: date
    time_slot: TimeSlot
    booked_for: str
    student_id: Optional[str] = None
    student_name: str
    teacher_name: str
    batch_id: Optional[str] = None
    purpose: str
    notes: Optional[str] = None
    status: BookingStatus
    booked_by_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApplyPreviousRequest(BaseModel):
    target_date: DayInput
    source_date: Optional[DayInput] = None


class ClearBulkRequest(BaseModel):
    date: DayInput
    time_slots: Optional[List[TimeSlot]] = None
    pc_ids: Optional[List[str]] = None
