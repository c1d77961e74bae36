from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Union
from datetime import datetime, date

from cdc_admin.models.attendance import AttendanceStatus

# Clients send either a bare day or a full timestamp; both are truncated to the local day
DayInput = Union[datetime, date]


class AttendanceMark(BaseModel):
    student_id: str
    batch_id: str
    date: DayInput
    status: AttendanceStatus
    remarks: Optional[str] = Field(None, max_length=500)


class AttendanceBulkRecord(BaseModel):
    student_id: str
    status: AttendanceStatus
    remarks: Optional[str] = Field(None, max_length=500)


class AttendanceBulkMark(BaseModel):
    batch_id: str
    date: DayInput
    records: List[AttendanceBulkRecord] = Field(..., min_length=1)


class AttendanceResponse(BaseModel):
    id: str
    student_id: str
    batch_id: str
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    marked_by_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
