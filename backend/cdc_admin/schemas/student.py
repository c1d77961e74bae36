from pydantic import BaseModel, EmailStr, Field, ConfigDict, AliasChoices, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, date

from cdc_admin.models.student import Gender, PaymentStatus


class _StudentFields(BaseModel):
    """Fields shared by create and update; the UI sends rollNumber as often as rollNo"""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('student_id', check_fields=False)
    @classmethod
    def uppercase_student_id(cls, v):
        return v.upper().strip() if v else v

    @field_validator('email', check_fields=False)
    @classmethod
    def lowercase_email(cls, v):
        return v.lower().strip() if v else v

    @field_validator('roll_no', check_fields=False)
    @classmethod
    def strip_roll_no(cls, v):
        return str(v).strip() if v is not None else v

    @model_validator(mode='after')
    def check_fees(self):
        fees_paid = getattr(self, "fees_paid", None)
        total_fees = getattr(self, "total_fees", None)
        if fees_paid is not None and total_fees is not None and fees_paid > total_fees:
            raise ValueError("Fees paid cannot exceed total fees")
        return self


class StudentCreate(_StudentFields):
    name: str = Field(..., min_length=1, max_length=255)
    student_id: Optional[str] = Field(None, max_length=50)
    roll_no: Optional[str] = Field(
        None, max_length=50, validation_alias=AliasChoices("roll_no", "rollNo", "rollNumber", "roll_number")
    )
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = Field(None, max_length=20)
    emergency_contact: Optional[str] = Field(None, max_length=20)
    qualification: Optional[str] = None
    admission_date: Optional[datetime] = None
    department_id: str
    course_id: str
    batch_id: str
    fees_paid: float = Field(0, ge=0)
    total_fees: float = Field(0, ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_active: bool = True


class StudentUpdate(_StudentFields):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    student_id: Optional[str] = Field(None, max_length=50)
    roll_no: Optional[str] = Field(
        None, max_length=50, validation_alias=AliasChoices("roll_no", "rollNo", "rollNumber", "roll_number")
    )
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = Field(None, max_length=20)
    emergency_contact: Optional[str] = Field(None, max_length=20)
    qualification: Optional[str] = None
    department_id: Optional[str] = None
    course_id: Optional[str] = None
    batch_id: Optional[str] = None
    fees_paid: Optional[float] = Field(None, ge=0)
    total_fees: Optional[float] = Field(None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    is_active: Optional[bool] = None


class StudentBulkCreate(BaseModel):
    students: List[dict] = Field(..., min_length=1)


class StudentResponse(BaseModel):
    id: str
    name: str
    student_id: Optional[str] = None
    roll_no: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    qualification: Optional[str] = None
    admission_date: datetime
    department_id: str
    course_id: str
    batch_id: str
    fees_paid: float
    total_fees: float
    payment_status: PaymentStatus
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
