from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime

from cdc_admin.models.department import DepartmentName


class ContactInfo(BaseModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    extension: Optional[str] = None


class Location(BaseModel):
    building: Optional[str] = None
    floor: Optional[str] = None
    room_numbers: List[str] = Field(default_factory=list)


def _check_established_year(v: Optional[int]) -> Optional[int]:
    if v is not None and not (1900 <= v <= datetime.utcnow().year):
        raise ValueError("Established year must be between 1900 and the current year")
    return v


class DepartmentCreate(BaseModel):
    name: DepartmentName
    code: str = Field(..., min_length=1, max_length=10)
    description: Optional[str] = Field(None, max_length=500)
    head_of_department_id: Optional[str] = None
    established_year: Optional[int] = None
    contact_info: Optional[ContactInfo] = None
    location: Optional[Location] = None
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def uppercase_code(cls, v):
        return v.upper().strip()

    @field_validator('established_year')
    @classmethod
    def check_year(cls, v):
        return _check_established_year(v)


class DepartmentUpdate(BaseModel):
    name: Optional[DepartmentName] = None
    code: Optional[str] = Field(None, min_length=1, max_length=10)
    description: Optional[str] = Field(None, max_length=500)
    head_of_department_id: Optional[str] = None
    established_year: Optional[int] = None
    contact_info: Optional[ContactInfo] = None
    location: Optional[Location] = None
    is_active: Optional[bool] = None

    @field_validator('code')
    @classmethod
    def uppercase_code(cls, v):
        return v.upper().strip() if v else v

    @field_validator('established_year')
    @classmethod
    def check_year(cls, v):
        return _check_established_year(v)


class DepartmentResponse(BaseModel):
    id: str
    name: DepartmentName
    code: str
    description: Optional[str] = None
    head_of_department_id: Optional[str] = None
    established_year: Optional[int] = None
    contact_info: Optional[dict] = None
    location: Optional[dict] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
