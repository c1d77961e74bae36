from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, JSON
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class DepartmentName(str, enum.Enum):
    CADD = "CADD"
    LIVEWIRE = "LIVEWIRE"
    DREAMZONE = "DREAMZONE"
    SYNERGY = "SYNERGY"


class Department(Base):
    """Top of the enrollment hierarchy"""
    __tablename__ = "departments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(value_enum(DepartmentName, "department_name"), unique=True, nullable=False)
    code = Column(String(10), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    head_of_department_id = Column(GUID, nullable=True)  # users.id
    established_year = Column(Integer, nullable=True)

    # {"email", "phone", "extension"} / {"building", "floor", "room_numbers"}
    contact_info = Column(JSON, nullable=True)
    location = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_by_id = Column(GUID, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Department {self.code}>"
