from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class UserRole(str, enum.Enum):
    """User roles"""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class User(Base):
    """Staff and student login accounts"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)

    role = Column(value_enum(UserRole, "user_role"), default=UserRole.TEACHER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Teachers belong to a department (notification targeting, overview pages)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=True, index=True)
    employee_id = Column(String(50), unique=True, nullable=True)
    phone = Column(String(20), nullable=True)

    # Student accounts point at their enrollment record
    student_record_id = Column(GUID, ForeignKey("students.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User {self.email}>"
