from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Text, JSON, ForeignKey, UniqueConstraint
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class CourseLevel(str, enum.Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"


class CourseCategory(str, enum.Enum):
    DESIGN = "Design"
    PROGRAMMING = "Programming"
    WEB_DEVELOPMENT = "Web Development"
    MOBILE_DEVELOPMENT = "Mobile Development"
    DATA_SCIENCE = "Data Science"
    DIGITAL_MARKETING = "Digital Marketing"
    GRAPHICS = "Graphics"
    ANIMATION = "Animation"
    CAD = "CAD"
    OTHER = "Other"


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"


class Course(Base):
    """A course offered by a department; batches run a course"""
    __tablename__ = "courses"
    __table_args__ = (
        UniqueConstraint("department_id", "code", name="uq_course_department_code"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False)
    code = Column(String(20), nullable=False)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=False, index=True)
    description = Column(Text, nullable=True)

    duration_months = Column(Integer, nullable=False)
    duration_hours = Column(Integer, nullable=True)

    fee_amount = Column(Float, nullable=False, default=0)
    fee_currency = Column(value_enum(Currency, "currency"), default=Currency.INR, nullable=False)
    installments_allowed = Column(Boolean, default=True, nullable=False)
    installment_count = Column(Integer, default=1, nullable=False)

    prerequisites = Column(JSON, default=list)
    syllabus = Column(JSON, default=list)  # [{"module", "topics", "duration"}]
    certification = Column(JSON, nullable=True)  # {"provided", "certificate_name", "issuing_authority"}
    software = Column(JSON, default=list)  # [{"name", "version", "required"}]

    level = Column(value_enum(CourseLevel, "course_level"), default=CourseLevel.BEGINNER, nullable=False)
    category = Column(value_enum(CourseCategory, "course_category"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_students_per_batch = Column(Integer, default=20, nullable=False)

    created_by_id = Column(GUID, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Course {self.code}>"
