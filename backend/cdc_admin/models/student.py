from sqlalchemy import Column, String, Boolean, DateTime, Date, Float, Text, ForeignKey, UniqueConstraint
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class Student(Base):
    """
    Enrolled student.

    department_id, course_id and batch_id are stored flat for fast lookups at
    any level; the service layer checks on every write that they agree.
    """
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("batch_id", "roll_no", name="uq_student_batch_roll"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    student_id = Column(String(50), unique=True, nullable=True)
    roll_no = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(value_enum(Gender, "gender"), nullable=True)

    guardian_name = Column(String(255), nullable=True)
    guardian_phone = Column(String(20), nullable=True)
    emergency_contact = Column(String(20), nullable=True)
    qualification = Column(String(255), nullable=True)
    admission_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    department_id = Column(GUID, ForeignKey("departments.id"), nullable=False, index=True)
    course_id = Column(GUID, ForeignKey("courses.id"), nullable=False, index=True)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=False, index=True)

    fees_paid = Column(Float, default=0, nullable=False)
    total_fees = Column(Float, default=0, nullable=False)
    payment_status = Column(value_enum(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(GUID, nullable=True)  # users.id

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Student {self.roll_no} {self.name}>"
