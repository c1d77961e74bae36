from sqlalchemy import Column, String, DateTime, Date, ForeignKey, UniqueConstraint, Index
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class Attendance(Base):
    """One record per student per local day"""
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("student_id", "date", name="uq_attendance_student_date"),
        Index("ix_attendance_batch_date", "batch_id", "date"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id"), nullable=False)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    status = Column(value_enum(AttendanceStatus, "attendance_status"), nullable=False)
    remarks = Column(String(500), nullable=True)
    marked_by_id = Column(GUID, nullable=True)  # users.id

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Attendance {self.student_id} {self.date} {self.status}>"
