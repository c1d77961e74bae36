from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class TimeSlot(str, enum.Enum):
    """The five 90-minute slots that partition the teaching and lab day"""
    SLOT_0900 = "09:00 AM - 10:30 AM"
    SLOT_1030 = "10:30 AM - 12:00 PM"
    SLOT_1200 = "12:00 PM - 01:30 PM"
    SLOT_1400 = "02:00 PM - 03:30 PM"
    SLOT_1530 = "03:30 PM - 05:00 PM"


class Batch(Base):
    """A cohort taking one course in one section and timing; owned by its creator"""
    __tablename__ = "batches"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False)
    course_id = Column(GUID, ForeignKey("courses.id"), nullable=False, index=True)
    academic_year = Column(String(20), nullable=False)
    section = Column(String(20), nullable=False)
    timing = Column(value_enum(TimeSlot, "time_slot"), nullable=False)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    max_students = Column(Integer, default=20, nullable=False)

    created_by_id = Column(GUID, nullable=False, index=True)  # users.id
    is_archived = Column(Boolean, default=False, nullable=False)
    is_finished = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Batch {self.name}>"
