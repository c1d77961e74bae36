from sqlalchemy import Column, String, DateTime, Date, Integer, Text, JSON, ForeignKey, Index, text
from datetime import datetime
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum
from cdc_admin.models.batch import TimeSlot


class PCStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class BookingStatus(str, enum.Enum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


LAB_ROWS = ("1", "2", "3", "4")

# Exclusivity only binds bookings that still hold their slot
_HOLDS_SLOT = text("status != 'cancelled'")
_HOLDS_STUDENT_SLOT = text("status != 'cancelled' AND student_id IS NOT NULL")


class PC(Base):
    """A lab workstation, addressed by row and position"""
    __tablename__ = "pcs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    pc_number = Column(String(20), unique=True, nullable=False)
    row = Column(String(1), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    status = Column(value_enum(PCStatus, "pc_status"), default=PCStatus.ACTIVE, nullable=False)
    specs = Column(JSON, nullable=True)  # {"processor", "ram", "storage", "graphics", "monitor"}
    last_maintenance = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PC {self.pc_number}>"


class Booking(Base):
    """Reservation of one PC in one time slot on one local day"""
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_booking_pc_slot", "pc_id", "date", "time_slot",
            unique=True, sqlite_where=_HOLDS_SLOT, postgresql_where=_HOLDS_SLOT,
        ),
        Index(
            "uq_booking_student_slot", "student_id", "date", "time_slot",
            unique=True, sqlite_where=_HOLDS_STUDENT_SLOT, postgresql_where=_HOLDS_STUDENT_SLOT,
        ),
        Index("ix_booking_date_slot", "date", "time_slot"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    pc_id = Column(GUID, ForeignKey("pcs.id"), nullable=False)
    date = Column(Date, nullable=False)
    time_slot = Column(value_enum(TimeSlot, "time_slot"), nullable=False)

    booked_for = Column(String(255), nullable=False)
    student_id = Column(GUID, ForeignKey("students.id"), nullable=True)
    student_name = Column(String(255), nullable=False)
    teacher_name = Column(String(255), nullable=False)
    batch_id = Column(GUID, ForeignKey("batches.id"), nullable=True)
    purpose = Column(String(255), default="Lab Session", nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(value_enum(BookingStatus, "booking_status"), default=BookingStatus.BOOKED, nullable=False)
    booked_by_id = Column(GUID, nullable=False)  # users.id

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Booking {self.pc_id} {self.date} {self.time_slot}>"
