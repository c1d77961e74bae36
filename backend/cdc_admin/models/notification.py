from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON, ForeignKey, UniqueConstraint
from datetime import datetime, timedelta
import enum

from cdc_admin.core.database import Base
from cdc_admin.core.types import GUID, generate_uuid, value_enum


class NotificationType(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"
    LEAVE = "leave"
    ANNOUNCEMENT = "announcement"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TargetAudience(str, enum.Enum):
    ALL_TEACHERS = "all_teachers"
    SPECIFIC_TEACHERS = "specific_teachers"
    DEPARTMENT = "department"


# Lifetime of a notification when the creator does not set expires_at
PRIORITY_LIFETIME = {
    NotificationPriority.URGENT: timedelta(days=7),
    NotificationPriority.HIGH: timedelta(days=14),
    NotificationPriority.MEDIUM: timedelta(days=30),
    NotificationPriority.LOW: timedelta(days=60),
}

# Inbox ordering: most pressing first
PRIORITY_RANK = {
    NotificationPriority.URGENT: 4,
    NotificationPriority.HIGH: 3,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.LOW: 1,
}


class Notification(Base):
    """Admin-to-teacher message with per-recipient email outcome"""
    __tablename__ = "notifications"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(value_enum(NotificationType, "notification_type"), default=NotificationType.INFO, nullable=False)
    priority = Column(value_enum(NotificationPriority, "notification_priority"), default=NotificationPriority.MEDIUM, nullable=False)

    target_audience = Column(value_enum(TargetAudience, "target_audience"), default=TargetAudience.ALL_TEACHERS, nullable=False)
    target_teachers = Column(JSON, default=list)  # [users.id]
    target_department_id = Column(GUID, ForeignKey("departments.id"), nullable=True)

    created_by_id = Column(GUID, nullable=False)  # users.id
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime, nullable=True)
    email_recipients = Column(JSON, default=list)  # [{"email", "name", "status"}]

    expires_at = Column(DateTime, nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Notification {self.title}>"


class NotificationRead(Base):
    """Read receipt; one per (notification, teacher)"""
    __tablename__ = "notification_reads"
    __table_args__ = (
        UniqueConstraint("notification_id", "teacher_id", name="uq_notification_read"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    notification_id = Column(GUID, ForeignKey("notifications.id"), nullable=False, index=True)
    teacher_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    read_at = Column(DateTime, nullable=False)
