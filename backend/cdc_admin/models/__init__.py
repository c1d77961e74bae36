# Re-export all models for convenient imports
from cdc_admin.models.user import User, UserRole
from cdc_admin.models.department import Department, DepartmentName
from cdc_admin.models.course import Course, CourseLevel, CourseCategory, Currency
from cdc_admin.models.batch import Batch, TimeSlot
from cdc_admin.models.student import Student, Gender, PaymentStatus
from cdc_admin.models.attendance import Attendance, AttendanceStatus
from cdc_admin.models.lab import PC, PCStatus, Booking, BookingStatus, LAB_ROWS
from cdc_admin.models.project import (
    Project, ProjectStatus, ProjectSubmission, SubmissionStatus, SubmissionTiming,
    ProjectAnalytics, DeliverableType, ACTIVE_PROJECT_STATUSES,
)
from cdc_admin.models.notification import (
    Notification, NotificationRead, NotificationType, NotificationPriority, TargetAudience,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    # Hierarchy
    "Department",
    "DepartmentName",
    "Course",
    "CourseLevel",
    "CourseCategory",
    "Currency",
    "Batch",
    "TimeSlot",
    "Student",
    "Gender",
    "PaymentStatus",
    # Attendance
    "Attendance",
    "AttendanceStatus",
    # Lab
    "PC",
    "PCStatus",
    "Booking",
    "BookingStatus",
    "LAB_ROWS",
    # Projects
    "Project",
    "ProjectStatus",
    "ProjectSubmission",
    "SubmissionStatus",
    "SubmissionTiming",
    "ProjectAnalytics",
    "DeliverableType",
    "ACTIVE_PROJECT_STATUSES",
    # Notifications
    "Notification",
    "NotificationRead",
    "NotificationType",
    "NotificationPriority",
    "TargetAudience",
]
