from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from cdc_admin.models.notification import NotificationType, NotificationPriority, TargetAudience


class NotificationCreate(BaseModel):
    title: str = Field(..., max_length=200)
    message: str = Field(..., max_length=2000)
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.MEDIUM
    target_audience: TargetAudience = TargetAudience.ALL_TEACHERS
    target_teachers: List[str] = []
    target_department_id: Optional[str] = None
    send_email: bool = True
    expires_at: Optional[datetime] = None

    @field_validator('title', 'message')
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title and message are required")
        return v

    @model_validator(mode='after')
    def check_targets(self):
        if self.target_audience == TargetAudience.SPECIFIC_TEACHERS and not self.target_teachers:
            raise ValueError("target_teachers is required for specific_teachers notifications")
        if self.target_audience == TargetAudience.DEPARTMENT and not self.target_department_id:
            raise ValueError("target_department_id is required for department notifications")
        return self


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    target_audience: TargetAudience
    target_teachers: List[str] = []
    target_department_id: Optional[str] = None
    created_by_id: str
    email_sent: bool
    email_sent_at: Optional[datetime] = None
    email_recipients: List[dict] = []
    expires_at: datetime
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
