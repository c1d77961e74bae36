from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import get_db
from cdc_admin.models.notification import NotificationType, NotificationPriority
from cdc_admin.modules.auth.dependencies import get_current_admin, get_current_teacher
from cdc_admin.schemas.notification import NotificationCreate
from cdc_admin.services.authorization import Principal
from cdc_admin.services.email_service import EmailService, get_email_service
from cdc_admin.services.notification_service import NotificationService
from cdc_admin.utils.pagination import parse_limit

router = APIRouter()


def _service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: EmailService = Depends(get_email_service),
) -> NotificationService:
    return NotificationService(db, clock, notifier)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    data: NotificationCreate,
    principal: Principal = Depends(get_current_admin),
    service: NotificationService = Depends(_service)
):
    """Create a notification and email every resolved recipient"""
    return await service.create_notification(principal, data)


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: Optional[str] = Query(None),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    priority: Optional[NotificationPriority] = Query(None),
    principal: Principal = Depends(get_current_admin),
    service: NotificationService = Depends(_service)
):
    return await service.list_notifications(
        principal, page=page, limit=parse_limit(limit), type=notification_type, priority=priority
    )


@router.get("/teacher")
async def teacher_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_teacher),
    service: NotificationService = Depends(_service)
):
    return await service.teacher_inbox(principal, unread_only=unread_only, limit=limit)


@router.get("/stats")
async def notification_stats(
    principal: Principal = Depends(get_current_admin),
    service: NotificationService = Depends(_service)
):
    return await service.get_stats(principal)


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    principal: Principal = Depends(get_current_teacher),
    service: NotificationService = Depends(_service)
):
    return await service.mark_as_read(principal, notification_id)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    principal: Principal = Depends(get_current_admin),
    service: NotificationService = Depends(_service)
):
    return await service.delete_notification(principal, notification_id)
