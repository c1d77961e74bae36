"""
Notification Service

Admin-to-teacher notifications: recipient resolution, email fanout through
the notifier, the teacher inbox and read receipts.
"""

import asyncio
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import ConflictError, ResourceNotFoundError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.department import Department
from cdc_admin.models.notification import (
    Notification, NotificationPriority, NotificationRead, NotificationType, TargetAudience,
    PRIORITY_LIFETIME, PRIORITY_RANK,
)
from cdc_admin.models.user import User, UserRole
from cdc_admin.schemas.notification import NotificationCreate, NotificationResponse
from cdc_admin.services.authorization import Principal, require_admin, require_staff
from cdc_admin.services.email_service import EmailService, get_email_service
from cdc_admin.utils.pagination import paginate
from cdc_admin.utils.serialization import to_dict


def default_expiry(priority: NotificationPriority, created_at):
    """Expiry derived from priority when the creator leaves it unset"""
    return created_at + PRIORITY_LIFETIME[NotificationPriority(priority)]


def is_visible_to(notification: Notification, teacher: User) -> bool:
    audience = TargetAudience(notification.target_audience)
    if audience == TargetAudience.ALL_TEACHERS:
        return True
    if audience == TargetAudience.SPECIFIC_TEACHERS:
        return str(teacher.id) in (notification.target_teachers or [])
    return teacher.department_id is not None and notification.target_department_id == teacher.department_id


class NotificationService:
    """Notification fanout and inbox"""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        notifier: Optional[EmailService] = None,
    ):
        self.db = db
        self.clock = clock or get_clock()
        self.notifier = notifier or get_email_service()

    async def resolve_recipients(self, data: NotificationCreate) -> List[User]:
        query = select(User).where(User.role == UserRole.TEACHER, User.is_active.is_(True))
        audience = TargetAudience(data.target_audience)
        if audience == TargetAudience.SPECIFIC_TEACHERS:
            query = query.where(User.id.in_(data.target_teachers))
        elif audience == TargetAudience.DEPARTMENT:
            query = query.where(User.department_id == data.target_department_id)
        result = await self.db.execute(query.order_by(User.name))
        return list(result.scalars().all())

    async def _dispatch(self, notification: Notification, recipients: List[User], sender_name: str) -> List[Dict[str, str]]:
        """Send to every recipient concurrently; one failure never affects the others"""

        async def send_one(teacher: User) -> Dict[str, str]:
            sent = await self.notifier.send_notification_email(
                to_email=teacher.email,
                teacher_name=teacher.name,
                title=notification.title,
                message=notification.message,
                notification_type=NotificationType(notification.type).value,
                priority=NotificationPriority(notification.priority).value,
                sender_name=sender_name,
            )
            return {"email": teacher.email, "name": teacher.name, "status": "sent" if sent else "failed"}

        results = await asyncio.gather(*(send_one(t) for t in recipients), return_exceptions=True)
        outcomes = []
        for teacher, result in zip(recipients, results):
            if isinstance(result, Exception):
                logger.error(f"[Notifications] Email to {teacher.email} failed: {result}")
                result = {"email": teacher.email, "name": teacher.name, "status": "failed"}
            outcomes.append(result)
        return outcomes

    async def create_notification(self, principal: Principal, data: NotificationCreate) -> Dict[str, Any]:
        require_admin(principal)
        if data.target_audience == TargetAudience.DEPARTMENT:
            if not await self.db.get(Department, data.target_department_id):
                raise ResourceNotFoundError("Department", data.target_department_id)

        now = self.clock.now()
        expires_at = self.clock.to_local_datetime(data.expires_at) if data.expires_at else default_expiry(data.priority, now)
        notification = Notification(
            title=data.title,
            message=data.message,
            type=data.type,
            priority=data.priority,
            target_audience=data.target_audience,
            target_teachers=list(data.target_teachers),
            target_department_id=data.target_department_id,
            created_by_id=principal.user_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
            email_recipients=[],
        )
        self.db.add(notification)
        await self.db.flush()

        recipients = await self.resolve_recipients(data)
        outcomes: List[Dict[str, str]] = []
        if data.send_email and recipients:
            outcomes = await self._dispatch(notification, recipients, principal.name or "Administration")
            notification.email_recipients = outcomes
            notification.email_sent = any(o["status"] == "sent" for o in outcomes)
            notification.email_sent_at = self.clock.now()
            await self.db.flush()

        sent = sum(1 for o in outcomes if o["status"] == "sent")
        logger.log_domain_event(
            "Notifications", "notification_created", notification_id=notification.id,
            audience=TargetAudience(notification.target_audience).value,
            recipients=len(recipients), emails_sent=sent,
        )
        return {
            "success": True,
            "message": "Notification created successfully",
            "notification": to_dict(NotificationResponse, notification),
            "email_results": {"total": len(outcomes), "sent": sent, "failed": len(outcomes) - sent},
        }

    async def list_notifications(
        self,
        principal: Principal,
        page: int = 1,
        limit: Optional[int] = 10,
        type: Optional[NotificationType] = None,
        priority: Optional[NotificationPriority] = None,
    ) -> Dict[str, Any]:
        require_admin(principal)
        query = select(Notification).where(Notification.active.is_(True))
        if type:
            query = query.where(Notification.type == type)
        if priority:
            query = query.where(Notification.priority == priority)
        page_data = await paginate(self.db, query.order_by(Notification.created_at.desc()), page, limit)
        return {
            "notifications": [to_dict(NotificationResponse, n) for n in page_data["items"]],
            "pagination": page_data["pagination"],
        }

    async def teacher_inbox(
        self,
        principal: Principal,
        unread_only: bool = False,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Live notifications addressed to the caller, most pressing first"""
        require_staff(principal)
        teacher = await self.db.get(User, principal.user_id)
        now = self.clock.now()

        result = await self.db.execute(
            select(Notification).where(
                Notification.active.is_(True),
                Notification.expires_at > now,
                or_(
                    Notification.target_audience != TargetAudience.DEPARTMENT,
                    Notification.target_department_id == teacher.department_id,
                ),
            )
        )
        visible = [n for n in result.scalars().all() if is_visible_to(n, teacher)]
        visible.sort(
            key=lambda n: (PRIORITY_RANK[NotificationPriority(n.priority)], n.created_at),
            reverse=True,
        )

        reads = {}
        if visible:
            rows = await self.db.execute(
                select(NotificationRead.notification_id, NotificationRead.read_at).where(
                    NotificationRead.teacher_id == principal.user_id,
                    NotificationRead.notification_id.in_([n.id for n in visible]),
                )
            )
            reads = {notification_id: read_at for notification_id, read_at in rows.all()}

        unread_count = sum(1 for n in visible if n.id not in reads)
        if unread_only:
            visible = [n for n in visible if n.id not in reads]

        return {
            "notifications": [
                to_dict(NotificationResponse, n, is_read=n.id in reads, read_at=reads.get(n.id))
                for n in visible[:limit]
            ],
            "unread_count": unread_count,
        }

    async def mark_as_read(self, principal: Principal, notification_id: str) -> Dict[str, Any]:
        """Record a read receipt; repeating the call changes nothing"""
        require_staff(principal)
        notification = await self.db.get(Notification, notification_id)
        if not notification or not notification.active:
            raise ResourceNotFoundError("Notification", notification_id)

        existing = await self._read_receipt(notification_id, principal.user_id)
        if existing is None:
            receipt = NotificationRead(
                notification_id=notification_id, teacher_id=principal.user_id, read_at=self.clock.now(),
            )
            try:
                async with unique_write(self.db, lambda exc: ConflictError("Already marked as read")):
                    self.db.add(receipt)
                existing = receipt
            except ConflictError:
                existing = await self._read_receipt(notification_id, principal.user_id)

        return {"message": "Notification marked as read", "read_at": existing.read_at}

    async def _read_receipt(self, notification_id: str, teacher_id: str) -> Optional[NotificationRead]:
        result = await self.db.execute(
            select(NotificationRead).where(
                NotificationRead.notification_id == notification_id,
                NotificationRead.teacher_id == teacher_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_notification(self, principal: Principal, notification_id: str) -> Dict[str, Any]:
        require_admin(principal)
        notification = await self.db.get(Notification, notification_id)
        if not notification or not notification.active:
            raise ResourceNotFoundError("Notification", notification_id)
        notification.active = False
        await self.db.flush()
        logger.log_domain_event("Notifications", "notification_deleted", notification_id=notification_id)
        return {"message": "Notification deleted successfully"}

    async def get_stats(self, principal: Principal) -> Dict[str, Any]:
        require_admin(principal)
        base = Notification.active.is_(True)
        total = (await self.db.execute(select(func.count(Notification.id)).where(base))).scalar() or 0
        emails_sent = (await self.db.execute(
            select(func.count(Notification.id)).where(base, Notification.email_sent.is_(True))
        )).scalar() or 0

        by_type = {t.value: 0 for t in NotificationType}
        for value, count in (await self.db.execute(
            select(Notification.type, func.count(Notification.id)).where(base).group_by(Notification.type)
        )).all():
            by_type[NotificationType(value).value] = count

        by_priority = {p.value: 0 for p in NotificationPriority}
        for value, count in (await self.db.execute(
            select(Notification.priority, func.count(Notification.id)).where(base).group_by(Notification.priority)
        )).all():
            by_priority[NotificationPriority(value).value] = count

        recent = (await self.db.execute(
            select(Notification).where(base).order_by(Notification.created_at.desc()).limit(5)
        )).scalars().all()

        return {
            "stats": {
                "total": total,
                "emails_sent": emails_sent,
                "by_type": by_type,
                "by_priority": by_priority,
            },
            "recent_notifications": [to_dict(NotificationResponse, n) for n in recent],
        }
