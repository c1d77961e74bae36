"""
User Service

Staff accounts: login, profile and admin management of teachers.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import DuplicateError, ResourceNotFoundError
from cdc_admin.core.logging_config import logger, set_user_id
from cdc_admin.core.security import verify_password, get_password_hash, create_access_token
from cdc_admin.models.batch import Batch
from cdc_admin.models.department import Department
from cdc_admin.models.user import User, UserRole
from cdc_admin.schemas.user import TeacherCreate, TeacherUpdate, UserResponse
from cdc_admin.services.authorization import Principal, require_admin
from cdc_admin.utils.serialization import to_dict


class InvalidCredentials(Exception):
    """Bad email/password or an inactive account; the endpoint answers 401"""


class UserService:
    """Login and teacher management"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def _by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower().strip()))
        return result.scalar_one_or_none()

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        user = await self._by_email(email)
        if not user or not user.hashed_password or not verify_password(password, user.hashed_password):
            logger.log_auth_event("login", success=False, user_email=email, reason="invalid credentials")
            raise InvalidCredentials("Incorrect email or password")
        if not user.is_active:
            logger.log_auth_event("login", success=False, user_email=email, reason="inactive account")
            raise InvalidCredentials("User account is inactive")

        user.last_login = self.clock.now()
        await self.db.flush()

        set_user_id(str(user.id))
        logger.log_auth_event("login", success=True, user_email=user.email)
        token = create_access_token({"sub": str(user.id), "role": UserRole(user.role).value})
        return {
            "access_token": token,
            "token_type": "bearer",
            "user": to_dict(UserResponse, user),
        }

    async def get_profile(self, principal: Principal) -> Dict[str, Any]:
        user = await self.db.get(User, principal.user_id)
        if not user:
            raise ResourceNotFoundError("User", principal.user_id)
        return to_dict(UserResponse, user)

    async def _check_department(self, department_id: Optional[str]) -> None:
        if department_id and not await self.db.get(Department, department_id):
            raise ResourceNotFoundError("Department", department_id)

    async def create_teacher(self, principal: Principal, data: TeacherCreate) -> Dict[str, Any]:
        require_admin(principal)
        if await self._by_email(data.email):
            raise DuplicateError("Email already registered", field="email")
        await self._check_department(data.department_id)

        teacher = User(
            name=data.name,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=UserRole.TEACHER,
            department_id=data.department_id,
            employee_id=data.employee_id,
            phone=data.phone,
            **self.clock.timestamps(),
        )
        async with unique_write(self.db, lambda exc: DuplicateError("Email or employee ID already registered", field="email")):
            self.db.add(teacher)

        logger.log_domain_event("Users", "teacher_created", teacher_id=teacher.id)
        return to_dict(UserResponse, teacher)

    async def list_teachers(self, principal: Principal, active: Optional[bool] = None) -> List[Dict[str, Any]]:
        require_admin(principal)
        batch_count = (
            select(func.count(Batch.id)).where(Batch.created_by_id == User.id).scalar_subquery()
        )
        query = select(User, batch_count).where(User.role == UserRole.TEACHER)
        if active is not None:
            query = query.where(User.is_active.is_(active))
        result = await self.db.execute(query.order_by(User.name))
        return [to_dict(UserResponse, user, batch_count=count or 0) for user, count in result.all()]

    async def _teacher(self, teacher_id: str) -> User:
        teacher = await self.db.get(User, teacher_id)
        if not teacher or teacher.role != UserRole.TEACHER:
            raise ResourceNotFoundError("Teacher", teacher_id)
        return teacher

    async def update_teacher(self, principal: Principal, teacher_id: str, data: TeacherUpdate) -> Dict[str, Any]:
        require_admin(principal)
        teacher = await self._teacher(teacher_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None or k == "department_id"}

        if "email" in changes and changes["email"] != teacher.email:
            if await self._by_email(changes["email"]):
                raise DuplicateError("Email already registered", field="email")
        await self._check_department(changes.get("department_id"))

        async with unique_write(self.db, lambda exc: DuplicateError("Email or employee ID already registered", field="email")):
            for field, value in changes.items():
                setattr(teacher, field, value)

        logger.log_domain_event("Users", "teacher_updated", teacher_id=teacher_id, fields=sorted(changes))
        return to_dict(UserResponse, teacher)

    async def deactivate_teacher(self, principal: Principal, teacher_id: str) -> Dict[str, Any]:
        require_admin(principal)
        teacher = await self._teacher(teacher_id)
        teacher.is_active = False
        await self.db.flush()
        logger.log_domain_event("Users", "teacher_deactivated", teacher_id=teacher_id)
        return {"message": "Teacher deactivated successfully"}
