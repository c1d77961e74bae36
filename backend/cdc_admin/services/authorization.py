"""
Authorization predicates.

Every mutating operation resolves its target entities first and then asks
one of the ``can_*`` predicates whether the principal may act on them. The
``require_*`` helpers turn a failed check into ``AuthorizationError``; when
the target is missing a non-admin gets the same error, so callers cannot
probe for the existence of records they may not touch.
"""
from dataclasses import dataclass
from typing import Any, Optional

from cdc_admin.core.exceptions import AuthorizationError, ResourceNotFoundError
from cdc_admin.models.user import User, UserRole


@dataclass(frozen=True)
class Principal:
    """The authenticated user a request runs on behalf of"""
    user_id: str
    role: UserRole
    name: str = ""
    department_id: Optional[str] = None
    student_record_id: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=str(user.id),
            role=UserRole(user.role),
            name=user.name,
            department_id=str(user.department_id) if user.department_id else None,
            student_record_id=str(user.student_record_id) if user.student_record_id else None,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT


def can_write_batch(principal: Principal, batch) -> bool:
    return principal.is_admin or str(batch.created_by_id) == principal.user_id


def can_write_attendance(principal: Principal, batch) -> bool:
    return can_write_batch(principal, batch)


def can_write_student(principal: Principal, batch) -> bool:
    """Teachers may change students of batches they own; ``batch`` is the student's batch"""
    return can_write_batch(principal, batch)


def can_write_project(principal: Principal, project, batch) -> bool:
    if principal.is_admin:
        return True
    return principal.user_id in (str(project.assigned_by_id), str(batch.created_by_id))


def can_grade_submission(principal: Principal, project, batch) -> bool:
    return can_write_project(principal, project, batch)


def can_book(principal: Principal) -> bool:
    return principal is not None


def can_submit_project(principal: Principal, student, project) -> bool:
    """Staff may submit on behalf of a student; a student only for themselves in their own batch"""
    if str(student.batch_id) != str(project.batch_id):
        return False
    if principal.is_admin or principal.is_teacher:
        return True
    own_id = principal.student_record_id or principal.user_id
    return own_id == str(student.id)


def require(allowed: bool, message: Optional[str] = None) -> None:
    if not allowed:
        raise AuthorizationError(message) if message else AuthorizationError()


def require_admin(principal: Principal) -> None:
    require(principal.is_admin, "Admin access required")


def require_staff(principal: Principal) -> None:
    require(principal.is_admin or principal.is_teacher, "Teacher access required")


def require_found(principal: Principal, entity: Any, resource_type: str, resource_id: Optional[str] = None):
    """
    Return ``entity`` or raise.

    Admins learn that the record is missing; everyone else gets the same
    answer they would get for a record they do not own.
    """
    if entity is not None:
        return entity
    if principal.is_admin:
        raise ResourceNotFoundError(resource_type, resource_id)
    raise AuthorizationError()
