from types import SimpleNamespace

import pytest

from cdc_admin.core.exceptions import AuthorizationError, ResourceNotFoundError
from cdc_admin.models.user import UserRole
from cdc_admin.services.authorization import (
    Principal,
    can_write_batch,
    can_write_attendance,
    can_write_project,
    can_grade_submission,
    can_submit_project,
    require_admin,
    require_staff,
    require_found,
)

ADMIN = Principal(user_id="admin-1", role=UserRole.ADMIN)
OWNER = Principal(user_id="teacher-1", role=UserRole.TEACHER)
STRANGER = Principal(user_id="teacher-2", role=UserRole.TEACHER)
STUDENT = Principal(user_id="user-9", role=UserRole.STUDENT, student_record_id="student-9")

BATCH = SimpleNamespace(id="batch-1", created_by_id="teacher-1")


class TestBatchOwnership:

    def test_admin_always_passes(self):
        assert can_write_batch(ADMIN, BATCH)

    def test_creator_may_write(self):
        assert can_write_batch(OWNER, BATCH)
        assert can_write_attendance(OWNER, BATCH)

    def test_other_teacher_may_not(self):
        assert not can_write_batch(STRANGER, BATCH)
        assert not can_write_attendance(STRANGER, BATCH)


class TestProjects:

    def test_assigner_or_batch_owner(self):
        project = SimpleNamespace(assigned_by_id="teacher-2", batch_id="batch-1")
        assert can_write_project(STRANGER, project, BATCH)
        assert can_write_project(OWNER, project, BATCH)
        assert can_grade_submission(OWNER, project, BATCH)

    def test_unrelated_teacher_cannot_grade(self):
        project = SimpleNamespace(assigned_by_id="teacher-1", batch_id="batch-1")
        assert not can_grade_submission(STRANGER, project, BATCH)

    def test_student_submits_only_for_self_in_own_batch(self):
        project = SimpleNamespace(batch_id="batch-1")
        own = SimpleNamespace(id="student-9", batch_id="batch-1")
        other = SimpleNamespace(id="student-8", batch_id="batch-1")
        elsewhere = SimpleNamespace(id="student-9", batch_id="batch-2")
        assert can_submit_project(STUDENT, own, project)
        assert not can_submit_project(STUDENT, other, project)
        assert not can_submit_project(STUDENT, elsewhere, project)


class TestGuards:

    def test_require_admin(self):
        require_admin(ADMIN)
        with pytest.raises(AuthorizationError):
            require_admin(OWNER)

    def test_require_staff_rejects_students(self):
        require_staff(OWNER)
        with pytest.raises(AuthorizationError) as exc:
            require_staff(STUDENT)
        assert exc.value.message == "Teacher access required"

    def test_missing_record_is_not_found_for_admin(self):
        with pytest.raises(ResourceNotFoundError):
            require_found(ADMIN, None, "Batch", "nope")

    def test_missing_record_looks_forbidden_to_others(self):
        with pytest.raises(AuthorizationError):
            require_found(OWNER, None, "Batch", "nope")

    def test_found_record_is_returned(self):
        assert require_found(OWNER, BATCH, "Batch") is BATCH
