from datetime import datetime

import pytest
from pydantic import ValidationError

from cdc_admin.schemas.batch import BatchCreate
from cdc_admin.schemas.notification import NotificationCreate
from cdc_admin.schemas.project import CompleteRequest, GradeRequest
from cdc_admin.schemas.student import StudentCreate, StudentUpdate


def _student(**overrides):
    data = {"name": "Meera", "department_id": "d1", "course_id": "c1", "batch_id": "b1"}
    data.update(overrides)
    return data


class TestStudentSchemas:
    def test_roll_number_aliases(self):
        assert StudentCreate(**_student(rollNumber=" 7 ")).roll_no == "7"
        assert StudentCreate(**_student(rollNo="8")).roll_no == "8"
        assert StudentUpdate(roll_number="9").roll_no == "9"

    def test_identifiers_are_normalized(self):
        student = StudentCreate(**_student(student_id=" cad-01 ", email="Meera@Example.COM"))
        assert student.student_id == "CAD-01"
        assert student.email == "meera@example.com"

    def test_fees_paid_cannot_exceed_total(self):
        with pytest.raises(ValidationError, match="Fees paid cannot exceed total fees"):
            StudentCreate(**_student(fees_paid=5000, total_fees=4000))

    def test_partial_update_skips_fee_check(self):
        assert StudentUpdate(fees_paid=5000).fees_paid == 5000


class TestProjectSchemas:
    def test_grade_alias(self):
        assert GradeRequest(grade=85).score == 85
        assert GradeRequest(score=70, feedback="Good").feedback == "Good"

    def test_negative_score_rejected(self):
        with pytest.raises(ValidationError):
            GradeRequest(score=-1)

    def test_complete_request_aliases(self):
        request = CompleteRequest(forceComplete=True, completionNotes="Wrapped up")
        assert request.force_complete is True
        assert request.completion_notes == "Wrapped up"
        assert CompleteRequest().force_complete is False


class TestNotificationSchemas:
    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError, match="Title and message are required"):
            NotificationCreate(title="   ", message="Lab closed")

    def test_specific_audience_needs_teachers(self):
        with pytest.raises(ValidationError):
            NotificationCreate(title="Leave", message="Tomorrow", target_audience="specific_teachers")

    def test_department_audience_needs_department(self):
        with pytest.raises(ValidationError):
            NotificationCreate(title="Leave", message="Tomorrow", target_audience="department")


def test_batch_end_date_must_follow_start():
    with pytest.raises(ValidationError, match="End date must be after start date"):
        BatchCreate(
            name="ACAD Evening",
            course_id="c1",
            academic_year="2025",
            section="B",
            timing="03:30 PM - 05:00 PM",
            start_date=datetime(2025, 2, 1),
            end_date=datetime(2025, 1, 1),
        )
