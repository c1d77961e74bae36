"""
Department -> course -> batch -> student consistency
"""
from datetime import date, timedelta

from sqlalchemy import func, select

from cdc_admin.models import Batch, Student, TimeSlot
from cdc_admin.models.attendance import Attendance, AttendanceStatus
from tests.conftest import NOW

API = "/api/v1"


def student_payload(hierarchy, **overrides):
    payload = {
        "name": "Meera Nair",
        "department_id": hierarchy["department"].id,
        "course_id": hierarchy["course"].id,
        "batch_id": hierarchy["batch"].id,
        "total_fees": 15000,
        "fees_paid": 5000,
    }
    payload.update(overrides)
    return payload


class TestStudentCreation:
    async def test_batch_from_another_course_is_rejected(self, client, hierarchy, admin_headers):
        response = await client.post(
            f"{API}/students",
            headers=admin_headers,
            json=student_payload(hierarchy, batch_id=hierarchy["other_batch"].id),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "HIERARCHY_MISMATCH"
        assert body["message"] == "Batch does not belong to the selected course"

    async def test_roll_number_is_assigned(self, client, hierarchy, students, teacher_headers):
        response = await client.post(f"{API}/students", headers=teacher_headers, json=student_payload(hierarchy))
        assert response.status_code == 201
        data = response.json()
        assert data["roll_no"] == "6"
        assert data["student_id"].startswith("TEMP")

    async def test_duplicate_roll_number_in_batch(self, client, hierarchy, students, admin_headers):
        response = await client.post(
            f"{API}/students", headers=admin_headers, json=student_payload(hierarchy, rollNumber="1")
        )
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE"

    async def test_fees_paid_over_total_is_400(self, client, hierarchy, admin_headers):
        response = await client.post(
            f"{API}/students", headers=admin_headers, json=student_payload(hierarchy, fees_paid=20000)
        )
        assert response.status_code == 400
        assert "Fees paid cannot exceed total fees" in response.json()["message"]

    async def test_next_roll_number(self, client, hierarchy, students, teacher_headers):
        response = await client.get(
            f"{API}/students/batch/{hierarchy['batch'].id}/next-roll-number", headers=teacher_headers
        )
        assert response.status_code == 200
        assert response.json()["next_roll_number"] == "6"


class TestDeletion:
    async def test_course_with_batches_cannot_be_deleted(self, client, hierarchy, admin_headers):
        response = await client.delete(f"{API}/courses/{hierarchy['course'].id}", headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "DEPENDENCY"

    async def test_unknown_batch_is_404_for_admin(self, client, admin_headers):
        response = await client.get(f"{API}/batches/does-not-exist", headers=admin_headers)
        assert response.status_code == 404


async def mark_days(db_session, batch, students, days=2):
    for offset in range(days):
        for student in students:
            db_session.add(Attendance(
                student_id=student.id, batch_id=batch.id,
                date=date(2025, 1, 10) + timedelta(days=offset), status=AttendanceStatus.PRESENT,
            ))
    await db_session.commit()


async def count(db_session, column, *criteria):
    return (await db_session.execute(select(func.count(column)).where(*criteria))).scalar()


class TestCascadingDeletes:
    async def test_batch_delete_removes_students_and_attendance(
        self, client, db_session, hierarchy, students, teacher_headers
    ):
        batch = hierarchy["batch"]
        await mark_days(db_session, batch, students)

        response = await client.delete(f"{API}/batches/{batch.id}", headers=teacher_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["students_deleted"] == 5
        assert body["attendance_deleted"] == 10

        assert await count(db_session, Student.id, Student.batch_id == batch.id) == 0
        assert await count(db_session, Attendance.id, Attendance.batch_id == batch.id) == 0
        assert await count(db_session, Batch.id, Batch.id == batch.id) == 0

    async def test_student_delete_removes_attendance(self, client, db_session, hierarchy, students, teacher_headers):
        await mark_days(db_session, hierarchy["batch"], students[:2], days=3)

        response = await client.delete(f"{API}/students/{students[0].id}", headers=teacher_headers)
        assert response.status_code == 200
        assert response.json()["attendance_deleted"] == 3

        assert await count(db_session, Attendance.id, Attendance.student_id == students[0].id) == 0
        assert await count(db_session, Attendance.id, Attendance.student_id == students[1].id) == 3


class TestFinishToggle:
    async def test_finish_stamps_and_reopen_clears_end_date(self, client, hierarchy, teacher_headers):
        url = f"{API}/batches/{hierarchy['batch'].id}/toggle-finished"

        finished = await client.put(url, headers=teacher_headers)
        assert finished.status_code == 200
        assert finished.json()["is_finished"] is True
        assert finished.json()["end_date"] == "2025-01-15T10:00:00"

        reopened = await client.put(url, headers=teacher_headers)
        assert reopened.json()["is_finished"] is False
        assert reopened.json()["end_date"] is None

    async def test_batch_that_has_not_started_cannot_finish(self, client, db_session, hierarchy, teacher_user, teacher_headers):
        upcoming = Batch(
            name="ACAD Next Term", course_id=hierarchy["course"].id, academic_year="2024-25", section="C",
            timing=TimeSlot.SLOT_1030, start_date=NOW + timedelta(days=10), created_by_id=teacher_user.id,
        )
        db_session.add(upcoming)
        await db_session.commit()

        response = await client.put(f"{API}/batches/{upcoming.id}/toggle-finished", headers=teacher_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot finish a batch before its start date"

        await db_session.refresh(upcoming)
        assert upcoming.is_finished is False
        assert upcoming.end_date is None

    async def test_created_at_follows_the_clock(self, client, hierarchy, teacher_headers):
        response = await client.post(f"{API}/batches", headers=teacher_headers, json={
            "name": "ACAD Weekend",
            "course_id": hierarchy["course"].id,
            "academic_year": "2024-25",
            "section": "W",
            "timing": TimeSlot.SLOT_1400.value,
            "start_date": "2025-01-20T09:00:00",
        })
        assert response.status_code == 201
        assert response.json()["created_at"] == "2025-01-15T10:00:00"


class TestStudentIdentity:
    async def test_teacher_cannot_change_student_id(self, client, students, teacher_headers):
        response = await client.put(
            f"{API}/students/{students[0].id}", headers=teacher_headers, json={"student_id": "CADD2025001"}
        )
        assert response.status_code == 403

    async def test_student_id_is_globally_unique(self, client, students, admin_headers):
        first = await client.put(
            f"{API}/students/{students[0].id}", headers=admin_headers, json={"student_id": "cadd2025001"}
        )
        assert first.status_code == 200
        assert first.json()["student_id"] == "CADD2025001"

        second = await client.put(
            f"{API}/students/{students[1].id}", headers=admin_headers, json={"student_id": "CADD2025001"}
        )
        assert second.status_code == 409
        assert second.json()["code"] == "DUPLICATE"
        assert second.json()["message"] == "Student ID already exists"


class TestCapacityAndBulk:
    async def test_full_batch_rejects_new_student(self, client, db_session, hierarchy, students, admin_headers):
        hierarchy["batch"].max_students = 5
        await db_session.commit()

        response = await client.post(f"{API}/students", headers=admin_headers, json=student_payload(hierarchy))
        assert response.status_code == 409
        assert response.json()["code"] == "CAPACITY"

    async def test_bulk_create_reports_failures_per_row(self, client, db_session, hierarchy, teacher_headers):
        rows = [
            student_payload(hierarchy, name="Kavya Menon"),
            student_payload(hierarchy, name="Arjun Das", batch_id=hierarchy["other_batch"].id),
            student_payload(hierarchy, name="Nikhil Rao", fees_paid=20000),
        ]
        response = await client.post(f"{API}/students/bulk", headers=teacher_headers, json={"students": rows})
        assert response.status_code == 201
        body = response.json()
        assert [s["name"] for s in body["created"]] == ["Kavya Menon"]
        assert [e["index"] for e in body["errors"]] == [1, 2]
        assert body["errors"][0]["code"] == "HIERARCHY_MISMATCH"
        assert body["errors"][1]["message"] == "Fees paid cannot exceed total fees"
        assert await count(db_session, Student.id, Student.batch_id == hierarchy["batch"].id) == 1
