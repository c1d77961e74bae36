"""
Project lifecycle: assignment, submission, grading, completion
"""
import pytest
from sqlalchemy import func, select

from cdc_admin.models.project import Project, ProjectAnalytics, ProjectSubmission

API = "/api/v1"


@pytest.fixture
async def finished_batch(db_session, hierarchy):
    batch = hierarchy["batch"]
    batch.is_finished = True
    await db_session.commit()
    return batch


@pytest.fixture
async def project(client, finished_batch, students, teacher_headers):
    response = await client.post(f"{API}/projects", headers=teacher_headers, json={
        "title": "Residential Floor Plan",
        "description": "Draft a two-storey residential plan in AutoCAD",
        "batch_id": finished_batch.id,
        "deadline_date": "2025-01-20T10:00:00",
    })
    assert response.status_code == 201
    return response.json()


async def submit(client, headers, project, student):
    response = await client.post(
        f"{API}/projects/{project['id']}/submit", headers=headers, json={"student_id": student.id}
    )
    assert response.status_code == 201
    return response.json()


class TestAssignment:
    async def test_unfinished_batch_is_rejected(self, client, hierarchy, teacher_headers):
        response = await client.post(f"{API}/projects", headers=teacher_headers, json={
            "title": "Too early",
            "description": "Batch is still running",
            "batch_id": hierarchy["batch"].id,
            "deadline_date": "2025-01-20T10:00:00",
        })
        assert response.status_code == 409

    async def test_one_active_project_per_batch(self, client, project, finished_batch, teacher_headers):
        response = await client.post(f"{API}/projects", headers=teacher_headers, json={
            "title": "Second project",
            "description": "Should not be allowed",
            "batch_id": finished_batch.id,
            "deadline_date": "2025-01-25T10:00:00",
        })
        assert response.status_code == 409
        assert response.json()["message"] == "This batch already has an active project"

    async def test_deadline_before_assignment(self, client, finished_batch, teacher_headers):
        response = await client.post(f"{API}/projects", headers=teacher_headers, json={
            "title": "Backwards",
            "description": "Deadline in the past",
            "batch_id": finished_batch.id,
            "deadline_date": "2025-01-10T10:00:00",
        })
        assert response.status_code == 400


class TestSubmissionAndGrading:
    async def test_early_submission_graded(self, client, project, students, teacher_headers):
        submission = await submit(client, teacher_headers, project, students[0])
        assert submission["submission_timing"] == "early"
        assert submission["days_from_deadline"] == 5
        assert submission["attendance_score"] == 0

        response = await client.put(
            f"{API}/projects/submissions/{submission['id']}/grade",
            headers=teacher_headers,
            json={"grade": 80, "feedback": "Clean layers"},
        )
        assert response.status_code == 200
        graded = response.json()
        # 80 * 0.7 + 0 * 0.2 + 100 * 0.1
        assert graded["final_score"] == 66
        assert graded["performance_grade"] == "B"
        assert graded["rank"] == 1
        assert graded["status"] == "graded"

    async def test_duplicate_submission(self, client, project, students, teacher_headers):
        await submit(client, teacher_headers, project, students[0])
        response = await client.post(
            f"{API}/projects/{project['id']}/submit", headers=teacher_headers, json={"student_id": students[0].id}
        )
        assert response.status_code == 409

    async def test_score_above_max_is_400(self, client, project, students, teacher_headers):
        submission = await submit(client, teacher_headers, project, students[0])
        response = await client.put(
            f"{API}/projects/submissions/{submission['id']}/grade", headers=teacher_headers, json={"score": 101}
        )
        assert response.status_code == 400

    async def test_other_teacher_cannot_grade(self, client, project, students, teacher_headers, other_teacher_headers):
        submission = await submit(client, teacher_headers, project, students[0])
        response = await client.put(
            f"{API}/projects/submissions/{submission['id']}/grade", headers=other_teacher_headers, json={"score": 50}
        )
        assert response.status_code == 403


class TestCompletion:
    async def test_ungraded_submissions_block_completion(self, client, project, students, teacher_headers):
        await submit(client, teacher_headers, project, students[0])
        response = await client.put(f"{API}/projects/{project['id']}/complete", headers=teacher_headers, json={})
        assert response.status_code == 409

    async def test_force_complete_auto_grades(self, client, project, students, teacher_headers):
        first = await submit(client, teacher_headers, project, students[0])
        await submit(client, teacher_headers, project, students[1])
        await client.put(
            f"{API}/projects/submissions/{first['id']}/grade", headers=teacher_headers, json={"score": 90}
        )

        response = await client.put(
            f"{API}/projects/{project['id']}/complete", headers=teacher_headers, json={"forceComplete": True}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["project"]["status"] == "completed"
        assert body["statistics"]["auto_graded_submissions"] == 1
        assert body["statistics"]["completion_rate"] == 100

        listing = await client.get(
            f"{API}/projects/{project['id']}/submissions",
            params={"sortBy": "rank", "order": "asc"},
            headers=teacher_headers,
        )
        ranked = listing.json()["submissions"]
        assert [s["final_score"] for s in ranked] == [73, 66]
        assert [s["rank"] for s in ranked] == [1, 2]
        assert ranked[1]["score"] == 80
        assert ranked[1]["feedback"] == "Auto-graded during project completion"

    async def test_completed_project_stops_accepting_submissions(self, client, project, students, teacher_headers):
        first = await submit(client, teacher_headers, project, students[0])
        await client.put(f"{API}/projects/submissions/{first['id']}/grade", headers=teacher_headers, json={"score": 70})
        await client.put(f"{API}/projects/{project['id']}/complete", headers=teacher_headers)

        response = await client.post(
            f"{API}/projects/{project['id']}/submit", headers=teacher_headers, json={"student_id": students[1].id}
        )
        assert response.status_code == 409


class TestFiles:
    async def test_multipart_upload_and_download(self, client, project, students, teacher_headers):
        response = await client.post(
            f"{API}/projects/{project['id']}/submit",
            headers=teacher_headers,
            data={"student_id": students[0].id, "description": "Final drawings"},
            files=[("files[]", ("floor-plan.dwg", b"AC1032 drawing bytes", "application/acad"))],
        )
        assert response.status_code == 201
        submission = response.json()
        assert len(submission["files"]) == 1
        record = submission["files"][0]
        assert record["original_name"] == "floor-plan.dwg"
        assert "path" not in record

        download = await client.get(
            f"{API}/projects/submissions/{submission['id']}/download/{record['file_name']}",
            headers=teacher_headers,
        )
        assert download.status_code == 200
        assert download.content == b"AC1032 drawing bytes"

    async def test_disallowed_extension(self, client, project, students, teacher_headers):
        response = await client.post(
            f"{API}/projects/{project['id']}/submit",
            headers=teacher_headers,
            data={"student_id": students[0].id},
            files=[("files", ("virus.exe", b"MZ", "application/octet-stream"))],
        )
        assert response.status_code == 400
        assert response.json()["message"] == "File type .exe is not allowed"


async def grade(client, headers, submission, score):
    response = await client.put(
        f"{API}/projects/submissions/{submission['id']}/grade", headers=headers, json={"score": score}
    )
    assert response.status_code == 200
    return response.json()


class TestAnalytics:
    async def test_scores_roll_up_into_project_analytics(self, client, finished_batch, students, teacher_headers):
        # Project score only, so each final equals the grade
        response = await client.post(f"{API}/projects", headers=teacher_headers, json={
            "title": "Site Plan",
            "description": "Plot layout with setbacks",
            "batch_id": finished_batch.id,
            "deadline_date": "2025-01-20T10:00:00",
            "weightage": {"project_score": 100, "attendance_score": 0, "submission_timing": 0},
        })
        assert response.status_code == 201
        site_plan = response.json()

        for student, score in zip(students, [95, 70, 40]):
            submission = await submit(client, teacher_headers, site_plan, student)
            await grade(client, teacher_headers, submission, score)

        response = await client.get(f"{API}/projects/{site_plan['id']}/analytics", headers=teacher_headers)
        assert response.status_code == 200
        analytics = response.json()
        assert analytics["final_score_stats"] == {"average": 68.3, "highest": 95, "lowest": 40, "median": 70}
        distribution = analytics["grade_distribution"]
        assert (distribution["A+"], distribution["B+"], distribution["C"]) == (1, 1, 1)
        assert sum(distribution.values()) == 3
        assert analytics["top_performers"][0]["rank"] == 1
        assert analytics["top_performers"][0]["student_id"] == students[0].id
        assert analytics["graded_count"] == 3
        assert analytics["pending_count"] == 2


class TestCascadingDeletes:
    async def test_batch_delete_removes_projects_and_submissions(
        self, client, db_session, project, students, finished_batch, teacher_headers
    ):
        await submit(client, teacher_headers, project, students[0])

        response = await client.delete(f"{API}/batches/{finished_batch.id}", headers=teacher_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["projects_deleted"] == 1
        assert body["submissions_deleted"] == 1
        assert body["students_deleted"] == 5

        for model, column in ((Project, Project.batch_id), (ProjectSubmission, ProjectSubmission.batch_id)):
            remaining = await db_session.execute(select(func.count(model.id)).where(column == finished_batch.id))
            assert remaining.scalar() == 0
        analytics = await db_session.execute(
            select(func.count(ProjectAnalytics.id)).where(ProjectAnalytics.project_id == project["id"])
        )
        assert analytics.scalar() == 0

    async def test_student_delete_removes_submission_and_reranks(
        self, client, db_session, project, students, teacher_headers
    ):
        first = await submit(client, teacher_headers, project, students[0])
        second = await submit(client, teacher_headers, project, students[1])
        await grade(client, teacher_headers, first, 90)
        await grade(client, teacher_headers, second, 60)

        response = await client.delete(f"{API}/students/{students[0].id}", headers=teacher_headers)
        assert response.status_code == 200
        assert response.json()["submissions_deleted"] == 1

        listing = await client.get(f"{API}/projects/{project['id']}/submissions", headers=teacher_headers)
        remaining = listing.json()["submissions"]
        assert [s["id"] for s in remaining] == [second["id"]]
        assert remaining[0]["rank"] == 1

        analytics = (await client.get(f"{API}/projects/{project['id']}/analytics", headers=teacher_headers)).json()
        assert analytics["submitted_count"] == 1
        assert analytics["total_students"] == 4
        assert analytics["final_score_stats"]["highest"] == 52
