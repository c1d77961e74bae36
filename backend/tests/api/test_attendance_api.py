"""
Attendance marking and corrected batch statistics
"""
API = "/api/v1"


def mark(student, batch, day="2025-01-15", status="present"):
    return {"student_id": student.id, "batch_id": batch.id, "date": day, "status": status}


class TestMarking:
    async def test_second_mark_updates_in_place(self, client, hierarchy, students, teacher_headers):
        batch = hierarchy["batch"]
        first = await client.post(f"{API}/attendance", headers=teacher_headers, json=mark(students[0], batch))
        assert first.status_code == 201
        assert first.json()["message"] == "Attendance marked successfully"

        second = await client.post(
            f"{API}/attendance", headers=teacher_headers, json=mark(students[0], batch, status="late")
        )
        assert second.status_code == 200
        assert second.json()["attendance"]["id"] == first.json()["attendance"]["id"]
        assert second.json()["attendance"]["status"] == "late"

        history = await client.get(f"{API}/attendance/student/{students[0].id}", headers=teacher_headers)
        assert len(history.json()) == 1

    async def test_timestamp_is_truncated_to_local_day(self, client, hierarchy, students, teacher_headers):
        # 20:00 UTC on the 15th is the 16th in the institute's timezone
        response = await client.post(
            f"{API}/attendance",
            headers=teacher_headers,
            json=mark(students[0], hierarchy["batch"], day="2025-01-15T20:00:00Z"),
        )
        assert response.status_code == 201
        assert response.json()["attendance"]["date"] == "2025-01-16"

    async def test_student_from_another_batch(self, client, hierarchy, students, admin_headers):
        response = await client.post(
            f"{API}/attendance", headers=admin_headers, json=mark(students[0], hierarchy["other_batch"])
        )
        assert response.status_code == 400

    async def test_bulk_reports_failures_per_row(self, client, hierarchy, students, teacher_headers):
        response = await client.post(f"{API}/attendance/bulk", headers=teacher_headers, json={
            "batch_id": hierarchy["batch"].id,
            "date": "2025-01-15",
            "records": [
                {"student_id": students[0].id, "status": "present"},
                {"student_id": "missing-student", "status": "absent"},
            ],
        })
        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["created"] == 1
        assert summary["failed"] == 1


class TestBatchStats:
    async def test_missing_records_count_as_absent(self, client, hierarchy, make_students, teacher_headers):
        batch = hierarchy["batch"]
        pupils = await make_students(batch, 10)
        days = {
            "2025-01-13": ["present"] * 10,
            "2025-01-14": ["present"] * 8 + ["absent"] * 2,
            # one student is never marked on the last day
            "2025-01-15": ["present"] * 7 + ["absent"] * 2,
        }
        for day, statuses in days.items():
            response = await client.post(f"{API}/attendance/bulk", headers=teacher_headers, json={
                "batch_id": batch.id,
                "date": day,
                "records": [
                    {"student_id": s.id, "status": status} for s, status in zip(pupils, statuses)
                ],
            })
            assert response.status_code == 200

        stats = (await client.get(f"{API}/attendance/stats/batch/{batch.id}", headers=teacher_headers)).json()
        assert stats["present_count"] == 25
        assert stats["unique_dates_count"] == 3
        assert stats["student_count"] == 10
        assert stats["expected_total_records"] == 30
        assert stats["present_percentage"] == 83.3
        assert stats["absent_percentage"] == 13.3

    async def test_batch_view_lists_unmarked_students(self, client, hierarchy, students, teacher_headers):
        batch = hierarchy["batch"]
        await client.post(f"{API}/attendance", headers=teacher_headers, json=mark(students[0], batch))

        response = await client.get(
            f"{API}/attendance/batch/{batch.id}", params={"date": "2025-01-15"}, headers=teacher_headers
        )
        rows = response.json()
        assert len(rows) == 5
        assert sum(1 for row in rows if row["attendance"] is None) == 4
