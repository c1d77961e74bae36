"""
Notifications: recipient resolution, email fan-out and read receipts
"""

API = "/api/v1"


class TestCreate:
    async def test_emails_every_active_teacher(self, client, admin_headers, teacher_user, other_teacher, notifier):
        response = await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Lab closed",
            "message": "The lab is closed on Friday for maintenance",
            "priority": "high",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["email_results"] == {"total": 2, "sent": 2, "failed": 0}
        assert body["notification"]["email_sent"] is True
        assert {m["to"] for m in notifier.sent} == {teacher_user.email, other_teacher.email}

    async def test_one_failed_email_does_not_stop_the_rest(
        self, client, admin_headers, teacher_user, other_teacher, notifier
    ):
        notifier.failing.add(other_teacher.email)
        response = await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Exam schedule",
            "message": "Final exams start next Monday",
        })
        assert response.json()["email_results"] == {"total": 2, "sent": 1, "failed": 1}

    async def test_specific_teachers_only(self, client, admin_headers, teacher_user, other_teacher, notifier):
        response = await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Leave approved",
            "message": "Your leave for 20 Jan is approved",
            "type": "leave",
            "target_audience": "specific_teachers",
            "target_teachers": [teacher_user.id],
        })
        assert response.status_code == 201
        assert [m["to"] for m in notifier.sent] == [teacher_user.email]

    async def test_teacher_cannot_create(self, client, teacher_headers):
        response = await client.post(f"{API}/notifications", headers=teacher_headers, json={
            "title": "Hello", "message": "World",
        })
        assert response.status_code == 403


class TestInbox:
    async def test_urgent_first_and_read_receipts(self, client, admin_headers, teacher_user, teacher_headers, clock):
        await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Routine", "message": "Submit timesheets", "priority": "low", "send_email": False,
        })
        clock.advance(minutes=5)
        await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Fire drill", "message": "Evacuate at 11:00", "priority": "urgent", "send_email": False,
        })

        inbox = (await client.get(f"{API}/notifications/teacher", headers=teacher_headers)).json()
        assert [n["title"] for n in inbox["notifications"]] == ["Fire drill", "Routine"]
        assert inbox["unread_count"] == 2

        urgent_id = inbox["notifications"][0]["id"]
        first = await client.put(f"{API}/notifications/{urgent_id}/read", headers=teacher_headers)
        second = await client.put(f"{API}/notifications/{urgent_id}/read", headers=teacher_headers)
        assert first.status_code == second.status_code == 200
        assert first.json()["read_at"] == second.json()["read_at"]

        inbox = (await client.get(
            f"{API}/notifications/teacher", params={"unreadOnly": "true"}, headers=teacher_headers
        )).json()
        assert inbox["unread_count"] == 1
        assert [n["title"] for n in inbox["notifications"]] == ["Routine"]

    async def test_expired_notifications_are_hidden(self, client, admin_headers, teacher_user, teacher_headers, clock):
        await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Today only", "message": "Canteen closed", "expires_at": "2025-01-15T12:00:00",
            "send_email": False,
        })
        clock.advance(hours=3)
        inbox = (await client.get(f"{API}/notifications/teacher", headers=teacher_headers)).json()
        assert inbox["notifications"] == []

    async def test_deleted_notification_leaves_inbox(self, client, admin_headers, teacher_user, teacher_headers):
        created = await client.post(f"{API}/notifications", headers=admin_headers, json={
            "title": "Oops", "message": "Sent by mistake", "send_email": False,
        })
        notification_id = created.json()["notification"]["id"]
        assert (await client.delete(f"{API}/notifications/{notification_id}", headers=admin_headers)).status_code == 200

        inbox = (await client.get(f"{API}/notifications/teacher", headers=teacher_headers)).json()
        assert inbox["notifications"] == []
