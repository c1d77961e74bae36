"""
Authentication and role checks at the HTTP boundary
"""
import pytest

API = "/api/v1"


class TestLogin:
    async def test_login_returns_token(self, client, teacher_user):
        response = await client.post(f"{API}/users/login", json={
            "email": teacher_user.email,
            "password": "teacherpassword123",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["email"] == teacher_user.email

    async def test_wrong_password_is_401(self, client, teacher_user):
        response = await client.post(f"{API}/users/login", json={
            "email": teacher_user.email,
            "password": "not-the-password",
        })
        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_profile_with_token(self, client, teacher_user, teacher_headers):
        response = await client.get(f"{API}/users/profile", headers=teacher_headers)
        assert response.status_code == 200
        assert response.json()["id"] == teacher_user.id


class TestAccessControl:
    async def test_missing_token_is_401(self, client, hierarchy):
        response = await client.get(f"{API}/batches")
        assert response.status_code == 401

    async def test_garbage_token_is_401(self, client, hierarchy):
        response = await client.get(f"{API}/batches", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_teacher_cannot_create_departments(self, client, teacher_headers):
        response = await client.post(
            f"{API}/departments", headers=teacher_headers, json={"name": "CADD", "code": "CADD2"}
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    async def test_other_teacher_cannot_mark_attendance(self, client, hierarchy, students, other_teacher_headers):
        response = await client.post(f"{API}/attendance", headers=other_teacher_headers, json={
            "student_id": students[0].id,
            "batch_id": hierarchy["batch"].id,
            "date": "2025-01-15",
            "status": "present",
        })
        assert response.status_code == 403

    async def test_admin_only_teacher_listing(self, client, teacher_headers, admin_headers):
        assert (await client.get(f"{API}/users/teachers", headers=teacher_headers)).status_code == 403
        assert (await client.get(f"{API}/users/teachers", headers=admin_headers)).status_code == 200
