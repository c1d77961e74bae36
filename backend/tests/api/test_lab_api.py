"""
Lab bookings: slot conflicts, concurrent booking, apply-previous
"""
import asyncio
from datetime import date

from cdc_admin.core.clock import FixedClock
from cdc_admin.core.exceptions import ConflictError
from cdc_admin.models import Booking, BookingStatus, TimeSlot
from cdc_admin.schemas.lab import BookingCreate
from cdc_admin.services.authorization import Principal
from cdc_admin.services.lab_service import LabService
from tests.conftest import NOW, TestSessionLocal

API = "/api/v1"
SLOT = "09:00 AM - 10:30 AM"


def booking_payload(pc, student=None, **overrides):
    payload = {
        "pc_id": pc.id,
        "date": "2025-01-15",
        "time_slot": SLOT,
        "student_name": student.name if student else "Walk-in",
    }
    if student is not None:
        payload["student_id"] = student.id
    payload.update(overrides)
    return payload


class TestBooking:
    async def test_create_booking(self, client, students, pc, teacher_headers):
        response = await client.post(f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc, students[0]))
        assert response.status_code == 201
        data = response.json()
        assert data["booking"]["pc_number"] == "PC17"
        assert data["booking"]["teacher_name"] == "Asha Teacher"
        assert data["booking"]["batch_id"] == students[0].batch_id
        assert data["update_event"]["type"] == "booking_created"

    async def test_same_pc_and_slot_conflicts(self, client, students, pc, teacher_headers):
        await client.post(f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc, students[0]))
        response = await client.post(
            f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc, students[1])
        )
        assert response.status_code == 409
        assert response.json()["message"] == f"PC PC17 is already booked for {SLOT} on 2025-01-15"

    async def test_past_date_rejected(self, client, students, pc, teacher_headers):
        response = await client.post(
            f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc, date="2025-01-14")
        )
        assert response.status_code == 400

    async def test_cancelled_booking_frees_the_slot(self, client, students, pc, teacher_headers):
        first = await client.post(f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc))
        booking_id = first.json()["booking"]["id"]
        cancelled = await client.put(
            f"{API}/lab/bookings/{booking_id}", headers=teacher_headers, json={"status": "cancelled"}
        )
        assert cancelled.status_code == 200

        again = await client.post(f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc))
        assert again.status_code == 201

    async def test_clear_bulk_deletes_the_day(self, client, students, pc, teacher_headers):
        await client.post(f"{API}/lab/bookings", headers=teacher_headers, json=booking_payload(pc))
        response = await client.request(
            "DELETE", f"{API}/lab/bookings/clear-bulk", headers=teacher_headers, json={"date": "2025-01-15"}
        )
        assert response.status_code == 200
        assert response.json()["deleted_count"] == 1

        listing = await client.get(f"{API}/lab/bookings", params={"date": "2025-01-15"}, headers=teacher_headers)
        assert listing.json() == []


class TestApplyPrevious:
    async def test_applying_twice_creates_nothing_new(self, client, db_session, teacher_user, students, pc, teacher_headers):
        db_session.add(Booking(
            pc_id=pc.id,
            date=date(2025, 1, 14),
            time_slot=TimeSlot.SLOT_1030,
            booked_for=students[0].name,
            student_id=students[0].id,
            student_name=students[0].name,
            teacher_name=teacher_user.name,
            batch_id=students[0].batch_id,
            status=BookingStatus.BOOKED,
            booked_by_id=teacher_user.id,
        ))
        await db_session.commit()

        first = await client.post(
            f"{API}/lab/bookings/apply-previous", headers=teacher_headers, json={"target_date": "2025-01-15"}
        )
        assert first.status_code == 200
        assert first.json()["applied_count"] == 1

        second = await client.post(
            f"{API}/lab/bookings/apply-previous", headers=teacher_headers, json={"target_date": "2025-01-15"}
        )
        assert second.json()["applied_count"] == 0
        assert second.json()["skipped_count"] == 1


class TestConcurrentBooking:
    async def test_only_one_of_two_racing_bookings_wins(self, db_session, teacher_user, pc):
        await db_session.commit()
        principal = Principal.from_user(teacher_user)

        async def book(student_name):
            async with TestSessionLocal() as session:
                service = LabService(session, FixedClock(NOW))
                try:
                    result = await service.create_booking(principal, BookingCreate(
                        pc_id=pc.id, date=date(2025, 1, 15), time_slot=TimeSlot.SLOT_1400, student_name=student_name,
                    ))
                    await session.commit()
                    return result
                except ConflictError as e:
                    await session.rollback()
                    return e

        outcomes = await asyncio.gather(book("Kiran"), book("Divya"))

        conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
        assert len(conflicts) == 1
        assert sum(1 for o in outcomes if isinstance(o, dict) and o["success"]) == 1

        async with TestSessionLocal() as session:
            lab = LabService(session, FixedClock(NOW))
            assert len(await lab.list_bookings(day=date(2025, 1, 15), time_slot=TimeSlot.SLOT_1400)) == 1
