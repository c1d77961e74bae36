"""
Lab Service

PC inventory and slot bookings. A PC holds at most one live booking per
(date, time slot) and a student at most one per (date, time slot); both
rules are partial unique indexes on the bookings table that ignore
cancelled rows. The service checks first so callers get a readable
message, and maps a lost race on the index to the same ConflictError.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.config import settings
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import (
    CapacityError, ConflictError, CDCAdminError, DuplicateError, HierarchyMismatchError,
    ResourceNotFoundError, ValidationError,
)
from cdc_admin.core.logging_config import logger
from cdc_admin.models.attendance import Attendance
from cdc_admin.models.batch import Batch, TimeSlot
from cdc_admin.models.lab import PC, PCStatus, Booking, BookingStatus, LAB_ROWS
from cdc_admin.models.student import Student
from cdc_admin.schemas.lab import (
    PCCreate, PCUpdate, PCResponse, BookingCreate, BookingUpdate, BookingResponse,
)
from cdc_admin.services.authorization import Principal, require, require_admin, require_staff, can_book
from cdc_admin.utils.serialization import to_dict

NOT_MARKED = "not-marked"

SAMPLE_SPECS = {
    "processor": "Intel Core i5",
    "ram": "8GB DDR4",
    "storage": "256GB SSD",
    "graphics": "Integrated",
    "monitor": '22" LED',
}


def _live(query):
    return query.where(Booking.status != BookingStatus.CANCELLED)


def _slot_taken(exc) -> ConflictError:
    return ConflictError("This PC or student is already booked for the selected time slot")


class LabService:
    """PCs, bookings, availability and lab-level reporting"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    # =====================================================
    # PCS
    # =====================================================

    async def get_pc(self, pc_id: str) -> PC:
        pc = await self.db.get(PC, pc_id)
        if not pc:
            raise ResourceNotFoundError("PC", pc_id)
        return pc

    async def list_pcs(self, row: Optional[str] = None, status: Optional[PCStatus] = None) -> List[Dict[str, Any]]:
        query = select(PC)
        if row:
            query = query.where(PC.row == row)
        if status:
            query = query.where(PC.status == status)
        pcs = (await self.db.execute(query.order_by(PC.row, PC.position))).scalars().all()
        return [to_dict(PCResponse, pc) for pc in pcs]

    async def pcs_by_row(self) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {row: [] for row in LAB_ROWS}
        for pc in await self.list_pcs():
            grouped.setdefault(pc["row"], []).append(pc)
        return grouped

    async def _check_pc_number(self, pc_number: str, exclude_id: Optional[str] = None) -> None:
        query = select(PC.id).where(PC.pc_number == pc_number)
        if exclude_id:
            query = query.where(PC.id != exclude_id)
        if (await self.db.execute(query)).first():
            raise DuplicateError(f"PC {pc_number} already exists", field="pc_number")

    async def create_pc(self, principal: Principal, data: PCCreate) -> PC:
        require_admin(principal)
        await self._check_pc_number(data.pc_number)

        pc = PC(
            **data.model_dump(exclude={"specs"}),
            specs=data.specs.model_dump() if data.specs else None,
            **self.clock.timestamps(),
        )
        pc.last_maintenance = self.clock.now()
        async with unique_write(self.db, lambda exc: DuplicateError(f"PC {data.pc_number} already exists", field="pc_number")):
            self.db.add(pc)

        logger.log_domain_event("Lab", "pc_created", pc_id=pc.id, pc_number=pc.pc_number)
        return pc

    async def update_pc(self, principal: Principal, pc_id: str, data: PCUpdate) -> PC:
        require_admin(principal)
        pc = await self.get_pc(pc_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("pc_number") and changes["pc_number"] != pc.pc_number:
            await self._check_pc_number(changes["pc_number"], exclude_id=pc_id)
        if "specs" in changes and data.specs is not None:
            changes["specs"] = data.specs.model_dump()

        async with unique_write(self.db, lambda exc: DuplicateError("PC number already exists", field="pc_number")):
            for field, value in changes.items():
                if value is None and field in ("pc_number", "row", "position", "status"):
                    continue
                setattr(pc, field, value)

        logger.log_domain_event("Lab", "pc_updated", pc_id=pc_id, status=pc.status.value)
        return pc

    async def delete_pc(self, principal: Principal, pc_id: str) -> int:
        """Delete a PC and every booking on it; returns the number of bookings removed"""
        require_admin(principal)
        pc = await self.get_pc(pc_id)
        removed = (await self.db.execute(delete(Booking).where(Booking.pc_id == pc_id))).rowcount
        await self.db.delete(pc)
        await self.db.flush()

        logger.log_domain_event("Lab", "pc_deleted", pc_id=pc_id, bookings_removed=removed)
        return removed

    async def create_sample_pcs(self, principal: Principal) -> Dict[str, Any]:
        """Fill the lab grid with PC{row}{position:02}; numbers that already exist are skipped"""
        require_admin(principal)
        existing = set((await self.db.execute(select(PC.pc_number))).scalars().all())

        created = []
        for row in range(1, settings.LAB_ROWS + 1):
            for position in range(1, settings.LAB_PCS_PER_ROW + 1):
                pc_number = f"PC{row}{position:02d}"
                if pc_number in existing:
                    continue
                pc = PC(
                    pc_number=pc_number,
                    row=str(row),
                    position=position,
                    status=PCStatus.ACTIVE,
                    specs=dict(SAMPLE_SPECS),
                    last_maintenance=self.clock.now(),
                    notes="Sample PC",
                    **self.clock.timestamps(),
                )
                self.db.add(pc)
                created.append(pc)
        await self.db.flush()

        logger.log_domain_event("Lab", "sample_pcs_created", count=len(created))
        return {
            "message": f"Created {len(created)} sample PCs",
            "count": len(created),
            "skipped": len(existing),
            "pcs": [to_dict(PCResponse, pc) for pc in created],
        }

    async def clear_all_pcs(self, principal: Principal) -> Dict[str, Any]:
        require_admin(principal)
        bookings = (await self.db.execute(delete(Booking))).rowcount
        pcs = (await self.db.execute(delete(PC))).rowcount
        await self.db.flush()

        logger.log_domain_event("Lab", "lab_cleared", pcs_deleted=pcs, bookings_deleted=bookings)
        return {"message": f"Deleted {pcs} PCs and {bookings} bookings", "deleted_count": pcs, "bookings_deleted": bookings}

    # =====================================================
    # BOOKINGS
    # =====================================================

    def _booking_dict(self, booking: Booking, pc: Optional[PC] = None) -> Dict[str, Any]:
        return to_dict(
            BookingResponse, booking,
            pc_number=pc.pc_number if pc else None,
            row=pc.row if pc else None,
        )

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    async def get_booking_detail(self, booking_id: str) -> Dict[str, Any]:
        booking = await self.get_booking(booking_id)
        return self._booking_dict(booking, await self.db.get(PC, booking.pc_id))

    async def list_bookings(
        self,
        day: Optional[date] = None,
        time_slot: Optional[TimeSlot] = None,
        pc_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Dict[str, Any]]:
        query = select(Booking, PC).join(PC, PC.id == Booking.pc_id)
        if day:
            query = query.where(Booking.date == day)
        if time_slot:
            query = query.where(Booking.time_slot == time_slot)
        if pc_id:
            query = query.where(Booking.pc_id == pc_id)
        if status:
            query = query.where(Booking.status == status)
        else:
            query = _live(query)

        result = await self.db.execute(query.order_by(Booking.date, Booking.time_slot, PC.row, PC.position))
        return [self._booking_dict(booking, pc) for booking, pc in result.all()]

    async def check_conflicts(
        self,
        pc_id: str,
        day: date,
        time_slot: TimeSlot,
        student_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Raise ConflictError if the PC or the student already holds the slot"""
        pc_query = _live(select(Booking.id).where(
            Booking.pc_id == pc_id, Booking.date == day, Booking.time_slot == time_slot
        ))
        if exclude_id:
            pc_query = pc_query.where(Booking.id != exclude_id)
        if (await self.db.execute(pc_query)).first():
            pc = await self.db.get(PC, pc_id)
            raise ConflictError(
                f"PC {pc.pc_number if pc else pc_id} is already booked for {TimeSlot(time_slot).value} on {day.isoformat()}",
                pc_id=pc_id, date=day.isoformat(), time_slot=TimeSlot(time_slot).value,
            )

        if student_id:
            student_query = _live(select(Booking.id).where(
                Booking.student_id == student_id, Booking.date == day, Booking.time_slot == time_slot
            ))
            if exclude_id:
                student_query = student_query.where(Booking.id != exclude_id)
            if (await self.db.execute(student_query)).first():
                raise ConflictError(
                    f"Student already has a booking for {TimeSlot(time_slot).value} on {day.isoformat()}",
                    student_id=student_id, date=day.isoformat(), time_slot=TimeSlot(time_slot).value,
                )

    async def _resolve_student(self, student_id: Optional[str], batch_id: Optional[str]):
        """Active student and the batch the booking belongs to"""
        if batch_id and not await self.db.get(Batch, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        if not student_id:
            return None, batch_id

        student = await self.db.get(Student, student_id)
        if not student:
            raise ResourceNotFoundError("Student", student_id)
        if not student.is_active:
            raise ValidationError("Cannot book for an inactive student", field="student_id")
        if batch_id and student.batch_id != batch_id:
            raise HierarchyMismatchError(
                "Student does not belong to the selected batch",
                student_id=student_id, batch_id=batch_id,
            )
        return student, batch_id or student.batch_id

    async def _insert_booking(self, principal: Principal, fields: Dict[str, Any]) -> Booking:
        day = fields["date"]
        if day < self.clock.today():
            raise ValidationError("Cannot create bookings for past dates", field="date")

        pc = await self.get_pc(fields["pc_id"])
        if pc.status != PCStatus.ACTIVE:
            raise CapacityError(f"PC {pc.pc_number} is not available for booking", pc_status=pc.status.value)

        student, batch_id = await self._resolve_student(fields.get("student_id"), fields.get("batch_id"))
        await self.check_conflicts(pc.id, day, fields["time_slot"], student.id if student else None)

        booking = Booking(
            pc_id=pc.id,
            date=day,
            time_slot=fields["time_slot"],
            booked_for=fields.get("booked_for") or fields["student_name"],
            student_id=student.id if student else None,
            student_name=fields["student_name"],
            teacher_name=fields.get("teacher_name") or principal.name or "Unknown Teacher",
            batch_id=batch_id,
            purpose=fields.get("purpose") or "Lab Session",
            notes=fields.get("notes"),
            status=BookingStatus.BOOKED,
            booked_by_id=principal.user_id,
            **self.clock.timestamps(),
        )
        async with unique_write(self.db, _slot_taken):
            self.db.add(booking)
        return booking

    def _update_event(self, event_type: str, booking: Booking, pc: PC) -> Dict[str, Any]:
        return {
            "type": event_type,
            "booking_id": booking.id,
            "pc_id": pc.id,
            "pc_number": pc.pc_number,
            "date": booking.date.isoformat(),
            "time_slot": TimeSlot(booking.time_slot).value,
            "timestamp": self.clock.now().isoformat(),
        }

    async def create_booking(self, principal: Principal, data: BookingCreate) -> Dict[str, Any]:
        require(can_book(principal))
        fields = data.model_dump()
        fields["date"] = self.clock.to_local_day(data.date)

        booking = await self._insert_booking(principal, fields)
        pc = await self.db.get(PC, booking.pc_id)
        event = self._update_event("booking_created", booking, pc)
        logger.log_domain_event("Lab", "booking_created", **event)

        return {
            "success": True,
            "message": f"PC {pc.pc_number} booked successfully for {booking.student_name}",
            "booking": self._booking_dict(booking, pc),
            "update_event": event,
        }

    async def update_booking(self, principal: Principal, booking_id: str, data: BookingUpdate) -> Dict[str, Any]:
        require_staff(principal)
        booking = await self.get_booking(booking_id)
        changes = data.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None or k == "notes"}
        if "date" in changes:
            changes["date"] = self.clock.to_local_day(changes["date"])

        pc_id = changes.get("pc_id", booking.pc_id)
        day = changes.get("date", booking.date)
        time_slot = changes.get("time_slot", booking.time_slot)
        status = changes.get("status", booking.status)

        moved = (pc_id, day, TimeSlot(time_slot)) != (booking.pc_id, booking.date, TimeSlot(booking.time_slot))
        reinstated = booking.status == BookingStatus.CANCELLED and status != BookingStatus.CANCELLED
        if status != BookingStatus.CANCELLED and (moved or reinstated):
            if "date" in changes and day < self.clock.today():
                raise ValidationError("Cannot move bookings to past dates", field="date")
            pc = await self.get_pc(pc_id)
            if pc_id != booking.pc_id and pc.status != PCStatus.ACTIVE:
                raise CapacityError(f"PC {pc.pc_number} is not available for booking", pc_status=pc.status.value)
            await self.check_conflicts(pc_id, day, time_slot, booking.student_id, exclude_id=booking.id)

        async with unique_write(self.db, _slot_taken):
            for field, value in changes.items():
                setattr(booking, field, value)

        pc = await self.db.get(PC, booking.pc_id)
        logger.log_domain_event("Lab", "booking_updated", booking_id=booking_id, status=BookingStatus(booking.status).value)
        return {
            "success": True,
            "message": "Booking updated successfully",
            "booking": self._booking_dict(booking, pc),
            "update_event": self._update_event("booking_updated", booking, pc),
        }

    async def delete_booking(self, principal: Principal, booking_id: str) -> Dict[str, Any]:
        require_staff(principal)
        booking = await self.get_booking(booking_id)
        pc = await self.db.get(PC, booking.pc_id)
        deleted = self._booking_dict(booking, pc)
        event = self._update_event("booking_deleted", booking, pc)

        await self.db.delete(booking)
        await self.db.flush()
        logger.log_domain_event("Lab", "booking_deleted", **event)

        return {
            "success": True,
            "message": f"Booking for PC {pc.pc_number} removed successfully",
            "deleted_booking": deleted,
            "update_event": event,
        }

    async def previous_day_bookings(self, day: Optional[date] = None) -> Dict[str, Any]:
        day = day or self.clock.today()
        previous = day - timedelta(days=1)
        bookings = await self.list_bookings(day=previous)
        return {"date": previous.isoformat(), "bookings": bookings, "count": len(bookings)}

    async def apply_previous(
        self, principal: Principal, target: date, source: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Copy the source day's live bookings onto the target day.

        Slots that are already taken on the target day are skipped, so
        applying the same day twice creates nothing the second time.
        """
        require_staff(principal)
        target = self.clock.to_local_day(target)
        source = self.clock.to_local_day(source) if source else target - timedelta(days=1)
        if source == target:
            raise ValidationError("Source and target dates must differ", field="source_date")

        originals = (await self.db.execute(
            _live(select(Booking).where(Booking.date == source)).order_by(Booking.time_slot, Booking.created_at)
        )).scalars().all()

        applied = skipped = 0
        errors: List[Dict[str, Any]] = []
        for original in originals:
            fields = {
                "pc_id": original.pc_id,
                "date": target,
                "time_slot": original.time_slot,
                "booked_for": original.booked_for,
                "student_id": original.student_id,
                "student_name": original.student_name,
                "teacher_name": original.teacher_name,
                "batch_id": original.batch_id,
                "purpose": original.purpose,
                "notes": f"Applied from {source.isoformat()}",
            }
            try:
                await self._insert_booking(principal, fields)
            except ConflictError:
                skipped += 1
                continue
            except CDCAdminError as e:
                errors.append({"booking_id": original.id, "student_name": original.student_name, "error": e.message})
                continue
            applied += 1

        logger.log_domain_event(
            "Lab", "bookings_applied", source=source.isoformat(), target=target.isoformat(),
            applied=applied, skipped=skipped, failed=len(errors),
        )
        return {
            "message": f"Applied {applied} bookings from {source.isoformat()} to {target.isoformat()}",
            "applied_count": applied,
            "skipped_count": skipped,
            "errors": errors,
        }

    async def clear_bulk(
        self,
        principal: Principal,
        day: date,
        time_slots: Optional[List[TimeSlot]] = None,
        pc_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Physically delete the bookings of a day, optionally narrowed by slots and PCs"""
        require_staff(principal)
        day = self.clock.to_local_day(day)
        statement = delete(Booking).where(Booking.date == day)
        if time_slots:
            statement = statement.where(Booking.time_slot.in_(time_slots))
        if pc_ids:
            statement = statement.where(Booking.pc_id.in_(pc_ids))

        deleted = (await self.db.execute(statement)).rowcount
        await self.db.flush()

        logger.log_domain_event("Lab", "bookings_cleared", day=day.isoformat(), deleted=deleted)
        return {"message": f"Cleared {deleted} bookings", "deleted_count": deleted}

    async def availability(self, day: date) -> Dict[str, Any]:
        total_pcs = (await self.db.execute(
            select(func.count(PC.id)).where(PC.status == PCStatus.ACTIVE)
        )).scalar() or 0
        booked = (await self.db.execute(
            _live(select(func.count(Booking.id)).where(Booking.date == day))
        )).scalar() or 0
        return {
            "date": day.isoformat(),
            "total_pcs": total_pcs,
            "booked_pcs": booked,
            "available_pcs": max(0, total_pcs - booked),
        }

    async def bookings_with_attendance(self, day: date, time_slot: Optional[TimeSlot] = None) -> List[Dict[str, Any]]:
        """Each live booking of the day with the booked student's attendance status"""
        bookings = await self.list_bookings(day=day, time_slot=time_slot)
        student_ids = [b["student_id"] for b in bookings if b["student_id"]]
        marks = {}
        if student_ids:
            marks = dict((await self.db.execute(
                select(Attendance.student_id, Attendance.status)
                .where(Attendance.student_id.in_(student_ids), Attendance.date == day)
            )).all())

        for booking in bookings:
            status = marks.get(booking["student_id"])
            booking["attendance_status"] = status.value if status else NOT_MARKED
        return bookings

    def lab_info(self) -> Dict[str, Any]:
        return {
            "lab_name": settings.LAB_NAME,
            "total_rows": settings.LAB_ROWS,
            "pcs_per_row": settings.LAB_PCS_PER_ROW,
            "time_slots": [slot.value for slot in TimeSlot],
        }

    async def stats_overview(self) -> Dict[str, Any]:
        counts = dict((await self.db.execute(
            select(PC.status, func.count(PC.id)).group_by(PC.status)
        )).all())
        today_bookings = (await self.db.execute(
            _live(select(func.count(Booking.id)).where(Booking.date == self.clock.today()))
        )).scalar() or 0
        return {
            "total_pcs": sum(counts.values()),
            "active_pcs": counts.get(PCStatus.ACTIVE, 0),
            "maintenance_pcs": counts.get(PCStatus.MAINTENANCE, 0),
            "inactive_pcs": counts.get(PCStatus.INACTIVE, 0),
            "today_bookings": today_bookings,
        }
