"""Time-slot capacity checks.

The count and the later insert are separate statements. ``check_availability``
can take a row lock on the time slot so that a booking transaction serializes
with other bookings for the same slot on databases that support it.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.time_slot import TimeSlot


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    remaining_capacity: int
    capacity: int
    booked: int


def to_calendar_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def day_bounds(value: date | datetime) -> tuple[datetime, datetime]:
    day_start = datetime.combine(to_calendar_day(value), time.min)
    return day_start, day_start + timedelta(days=1)


def weekday_index(value: date | datetime) -> int:
    """Day of week counted from Sunday (0) to Saturday (6), as time slots store it."""
    return (to_calendar_day(value).weekday() + 1) % 7


def get_time_slot(db: Session, time_slot_id: int, *, lock: bool = False) -> TimeSlot:
    query = db.query(TimeSlot).filter(TimeSlot.id == time_slot_id)
    if lock:
        query = query.with_for_update()
    time_slot = query.first()
    if time_slot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Time slot not found')
    return time_slot


def count_booked(
    db: Session,
    target_date: date | datetime,
    time_slot_id: int,
    doctor_id: int | None = None,
    exclude_appointment_id: int | None = None,
) -> int:
    day_start, day_end = day_bounds(target_date)
    query = db.query(func.count(Appointment.id)).filter(
        Appointment.date >= day_start,
        Appointment.date < day_end,
        Appointment.time_slot_id == time_slot_id,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )
    if doctor_id is not None:
        query = query.filter(Appointment.user_id == doctor_id)
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.scalar() or 0


def summarize_capacity(capacity: int, booked: int) -> AvailabilityResult:
    remaining_capacity = capacity - booked
    return AvailabilityResult(
        available=remaining_capacity > 0,
        remaining_capacity=remaining_capacity,
        capacity=capacity,
        booked=booked,
    )


def check_availability(
    db: Session,
    target_date: date | datetime,
    time_slot_id: int,
    doctor_id: int | None = None,
    *,
    exclude_appointment_id: int | None = None,
    lock: bool = False,
) -> AvailabilityResult:
    time_slot = get_time_slot(db, time_slot_id, lock=lock)
    booked = count_booked(db, target_date, time_slot.id, doctor_id, exclude_appointment_id)
    return summarize_capacity(time_slot.capacity, booked)


def validate_booking_slot(time_slot: TimeSlot, target_date: date | datetime) -> None:
    if not time_slot.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Time slot is not active')
    if weekday_index(target_date) != time_slot.day_of_week:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Time slot is not offered on the requested date',
        )


def reserve_capacity(
    db: Session,
    target_date: date | datetime,
    time_slot_id: int,
    *,
    exclude_appointment_id: int | None = None,
) -> TimeSlot:
    """Re-validate a booking against the slot before the caller inserts it.

    Locks the time slot row for the rest of the caller's transaction.
    """
    time_slot = get_time_slot(db, time_slot_id, lock=True)
    validate_booking_slot(time_slot, target_date)
    booked = count_booked(db, target_date, time_slot.id, exclude_appointment_id=exclude_appointment_id)
    if not summarize_capacity(time_slot.capacity, booked).available:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Time slot is fully booked')
    return time_slot
