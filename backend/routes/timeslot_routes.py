import re

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, get_current_user, require_roles
from backend.database import get_db
from backend.models.time_slot import TimeSlot
from backend.models.user import Role
from backend.routes.common import CamelModel, bad_request, internal_error, not_found
from backend.services.audit import record_audit

router = APIRouter(tags=['timeslots'])

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class TimeSlotResponse(CamelModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
    capacity: int
    is_active: bool


class TimeSlotInput(CamelModel):
    id: int | None = None
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    capacity: int = Field(ge=0)
    is_active: bool | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        normalized = value.strip()
        if not TIME_PATTERN.match(normalized):
            raise ValueError('Times must use the HH:MM 24-hour format.')
        return normalized


class SaveTimeSlotsRequest(BaseModel):
    timeSlots: list[TimeSlotInput] | None = None


@router.get('', response_model=list[TimeSlotResponse])
def list_time_slots(
    day_of_week: int | None = Query(default=None, alias='dayOfWeek', ge=0, le=6),
    is_active: bool | None = Query(default=None, alias='isActive'),
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(TimeSlot)
        if day_of_week is not None:
            query = query.filter(TimeSlot.day_of_week == day_of_week)
        if is_active is not None:
            query = query.filter(TimeSlot.is_active == is_active)
        return query.order_by(TimeSlot.day_of_week.asc(), TimeSlot.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching time slots') from exc


@router.post('', response_model=list[TimeSlotResponse])
def save_time_slots(
    data: SaveTimeSlotsRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    if not data.timeSlots:
        raise bad_request('Time slots array is required')

    for slot in data.timeSlots:
        if slot.start_time >= slot.end_time:
            raise bad_request('Time slot start time must be before its end time.')

    try:
        results: list[TimeSlot] = []
        for slot in data.timeSlots:
            if slot.id is not None:
                time_slot = db.query(TimeSlot).filter(TimeSlot.id == slot.id).first()
                if time_slot is None:
                    raise not_found('Time slot')
            else:
                time_slot = TimeSlot(is_active=True)
                db.add(time_slot)

            time_slot.day_of_week = slot.day_of_week
            time_slot.start_time = slot.start_time
            time_slot.end_time = slot.end_time
            time_slot.capacity = slot.capacity
            if slot.is_active is not None:
                time_slot.is_active = slot.is_active
            results.append(time_slot)

        db.commit()
        for time_slot in results:
            db.refresh(time_slot)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='A time slot already exists for this day and time window',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating time slots') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='TIME_SLOTS',
        entity_id='MULTIPLE',
        details=f'Time slots updated by {current_user.name}',
        user_id=current_user.id,
    )
    return results
