import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, get_current_user, require_roles
from backend.database import get_db
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.routes.common import CamelModel, bad_request, forbidden, internal_error, not_found
from backend.routes.patient_routes import TreatmentSummary, UserSummary, find_patient_for_user
from backend.routes.timeslot_routes import TimeSlotResponse
from backend.services import availability
from backend.services.appointment_status import validate_status_transition
from backend.services.audit import record_audit

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

SCHEDULING_ROLES = {Role.ADMIN, Role.RECEPTIONIST}


class AvailabilityResponse(CamelModel):
    available: bool
    remaining_capacity: int
    capacity: int
    booked: int


class PatientSummary(CamelModel):
    id: int
    first_name: str
    last_name: str
    date_of_birth: date | None = None
    gender: str | None = None
    phone: str | None = None
    email: str | None = None
    assigned_doctor_id: int | None = None


class AppointmentResponse(CamelModel):
    id: int
    patient_id: int
    user_id: int
    time_slot_id: int
    date: datetime
    status: AppointmentStatus
    notes: str | None = None
    patient: PatientSummary | None = None
    user: UserSummary | None = None
    time_slot: TimeSlotResponse | None = None
    treatment: TreatmentSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AppointmentListItem(CamelModel):
    id: int
    patient_id: int
    doctor_id: int
    time_slot_id: int
    patient_name: str
    doctor_name: str
    date: date
    time: str
    status: AppointmentStatus
    type: str
    notes: str | None = None


class CreateAppointmentRequest(CamelModel):
    patient_id: int | None = None
    doctor_id: int | None = None
    appointment_date: date | None = Field(default=None, alias='date')
    time_slot_id: int | None = None
    notes: str | None = None


class UpdateAppointmentRequest(CamelModel):
    appointment_date: date | None = Field(default=None, alias='date')
    time_slot_id: int | None = None
    patient_id: int | None = None
    user_id: int | None = None
    notes: str | None = None
    status: AppointmentStatus | None = None


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def to_list_item(appointment: Appointment) -> AppointmentListItem:
    slot = appointment.time_slot
    return AppointmentListItem(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.user_id,
        time_slot_id=appointment.time_slot_id,
        patient_name=appointment.patient.full_name,
        doctor_name=appointment.user.name,
        date=appointment.date.date(),
        time=f'{slot.start_time} - {slot.end_time}',
        status=appointment.status,
        type=appointment.notes or 'Regular Appointment',
        notes=appointment.notes,
    )


def _load_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise not_found('Appointment')
    return appointment


def _load_practitioner(db: Session, user_id: int) -> User:
    practitioner = db.query(User).filter(User.id == user_id).first()
    if practitioner is None:
        raise not_found('Doctor')
    if practitioner.role != Role.PHYSIOTHERAPIST.value:
        raise bad_request('Appointments can only be booked with a physiotherapist')
    return practitioner


def _ensure_no_duplicate_booking(
    db: Session,
    patient_id: int,
    time_slot_id: int,
    target_date: date,
    exclude_appointment_id: int | None = None,
) -> None:
    day_start, day_end = availability.day_bounds(target_date)
    query = db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.time_slot_id == time_slot_id,
        Appointment.date >= day_start,
        Appointment.date < day_end,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    if query.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Patient is already booked in this time slot',
        )


def _ensure_can_view(db: Session, current_user: SessionUser, appointment: Appointment) -> None:
    if current_user.role == Role.PHYSIOTHERAPIST and appointment.user_id != current_user.id:
        raise forbidden()
    if current_user.role == Role.PATIENT:
        patient = find_patient_for_user(db, current_user)
        if patient is None or appointment.patient_id != patient.id:
            raise forbidden()


@router.get('/availability', response_model=AvailabilityResponse)
def get_availability(
    target_date: date | None = Query(default=None, alias='date'),
    time_slot_id: int | None = Query(default=None, alias='timeSlotId'),
    doctor_id: int | None = Query(default=None, alias='doctorId'),
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if target_date is None or time_slot_id is None:
        raise bad_request('Date and timeSlotId are required')

    try:
        result = availability.check_availability(db, target_date, time_slot_id, doctor_id)
    except SQLAlchemyError as exc:
        raise internal_error('Error checking appointment availability') from exc

    return AvailabilityResponse(
        available=result.available,
        remaining_capacity=result.remaining_capacity,
        capacity=result.capacity,
        booked=result.booked,
    )


@router.get('', response_model=list[AppointmentListItem])
def list_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    on_date: date | None = Query(default=None, alias='date'),
    start_date: date | None = Query(default=None, alias='startDate'),
    end_date: date | None = Query(default=None, alias='endDate'),
    doctor_id: int | None = Query(default=None, alias='doctorId'),
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Appointment)

        if status_filter is not None:
            query = query.filter(Appointment.status == status_filter.value)
        if doctor_id is not None:
            query = query.filter(Appointment.user_id == doctor_id)

        if on_date is not None:
            day_start, day_end = availability.day_bounds(on_date)
            query = query.filter(Appointment.date >= day_start, Appointment.date < day_end)
        elif start_date is not None and end_date is not None:
            range_start, _ = availability.day_bounds(start_date)
            _, range_end = availability.day_bounds(end_date)
            query = query.filter(Appointment.date >= range_start, Appointment.date < range_end)

        if current_user.role == Role.PHYSIOTHERAPIST:
            query = query.filter(Appointment.user_id == current_user.id)
        elif current_user.role == Role.PATIENT:
            patient = find_patient_for_user(db, current_user)
            if patient is None:
                return []
            query = query.filter(Appointment.patient_id == patient.id)

        appointments = query.order_by(Appointment.date.asc(), Appointment.id.asc()).all()
        return [to_list_item(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching appointments') from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST)),
    db: Session = Depends(get_db),
):
    if data.patient_id is None or data.doctor_id is None or data.appointment_date is None or data.time_slot_id is None:
        raise bad_request('Required fields are missing')

    try:
        patient = db.query(Patient).filter(Patient.id == data.patient_id).first()
        if patient is None:
            raise not_found('Patient')
        practitioner = _load_practitioner(db, data.doctor_id)

        availability.reserve_capacity(db, data.appointment_date, data.time_slot_id)
        _ensure_no_duplicate_booking(db, patient.id, data.time_slot_id, data.appointment_date)

        appointment = Appointment(
            patient_id=patient.id,
            user_id=practitioner.id,
            time_slot_id=data.time_slot_id,
            date=start_of_day(data.appointment_date),
            status=AppointmentStatus.SCHEDULED.value,
            notes=data.notes,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error creating appointment') from exc

    record_audit(
        db,
        action='CREATE',
        entity_type='APPOINTMENT',
        entity_id=appointment.id,
        details=f'Appointment created for {patient.full_name} with {practitioner.name}',
        user_id=current_user.id,
    )
    return appointment


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = _load_appointment(db, appointment_id)
        _ensure_can_view(db, current_user, appointment)
        response = AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching appointment') from exc

    if current_user.role not in {Role.PHYSIOTHERAPIST, Role.ADMIN}:
        response = response.model_copy(update={'treatment': None})
    return response


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST, Role.PHYSIOTHERAPIST)),
    db: Session = Depends(get_db),
):
    try:
        appointment = _load_appointment(db, appointment_id)

        if current_user.role == Role.PHYSIOTHERAPIST and appointment.user_id != current_user.id:
            raise forbidden()

        if current_user.role in SCHEDULING_ROLES:
            new_date = data.appointment_date or appointment.date.date()
            new_slot_id = data.time_slot_id or appointment.time_slot_id
            new_patient_id = data.patient_id or appointment.patient_id

            if data.patient_id and data.patient_id != appointment.patient_id:
                if db.query(Patient).filter(Patient.id == data.patient_id).first() is None:
                    raise not_found('Patient')
                appointment.patient_id = data.patient_id
            if data.user_id and data.user_id != appointment.user_id:
                appointment.user_id = _load_practitioner(db, data.user_id).id

            rescheduled = new_date != appointment.date.date() or new_slot_id != appointment.time_slot_id
            if rescheduled:
                availability.reserve_capacity(db, new_date, new_slot_id, exclude_appointment_id=appointment.id)
                _ensure_no_duplicate_booking(db, new_patient_id, new_slot_id, new_date, appointment.id)
                appointment.date = start_of_day(new_date)
                appointment.time_slot_id = new_slot_id

        if data.notes:
            appointment.notes = data.notes
        if data.status is not None:
            appointment.status = validate_status_transition(appointment.status, data.status).value

        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating appointment') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='APPOINTMENT',
        entity_id=appointment.id,
        details=f'Appointment updated for patient: {appointment.patient.full_name}',
        user_id=current_user.id,
    )
    return appointment


@router.delete('/{appointment_id}')
def delete_appointment(
    appointment_id: int,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST)),
    db: Session = Depends(get_db),
):
    try:
        appointment = _load_appointment(db, appointment_id)
        details = (
            f'Appointment deleted for patient: {appointment.patient.full_name} '
            f'with doctor: {appointment.user.name}'
        )
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error deleting appointment') from exc

    record_audit(
        db,
        action='DELETE',
        entity_type='APPOINTMENT',
        entity_id=appointment_id,
        details=details,
        user_id=current_user.id,
    )
    return {'success': True}
