from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, require_roles
from backend.database import get_db
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.treatment import Treatment
from backend.models.user import Role
from backend.routes.common import CamelModel, bad_request, forbidden, internal_error, not_found
from backend.routes.patient_routes import UserSummary
from backend.services.appointment_status import ensure_treatable
from backend.services.audit import record_audit

router = APIRouter(tags=['treatments'])

CLINICAL_ROLES = (Role.ADMIN, Role.PHYSIOTHERAPIST)


class TreatmentPatient(CamelModel):
    id: int
    first_name: str
    last_name: str


class TreatmentAppointment(CamelModel):
    id: int
    date: datetime
    status: AppointmentStatus


class TreatmentResponse(CamelModel):
    id: int
    appointment_id: int
    patient_id: int
    physiotherapist_id: int
    date: datetime
    notes: str
    home_program: str | None = None
    progress: str | None = None
    patient: TreatmentPatient | None = None
    physiotherapist: UserSummary | None = None
    appointment: TreatmentAppointment | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateTreatmentRequest(CamelModel):
    appointment_id: int | None = None
    notes: str | None = None
    home_program: str | None = None
    progress: str | None = None


class UpdateTreatmentRequest(CamelModel):
    notes: str | None = None
    home_program: str | None = None
    progress: str | None = None


def _load_treatment(db: Session, treatment_id: int) -> Treatment:
    treatment = db.query(Treatment).filter(Treatment.id == treatment_id).first()
    if treatment is None:
        raise not_found('Treatment')
    return treatment


def _ensure_owner(current_user: SessionUser, treatment: Treatment) -> None:
    if current_user.role == Role.PHYSIOTHERAPIST and treatment.physiotherapist_id != current_user.id:
        raise forbidden()


@router.get('', response_model=list[TreatmentResponse])
def list_treatments(
    patient_id: int | None = Query(default=None, alias='patientId'),
    current_user: SessionUser = Depends(require_roles(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Treatment)
        if patient_id is not None:
            query = query.filter(Treatment.patient_id == patient_id)
        if current_user.role == Role.PHYSIOTHERAPIST:
            query = query.filter(Treatment.physiotherapist_id == current_user.id)
        return query.order_by(Treatment.date.desc(), Treatment.id.desc()).all()
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching treatments') from exc


@router.post('', response_model=TreatmentResponse, status_code=status.HTTP_201_CREATED)
def create_treatment(
    data: CreateTreatmentRequest,
    current_user: SessionUser = Depends(require_roles(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    """Record a treatment and mark its appointment COMPLETED."""
    if data.appointment_id is None or not data.notes:
        raise bad_request('Required fields are missing')

    try:
        appointment = db.query(Appointment).filter(Appointment.id == data.appointment_id).first()
        if appointment is None:
            raise not_found('Appointment')

        if current_user.role == Role.PHYSIOTHERAPIST and appointment.user_id != current_user.id:
            raise forbidden('You are not assigned to this appointment')

        if appointment.treatment is not None:
            raise bad_request('Treatment already exists for this appointment')
        ensure_treatable(appointment.status)

        treatment = Treatment(
            appointment=appointment,
            patient=appointment.patient,
            physiotherapist_id=current_user.id if current_user.role == Role.PHYSIOTHERAPIST else appointment.user_id,
            date=appointment.date,
            notes=data.notes,
            home_program=data.home_program,
            progress=data.progress,
        )
        db.add(treatment)
        appointment.status = AppointmentStatus.COMPLETED.value
        db.commit()
        db.refresh(treatment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error creating treatment') from exc

    record_audit(
        db,
        action='CREATE',
        entity_type='TREATMENT',
        entity_id=treatment.id,
        details=f'Treatment created for patient: {appointment.patient.full_name}',
        user_id=current_user.id,
    )
    return treatment


@router.get('/{treatment_id}', response_model=TreatmentResponse)
def get_treatment(
    treatment_id: int,
    current_user: SessionUser = Depends(require_roles(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        treatment = _load_treatment(db, treatment_id)
        _ensure_owner(current_user, treatment)
        return treatment
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching treatment') from exc


@router.put('/{treatment_id}', response_model=TreatmentResponse)
def update_treatment(
    treatment_id: int,
    data: UpdateTreatmentRequest,
    current_user: SessionUser = Depends(require_roles(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        treatment = _load_treatment(db, treatment_id)
        _ensure_owner(current_user, treatment)

        if data.notes:
            treatment.notes = data.notes
        if data.home_program is not None:
            treatment.home_program = data.home_program
        if data.progress is not None:
            treatment.progress = data.progress

        db.commit()
        db.refresh(treatment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating treatment') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='TREATMENT',
        entity_id=treatment.id,
        details=f'Treatment updated for patient: {treatment.patient.full_name}',
        user_id=current_user.id,
    )
    return treatment


@router.delete('/{treatment_id}')
def delete_treatment(
    treatment_id: int,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    """Delete a treatment and put its appointment back to CONFIRMED."""
    try:
        treatment = _load_treatment(db, treatment_id)
        appointment = treatment.appointment
        patient_name = treatment.patient.full_name

        db.delete(treatment)
        if appointment is not None:
            appointment.status = AppointmentStatus.CONFIRMED.value
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error deleting treatment') from exc

    record_audit(
        db,
        action='DELETE',
        entity_type='TREATMENT',
        entity_id=treatment_id,
        details=f'Treatment deleted for patient: {patient_name}',
        user_id=current_user.id,
    )
    return {'success': True}
