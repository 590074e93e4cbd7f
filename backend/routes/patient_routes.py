from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, get_current_user, require_roles
from backend.database import get_db
from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.routes.common import CamelModel, bad_request, forbidden, internal_error, not_found
from backend.routes.timeslot_routes import TimeSlotResponse
from backend.services.audit import record_audit

router = APIRouter(tags=['patients'])


class UserSummary(CamelModel):
    id: int
    name: str
    email: str | None = None


class TreatmentSummary(CamelModel):
    id: int
    date: datetime
    notes: str
    home_program: str | None = None
    progress: str | None = None
    physiotherapist_id: int


class PatientAppointmentResponse(CamelModel):
    id: int
    date: datetime
    status: str
    notes: str | None = None
    time_slot: TimeSlotResponse | None = None
    user: UserSummary | None = None
    treatment: TreatmentSummary | None = None


class PatientListItem(CamelModel):
    id: int
    name: str
    email: str
    phone: str
    doctor: str
    last_visit: date | None = None


class PatientResponse(CamelModel):
    id: int
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    address: str | None = None
    phone: str
    email: str | None = None
    emergency_contact: str | None = None
    medical_history: str | None = None
    assigned_doctor_id: int | None = None
    assigned_doctor: UserSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PatientDetailResponse(PatientResponse):
    appointments: list[PatientAppointmentResponse] = []
    treatments: list[TreatmentSummary] | None = None


class CreatePatientRequest(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    emergency_contact: str | None = None
    doctor_id: int | None = None
    medical_history: str | None = None


class UpdatePatientRequest(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    emergency_contact: str | None = None
    medical_history: str | None = None
    assigned_doctor_id: int | None = None


def find_patient_for_user(db: Session, user: SessionUser) -> Patient | None:
    """The patient record a PATIENT-role login speaks for, matched by email."""
    return db.query(Patient).filter(Patient.email == user.email).first()


def _load_patient(db: Session, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if patient is None:
        raise not_found('Patient')
    return patient


def _ensure_physiotherapist(db: Session, user_id: int) -> None:
    doctor = db.query(User).filter(User.id == user_id).first()
    if doctor is None or doctor.role != Role.PHYSIOTHERAPIST.value:
        raise bad_request('Assigned doctor must be an existing physiotherapist')


def _ensure_can_view(db: Session, current_user: SessionUser, patient: Patient) -> None:
    if current_user.role == Role.PHYSIOTHERAPIST and patient.assigned_doctor_id != current_user.id:
        raise forbidden()
    if current_user.role == Role.PATIENT:
        own_record = find_patient_for_user(db, current_user)
        if own_record is None or own_record.id != patient.id:
            raise forbidden()


def to_list_item(patient: Patient) -> PatientListItem:
    last_visit = patient.appointments[0].date.date() if patient.appointments else None
    return PatientListItem(
        id=patient.id,
        name=patient.full_name,
        email=patient.email or '',
        phone=patient.phone,
        doctor=patient.assigned_doctor.name if patient.assigned_doctor else 'Unassigned',
        last_visit=last_visit,
    )


@router.get('', response_model=list[PatientListItem])
def list_patients(
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST, Role.PHYSIOTHERAPIST)),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Patient)
        if current_user.role == Role.PHYSIOTHERAPIST:
            query = query.filter(Patient.assigned_doctor_id == current_user.id)
        patients = query.order_by(Patient.created_at.desc(), Patient.id.desc()).all()
        return [to_list_item(patient) for patient in patients]
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching patients') from exc


@router.post('', response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    data: CreatePatientRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST)),
    db: Session = Depends(get_db),
):
    if not data.first_name or not data.last_name or not data.date_of_birth or not data.gender or not data.phone:
        raise bad_request('Required fields are missing')

    try:
        if data.doctor_id is not None:
            _ensure_physiotherapist(db, data.doctor_id)

        patient = Patient(
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            date_of_birth=data.date_of_birth,
            gender=data.gender,
            address=data.address or '',
            phone=data.phone,
            email=data.email.strip().lower() if data.email else None,
            emergency_contact=data.emergency_contact,
            medical_history=data.medical_history,
            assigned_doctor_id=data.doctor_id,
            created_by_id=current_user.id,
        )
        db.add(patient)
        db.commit()
        db.refresh(patient)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error creating patient') from exc

    record_audit(
        db,
        action='CREATE',
        entity_type='PATIENT',
        entity_id=patient.id,
        details=f'Patient created: {patient.full_name}',
        user_id=current_user.id,
    )
    return patient


@router.get('/count')
def count_patients(
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST)),
    db: Session = Depends(get_db),
):
    try:
        return {'count': db.query(Patient).count()}
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching patient count') from exc


@router.get('/{patient_id}', response_model=PatientDetailResponse)
def get_patient(
    patient_id: int,
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        patient = _load_patient(db, patient_id)
        _ensure_can_view(db, current_user, patient)
        detail = PatientDetailResponse.model_validate(patient)
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching patient') from exc

    if current_user.role == Role.RECEPTIONIST:
        # Front desk staff do not see clinical notes.
        detail = detail.model_copy(update={
            'medical_history': None,
            'treatments': None,
            'appointments': [
                appointment.model_copy(update={'treatment': None}) for appointment in detail.appointments
            ],
        })
    return detail


@router.put('/{patient_id}', response_model=PatientResponse)
def update_patient(
    patient_id: int,
    data: UpdatePatientRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN, Role.RECEPTIONIST, Role.PHYSIOTHERAPIST)),
    db: Session = Depends(get_db),
):
    try:
        patient = _load_patient(db, patient_id)

        if current_user.role == Role.PHYSIOTHERAPIST and patient.assigned_doctor_id != current_user.id:
            raise forbidden()

        if data.first_name:
            patient.first_name = data.first_name.strip()
        if data.last_name:
            patient.last_name = data.last_name.strip()
        if data.date_of_birth:
            patient.date_of_birth = data.date_of_birth
        if data.gender:
            patient.gender = data.gender
        if data.address is not None:
            patient.address = data.address
        if data.phone:
            patient.phone = data.phone
        if data.email is not None:
            patient.email = data.email.strip().lower() or None
        if data.emergency_contact:
            patient.emergency_contact = data.emergency_contact
        if data.medical_history is not None and current_user.role in {Role.PHYSIOTHERAPIST, Role.ADMIN}:
            patient.medical_history = data.medical_history
        if data.assigned_doctor_id is not None and current_user.role == Role.ADMIN:
            _ensure_physiotherapist(db, data.assigned_doctor_id)
            patient.assigned_doctor_id = data.assigned_doctor_id

        db.commit()
        db.refresh(patient)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating patient') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='PATIENT',
        entity_id=patient.id,
        details=f'Patient updated: {patient.full_name}',
        user_id=current_user.id,
    )
    return patient


@router.delete('/{patient_id}')
def delete_patient(
    patient_id: int,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        patient = _load_patient(db, patient_id)
        full_name = patient.full_name
        db.delete(patient)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error deleting patient') from exc

    record_audit(
        db,
        action='DELETE',
        entity_type='PATIENT',
        entity_id=patient_id,
        details=f'Patient deleted: {full_name}',
        user_id=current_user.id,
    )
    return {'success': True}
