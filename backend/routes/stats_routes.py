from datetime import datetime, time, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, require_roles
from backend.database import get_db
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.patient import Patient
from backend.models.user import Role, User
from backend.routes.common import internal_error

router = APIRouter(tags=['stats'])

ACTIVE_WINDOW_DAYS = 30

require_admin = require_roles(Role.ADMIN)


def _utc_today() -> datetime:
    return datetime.combine(datetime.utcnow().date(), time.min)


@router.get('/appointments')
def appointment_stats(
    current_user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    today = _utc_today()
    tomorrow = today + timedelta(days=1)

    try:
        return {
            'total': db.query(Appointment).count(),
            'upcoming': db.query(Appointment).filter(
                Appointment.date >= today,
                Appointment.status.in_([AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value]),
            ).count(),
            'today': db.query(Appointment).filter(
                Appointment.date >= today,
                Appointment.date < tomorrow,
            ).count(),
            'completed': db.query(Appointment).filter(
                Appointment.status == AppointmentStatus.COMPLETED.value,
            ).count(),
        }
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching appointment stats') from exc


@router.get('/doctors')
def doctor_stats(
    current_user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    window_start = _utc_today() - timedelta(days=ACTIVE_WINDOW_DAYS)

    try:
        total = db.query(User).filter(User.role == Role.PHYSIOTHERAPIST.value).count()
        active = db.query(User).filter(
            User.role == Role.PHYSIOTHERAPIST.value,
            User.id.in_(
                select(Appointment.user_id).where(Appointment.date >= window_start)
            ),
        ).count()
        return {'total': total, 'active': active}
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching doctor stats') from exc


@router.get('/patients')
def patient_stats(
    current_user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    window_start = datetime.utcnow() - timedelta(days=ACTIVE_WINDOW_DAYS)

    try:
        return {
            'total': db.query(Patient).count(),
            'recentlyAdded': db.query(Patient).filter(Patient.created_at >= window_start).count(),
        }
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching patient stats') from exc
