"""Populate a fresh database with default staff, weekly time slots and settings.

Run with ``python -m backend.seed``. Existing rows are left untouched.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.passwords import hash_password
from backend.core import config
from backend.database import Base, SessionLocal, engine, ensure_booking_indexes
from backend.models import Configuration, Role, TimeSlot, User

logger = logging.getLogger(__name__)

DEFAULT_USERS = (
    ('admin@clinic.local', 'Admin User', 'admin123', Role.ADMIN),
    ('reception@clinic.local', 'Emma Wilson', 'reception123', Role.RECEPTIONIST),
    ('physio1@clinic.local', 'Dr. Sarah Johnson', 'physio1', Role.PHYSIOTHERAPIST),
)

WEEKDAY_WINDOWS = (
    ('09:00', '10:30'),
    ('10:30', '12:00'),
    ('12:00', '13:30'),
    ('14:00', '15:30'),
    ('15:30', '17:00'),
)

DEFAULT_SETTINGS = {
    'clinicName': 'Professional Physiotherapy Clinic',
    'clinicEmail': 'contact@clinic.local',
    'clinicPhone': '555-123-4567',
    'clinicAddress': '123 Health Street, Medical District, City',
    'appointmentDuration': '60',
    'workingHoursStart': '09:00',
    'workingHoursEnd': '17:00',
    'workingDays': '[1, 2, 3, 4, 5, 6]',
    'enableSmsNotifications': 'true',
    'enableEmailNotifications': 'true',
    'allowPatientRegistration': 'true',
    'allowPatientAppointmentBooking': 'true',
}


def default_time_slots() -> list[dict]:
    # Monday (1) to Friday (5) run all windows; Saturday (6) runs the morning ones.
    slots = [
        {'day_of_week': day, 'start_time': start, 'end_time': end, 'capacity': 5}
        for day in range(1, 6)
        for start, end in WEEKDAY_WINDOWS
    ]
    slots.extend(
        {'day_of_week': 6, 'start_time': start, 'end_time': end, 'capacity': 3}
        for start, end in WEEKDAY_WINDOWS[:3]
    )
    return slots


def seed_users(db: Session) -> int:
    created = 0
    for email, name, password, role in DEFAULT_USERS:
        if db.query(User).filter(User.email == email).first() is not None:
            continue
        db.add(User(email=email, name=name, hashed_password=hash_password(password), role=role.value))
        created += 1
    return created


def seed_time_slots(db: Session) -> int:
    created = 0
    for slot in default_time_slots():
        existing = db.query(TimeSlot).filter(
            TimeSlot.day_of_week == slot['day_of_week'],
            TimeSlot.start_time == slot['start_time'],
            TimeSlot.end_time == slot['end_time'],
        ).first()
        if existing is not None:
            continue
        db.add(TimeSlot(is_active=True, **slot))
        created += 1
    return created


def seed_settings(db: Session) -> int:
    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if db.query(Configuration).filter(Configuration.key == key).first() is not None:
            continue
        db.add(Configuration(key=key, value=value, description=f'Default setting for {key}'))
        created += 1
    return created


def seed(db: Session) -> dict[str, int]:
    counts = {
        'users': seed_users(db),
        'timeSlots': seed_time_slots(db),
        'settings': seed_settings(db),
    }
    db.commit()
    return counts


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)
    ensure_booking_indexes()

    db = SessionLocal()
    try:
        counts = seed(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Database seeding failed')
        raise
    finally:
        db.close()

    logger.info(
        'Seeding complete: %s users, %s time slots, %s settings created',
        counts['users'],
        counts['timeSlots'],
        counts['settings'],
    )


if __name__ == '__main__':
    main()
