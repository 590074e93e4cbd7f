import os
from datetime import date, datetime, time
from types import SimpleNamespace

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('SESSION_SECRET', 'test-session-secret')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base, get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models import Appointment, AppointmentStatus, Patient, Role, TimeSlot, User  # noqa: E402

PASSWORD = 'secret123'
PASSWORD_HASH = hash_password(PASSWORD)

# 2026-01-05 is a Monday.
MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)

STAFF = {
    'admin': ('admin@clinic.local', 'Admin User', Role.ADMIN),
    'reception': ('reception@clinic.local', 'Emma Wilson', Role.RECEPTIONIST),
    'physio': ('physio1@clinic.local', 'Dr. Sarah Johnson', Role.PHYSIOTHERAPIST),
    'physio2': ('physio2@clinic.local', 'Dr. Tom Baker', Role.PHYSIOTHERAPIST),
}


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield lambda **kwargs: TestClient(app, **kwargs)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def staff(session_factory) -> dict:
    session = session_factory()
    try:
        users = {
            key: User(email=email, name=name, hashed_password=PASSWORD_HASH, role=role.value)
            for key, (email, name, role) in STAFF.items()
        }
        session.add_all(users.values())
        session.commit()
        return {
            key: SimpleNamespace(id=user.id, email=user.email, name=user.name, role=user.role)
            for key, user in users.items()
        }
    finally:
        session.close()


@pytest.fixture
def login_as(make_client, staff):
    def _login(key: str, **client_kwargs) -> TestClient:
        logged_in = make_client(**client_kwargs)
        response = logged_in.post('/auth/login', json={'email': staff[key].email, 'password': PASSWORD})
        assert response.status_code == 200, response.text
        return logged_in

    return _login


@pytest.fixture
def add_time_slot(session_factory):
    def _add(day_of_week: int = 1, start_time: str = '09:00', end_time: str = '10:30', capacity: int = 5,
             is_active: bool = True) -> int:
        session = session_factory()
        try:
            slot = TimeSlot(
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                capacity=capacity,
                is_active=is_active,
            )
            session.add(slot)
            session.commit()
            return slot.id
        finally:
            session.close()

    return _add


@pytest.fixture
def add_patient(session_factory):
    def _add(first_name: str = 'Jane', last_name: str = 'Doe', assigned_doctor_id: int | None = None,
             email: str | None = None, medical_history: str | None = 'Lower back pain') -> int:
        session = session_factory()
        try:
            patient = Patient(
                first_name=first_name,
                last_name=last_name,
                date_of_birth=date(1990, 4, 12),
                gender='FEMALE',
                address='1 Main Street',
                phone='555-0100',
                email=email,
                medical_history=medical_history,
                assigned_doctor_id=assigned_doctor_id,
            )
            session.add(patient)
            session.commit()
            return patient.id
        finally:
            session.close()

    return _add


@pytest.fixture
def add_appointment(session_factory):
    def _add(patient_id: int, user_id: int, time_slot_id: int, on_date: date = MONDAY,
             status: AppointmentStatus = AppointmentStatus.SCHEDULED) -> int:
        session = session_factory()
        try:
            appointment = Appointment(
                patient_id=patient_id,
                user_id=user_id,
                time_slot_id=time_slot_id,
                date=datetime.combine(on_date, time.min),
                status=status.value,
            )
            session.add(appointment)
            session.commit()
            return appointment.id
        finally:
            session.close()

    return _add