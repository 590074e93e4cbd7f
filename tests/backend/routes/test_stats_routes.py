from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from backend.models.appointment import AppointmentStatus


def test_stats_are_admin_only(login_as) -> None:
    client = login_as('reception')

    assert client.get('/admin/stats/appointments').status_code == 403
    assert client.get('/admin/stats/doctors').status_code == 403
    assert client.get('/admin/stats/patients').status_code == 403


def test_appointment_stats(login_as, staff, add_patient, add_time_slot, add_appointment) -> None:
    today = datetime.utcnow().date()
    slot_id = add_time_slot(day_of_week=(today.weekday() + 1) % 7)
    patient_id = add_patient()
    add_appointment(patient_id, staff['physio'].id, slot_id, today, AppointmentStatus.CONFIRMED)
    add_appointment(patient_id, staff['physio'].id, slot_id, today + timedelta(days=7))
    add_appointment(patient_id, staff['physio'].id, slot_id, today + timedelta(days=14), AppointmentStatus.CANCELLED)
    add_appointment(patient_id, staff['physio'].id, slot_id, today - timedelta(days=7), AppointmentStatus.COMPLETED)

    response = login_as('admin').get('/admin/stats/appointments')

    assert response.status_code == 200
    assert response.json() == {'total': 4, 'upcoming': 2, 'today': 1, 'completed': 1}


def test_doctor_stats_count_recently_active_physiotherapists(
    login_as, staff, add_patient, add_time_slot, add_appointment
) -> None:
    slot_id = add_time_slot()
    add_appointment(add_patient(), staff['physio'].id, slot_id, datetime.utcnow().date() - timedelta(days=3))
    add_appointment(add_patient(), staff['physio2'].id, slot_id, datetime.utcnow().date() - timedelta(days=90))

    response = login_as('admin').get('/admin/stats/doctors')

    assert response.json() == {'total': 2, 'active': 1}


def test_doctor_stats_window_starts_at_utc_midnight(
    login_as, staff, add_patient, add_time_slot, add_appointment
) -> None:
    window_start = datetime.utcnow().date() - timedelta(days=30)
    add_appointment(add_patient(), staff['physio'].id, add_time_slot(), window_start)

    response = login_as('admin').get('/admin/stats/doctors')

    assert response.json() == {'total': 2, 'active': 1}


def test_patient_stats(login_as, add_patient) -> None:
    add_patient()
    add_patient(first_name='John')

    assert login_as('admin').get('/admin/stats/patients').json() == {'total': 2, 'recentlyAdded': 2}


def test_health_reports_healthy_database(client) -> None:
    response = client.get('/health')

    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'healthy'
    assert body['checks'] == {'database': 'healthy'}


def test_health_reports_degraded_database(client, monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenSession:
        def execute(self, *args, **kwargs):
            raise OperationalError('SELECT 1', {}, Exception('database is locked'))

        def close(self):
            pass

    monkeypatch.setattr('backend.main.SessionLocal', BrokenSession)

    response = client.get('/health')

    assert response.status_code == 503
    assert response.json()['status'] == 'degraded'
    assert response.json()['checks'] == {'database': 'unhealthy'}


def test_unknown_route_uses_error_body(client) -> None:
    response = client.get('/no-such-route')

    assert response.status_code == 404
    assert response.json() == {'error': 'Not Found'}
