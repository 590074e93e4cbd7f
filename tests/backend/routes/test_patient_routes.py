from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from backend.models.appointment import AppointmentStatus
from backend.models.audit_log import AuditLog
from backend.models.patient import Patient

NEW_PATIENT = {
    'firstName': ' Maria ',
    'lastName': 'Lopez',
    'dateOfBirth': '1985-07-21',
    'gender': 'FEMALE',
    'phone': '555-0199',
    'email': 'Maria.Lopez@Example.com',
    'address': '12 Harbour Road',
    'medicalHistory': 'ACL reconstruction 2024',
}


def test_create_patient_requires_fields(login_as) -> None:
    response = login_as('reception').post('/patients', json={'firstName': 'Maria'})

    assert response.status_code == 400
    assert response.json() == {'error': 'Required fields are missing'}


def test_create_patient(login_as, staff, db) -> None:
    response = login_as('reception').post('/patients', json={**NEW_PATIENT, 'doctorId': staff['physio'].id})

    assert response.status_code == 201
    body = response.json()
    assert body['firstName'] == 'Maria'
    assert body['email'] == 'maria.lopez@example.com'
    assert body['assignedDoctorId'] == staff['physio'].id
    assert body['assignedDoctor']['name'] == 'Dr. Sarah Johnson'

    audit = db.query(AuditLog).filter(AuditLog.entity_type == 'PATIENT').one()
    assert audit.action == 'CREATE'
    assert audit.details == 'Patient created: Maria Lopez'


def test_create_patient_rejects_non_physiotherapist_doctor(login_as, staff) -> None:
    response = login_as('admin').post('/patients', json={**NEW_PATIENT, 'doctorId': staff['reception'].id})

    assert response.status_code == 400


def test_physiotherapist_cannot_create_patient(login_as) -> None:
    assert login_as('physio').post('/patients', json=NEW_PATIENT).status_code == 403


def test_physiotherapist_lists_only_assigned_patients(login_as, staff, add_patient) -> None:
    assigned_id = add_patient(first_name='Assigned', assigned_doctor_id=staff['physio'].id)
    add_patient(first_name='Elsewhere', assigned_doctor_id=staff['physio2'].id)
    add_patient(first_name='Unassigned')

    physio_view = login_as('physio').get('/patients').json()
    admin_view = login_as('admin').get('/patients').json()

    assert [item['id'] for item in physio_view] == [assigned_id]
    assert physio_view[0]['name'] == 'Assigned Doe'
    assert physio_view[0]['doctor'] == 'Dr. Sarah Johnson'
    assert len(admin_view) == 3
    assert {item['doctor'] for item in admin_view} == {'Dr. Sarah Johnson', 'Dr. Tom Baker', 'Unassigned'}


def test_patient_list_reports_last_visit(login_as, staff, add_patient, add_time_slot, add_appointment) -> None:
    patient_id = add_patient()
    slot_id = add_time_slot()
    add_appointment(patient_id, staff['physio'].id, slot_id, date(2026, 1, 5))
    add_appointment(patient_id, staff['physio'].id, slot_id, date(2026, 1, 12))

    items = login_as('admin').get('/patients').json()

    assert items[0]['lastVisit'] == '2026-01-12'


def test_receptionist_detail_hides_clinical_fields(
    login_as, staff, add_patient, add_time_slot, add_appointment
) -> None:
    patient_id = add_patient(assigned_doctor_id=staff['physio'].id)
    appointment_id = add_appointment(patient_id, staff['physio'].id, add_time_slot(), status=AppointmentStatus.CONFIRMED)
    login_as('physio').post('/treatments', json={'appointmentId': appointment_id, 'notes': 'Manual therapy'})

    reception_view = login_as('reception').get(f'/patients/{patient_id}').json()
    physio_view = login_as('physio').get(f'/patients/{patient_id}').json()

    assert reception_view['medicalHistory'] is None
    assert reception_view['treatments'] is None
    assert reception_view['appointments'][0]['treatment'] is None
    assert physio_view['medicalHistory'] == 'Lower back pain'
    assert physio_view['treatments'][0]['notes'] == 'Manual therapy'
    assert physio_view['appointments'][0]['treatment']['notes'] == 'Manual therapy'


def test_physiotherapist_cannot_view_unassigned_patient(login_as, staff, add_patient) -> None:
    patient_id = add_patient(assigned_doctor_id=staff['physio2'].id)

    assert login_as('physio').get(f'/patients/{patient_id}').status_code == 403


def test_missing_patient_is_not_found(login_as) -> None:
    response = login_as('admin').get('/patients/999')

    assert response.status_code == 404
    assert response.json() == {'error': 'Patient not found'}


def test_receptionist_update_cannot_touch_medical_history(login_as, staff, add_patient) -> None:
    patient_id = add_patient()
    client = login_as('reception')

    response = client.put(f'/patients/{patient_id}', json={'phone': '555-0200', 'medicalHistory': 'Overwritten'})

    assert response.status_code == 200
    assert response.json()['phone'] == '555-0200'
    assert login_as('admin').get(f'/patients/{patient_id}').json()['medicalHistory'] == 'Lower back pain'


def test_only_admin_reassigns_doctor(login_as, staff, add_patient) -> None:
    patient_id = add_patient(assigned_doctor_id=staff['physio'].id)

    login_as('reception').put(f'/patients/{patient_id}', json={'assignedDoctorId': staff['physio2'].id})
    assert login_as('admin').get(f'/patients/{patient_id}').json()['assignedDoctorId'] == staff['physio'].id

    login_as('admin').put(f'/patients/{patient_id}', json={'assignedDoctorId': staff['physio2'].id})
    assert login_as('admin').get(f'/patients/{patient_id}').json()['assignedDoctorId'] == staff['physio2'].id


def test_patient_count(login_as, add_patient) -> None:
    add_patient()
    add_patient(first_name='John')

    assert login_as('reception').get('/patients/count').json() == {'count': 2}


def test_delete_patient_removes_appointments(login_as, staff, add_patient, add_time_slot, add_appointment) -> None:
    patient_id = add_patient()
    add_appointment(patient_id, staff['physio'].id, add_time_slot())
    admin = login_as('admin')

    assert login_as('reception').delete(f'/patients/{patient_id}').status_code == 403

    response = admin.delete(f'/patients/{patient_id}')

    assert response.status_code == 200
    assert admin.get(f'/patients/{patient_id}').status_code == 404
    assert admin.get('/appointments').json() == []


def test_audit_failure_leaves_created_patient_in_place(login_as, monkeypatch: pytest.MonkeyPatch, session_factory) -> None:
    def failing_audit(*args, **kwargs):
        raise SQLAlchemyError('audit table unavailable')

    monkeypatch.setattr('backend.routes.patient_routes.record_audit', failing_audit)
    client = login_as('reception', raise_server_exceptions=False)

    response = client.post('/patients', json=NEW_PATIENT)

    assert response.status_code == 500
    assert response.json() == {'error': 'Internal server error'}

    session = session_factory()
    try:
        assert session.query(Patient).filter(Patient.last_name == 'Lopez').count() == 1
    finally:
        session.close()
