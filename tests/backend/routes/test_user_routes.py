from backend.auth.passwords import verify_password
from backend.models.patient import Patient
from backend.models.user import User


def test_admin_creates_user_with_hashed_password(login_as, session_factory) -> None:
    response = login_as('admin').post(
        '/users',
        json={'name': 'Dr. Ana Ruiz', 'email': 'Ana@Clinic.local', 'password': 'physio2pass', 'role': 'PHYSIOTHERAPIST'},
    )

    assert response.status_code == 201
    body = response.json()
    assert body['email'] == 'ana@clinic.local'
    assert body['role'] == 'PHYSIOTHERAPIST'
    assert body['status'] == 'ACTIVE'
    assert 'password' not in body
    assert 'hashedPassword' not in body

    session = session_factory()
    try:
        stored = session.query(User).filter(User.email == 'ana@clinic.local').one()
        assert stored.hashed_password != 'physio2pass'
        assert verify_password('physio2pass', stored.hashed_password)
    finally:
        session.close()


def test_create_user_requires_all_fields(login_as) -> None:
    response = login_as('admin').post('/users', json={'name': 'No Email', 'role': 'ADMIN'})

    assert response.status_code == 400
    assert response.json() == {'error': 'Name, email, password, and role are required'}


def test_create_user_rejects_duplicate_email(login_as, staff) -> None:
    response = login_as('admin').post(
        '/users',
        json={'name': 'Copy', 'email': staff['reception'].email, 'password': 'x', 'role': 'RECEPTIONIST'},
    )

    assert response.status_code == 400
    assert response.json() == {'error': 'User with this email already exists'}


def test_receptionist_cannot_create_user(login_as) -> None:
    response = login_as('reception').post(
        '/users',
        json={'name': 'Sneaky', 'email': 'sneaky@clinic.local', 'password': 'x', 'role': 'ADMIN'},
    )

    assert response.status_code == 403


def test_receptionist_lists_physiotherapists_only(login_as, staff) -> None:
    client = login_as('reception')

    physios = client.get('/users', params={'role': 'PHYSIOTHERAPIST'})

    assert physios.status_code == 200
    assert {user['email'] for user in physios.json()} == {staff['physio'].email, staff['physio2'].email}
    assert client.get('/users').status_code == 403


def test_admin_lists_all_users(login_as) -> None:
    assert len(login_as('admin').get('/users').json()) == 4


def test_user_can_read_and_update_self_but_not_role(login_as, staff) -> None:
    client = login_as('physio')
    own_id = staff['physio'].id

    assert client.get(f'/users/{own_id}').status_code == 200
    assert client.get(f"/users/{staff['admin'].id}").status_code == 403

    response = client.put(f'/users/{own_id}', json={'name': 'Dr. Sarah J.', 'role': 'ADMIN'})

    assert response.status_code == 200
    assert response.json()['name'] == 'Dr. Sarah J.'
    assert response.json()['role'] == 'PHYSIOTHERAPIST'


def test_admin_changes_role(login_as, staff) -> None:
    response = login_as('admin').put(f"/users/{staff['physio2'].id}", json={'role': 'RECEPTIONIST'})

    assert response.status_code == 200
    assert response.json()['role'] == 'RECEPTIONIST'


def test_admin_deletes_user(login_as, staff) -> None:
    admin = login_as('admin')

    response = admin.delete(f"/users/{staff['physio2'].id}")

    assert response.status_code == 200
    assert response.json() == {'success': True}
    assert admin.get(f"/users/{staff['physio2'].id}").status_code == 404


def test_user_with_appointments_cannot_be_deleted(
    login_as, staff, add_patient, add_time_slot, add_appointment
) -> None:
    add_appointment(add_patient(), staff['physio2'].id, add_time_slot())
    admin = login_as('admin')

    response = admin.delete(f"/users/{staff['physio2'].id}")

    assert response.status_code == 409
    assert response.json() == {'error': 'User is still referenced by patients, appointments, or treatments'}
    assert admin.get(f"/users/{staff['physio2'].id}").status_code == 200
    listed = admin.get('/appointments')
    assert listed.status_code == 200
    assert listed.json()[0]['doctorName'] == 'Dr. Tom Baker'


def test_assigned_physiotherapist_cannot_be_deleted(login_as, staff, add_patient) -> None:
    add_patient(assigned_doctor_id=staff['physio2'].id)

    assert login_as('admin').delete(f"/users/{staff['physio2'].id}").status_code == 409


def test_deleting_registering_user_keeps_patient(login_as, staff, db) -> None:
    admin = login_as('admin')
    patient_id = login_as('reception').post(
        '/patients',
        json={'firstName': 'Maria', 'lastName': 'Lopez', 'dateOfBirth': '1985-07-21', 'gender': 'FEMALE', 'phone': '555-0199'},
    ).json()['id']

    response = admin.delete(f"/users/{staff['reception'].id}")

    assert response.status_code == 200
    patient = db.query(Patient).filter(Patient.id == patient_id).one()
    assert patient.created_by_id is None


def test_missing_user_is_not_found(login_as) -> None:
    response = login_as('admin').delete('/users/999')

    assert response.status_code == 404
    assert response.json() == {'error': 'User not found'}
