from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, get_current_user, require_roles
from backend.auth.passwords import hash_password
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.patient import Patient
from backend.models.treatment import Treatment
from backend.models.user import Role, User
from backend.routes.common import CamelModel, bad_request, forbidden, internal_error, not_found
from backend.services.audit import record_audit

router = APIRouter(tags=['users'])


class UserResponse(CamelModel):
    id: int
    email: str
    name: str
    role: Role
    status: str = 'ACTIVE'
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateUserRequest(CamelModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: Role | None = None


class UpdateUserRequest(CamelModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: Role | None = None


def _load_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise not_found('User')
    return user


def _ensure_self_or_admin(current_user: SessionUser, user_id: int) -> None:
    if current_user.id != user_id and current_user.role != Role.ADMIN:
        raise forbidden()


def _ensure_unreferenced(db: Session, user_id: int) -> None:
    references = (
        db.query(Appointment).filter(Appointment.user_id == user_id).count()
        + db.query(Treatment).filter(Treatment.physiotherapist_id == user_id).count()
        + db.query(Patient).filter(Patient.assigned_doctor_id == user_id).count()
    )
    if references:
        raise _still_referenced()


def _still_referenced() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail='User is still referenced by patients, appointments, or treatments',
    )


@router.get('', response_model=list[UserResponse])
def list_users(
    role: Role | None = Query(default=None),
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Receptionists may list physiotherapists when scheduling appointments.
    receptionist_lookup = current_user.role == Role.RECEPTIONIST and role == Role.PHYSIOTHERAPIST
    if current_user.role != Role.ADMIN and not receptionist_lookup:
        raise forbidden()

    try:
        query = db.query(User)
        if role is not None:
            query = query.filter(User.role == role.value)
        return query.order_by(User.created_at.desc(), User.id.desc()).all()
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching users') from exc


@router.post('', response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    data: CreateUserRequest,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    email = (data.email or '').strip().lower()
    if not data.name or not email or not data.password or data.role is None:
        raise bad_request('Name, email, password, and role are required')

    try:
        if db.query(User).filter(User.email == email).first():
            raise bad_request('User with this email already exists')

        user = User(
            name=data.name.strip(),
            email=email,
            hashed_password=hash_password(data.password),
            role=data.role.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error creating user') from exc

    record_audit(
        db,
        action='CREATE',
        entity_type='USER',
        entity_id=user.id,
        details=f'User created: {user.email}',
        user_id=current_user.id,
    )
    return user


@router.get('/{user_id}', response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_self_or_admin(current_user, user_id)
    try:
        return _load_user(db, user_id)
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching user') from exc


@router.put('/{user_id}', response_model=UserResponse)
def update_user(
    user_id: int,
    data: UpdateUserRequest,
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_self_or_admin(current_user, user_id)

    try:
        user = _load_user(db, user_id)

        if data.name:
            user.name = data.name.strip()
        if data.email:
            email = data.email.strip().lower()
            if email != user.email and db.query(User).filter(User.email == email).first():
                raise bad_request('User with this email already exists')
            user.email = email
        if data.password:
            user.hashed_password = hash_password(data.password)
        # Only admins can change roles.
        if data.role is not None and current_user.role == Role.ADMIN:
            user.role = data.role.value

        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating user') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='USER',
        entity_id=user.id,
        details=f'User updated: {user.email}',
        user_id=current_user.id,
    )
    return user


@router.delete('/{user_id}')
def delete_user(
    user_id: int,
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        user = _load_user(db, user_id)
        _ensure_unreferenced(db, user.id)
        email = user.email
        # Patients keep their records when the staff member who registered them leaves.
        db.query(Patient).filter(Patient.created_by_id == user.id).update(
            {Patient.created_by_id: None}, synchronize_session=False
        )
        db.delete(user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise _still_referenced() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error deleting user') from exc

    record_audit(
        db,
        action='DELETE',
        entity_type='USER',
        entity_id=user_id,
        details=f'User deleted: {email}',
        user_id=current_user.id,
    )
    return {'success': True}
