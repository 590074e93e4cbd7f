import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SESSION_USER_KEY, SessionUser, get_current_user, load_session_user
from backend.auth.passwords import verify_password
from backend.auth.session import SessionManager, get_session_manager
from backend.database import get_db
from backend.models.user import User
from backend.routes.common import bad_request, internal_error
from backend.services.audit import record_audit

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class LoginResponse(BaseModel):
    user: SessionUser


@router.post('/login', response_model=LoginResponse)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    session: SessionManager = Depends(get_session_manager),
):
    email = (data.email or '').strip().lower()
    if not email or not data.password:
        raise bad_request('Email and password are required')

    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as exc:
        raise internal_error('Login lookup failed') from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        logger.info('Rejected login for %s', email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password')

    session_user = SessionUser(id=user.id, email=user.email, name=user.name, role=user.role)
    session.set(SESSION_USER_KEY, session_user.model_dump(mode='json'))

    record_audit(
        db,
        action='LOGIN',
        entity_type='USER',
        entity_id=user.id,
        details=f'User logged in: {user.email}',
        user_id=user.id,
    )

    return LoginResponse(user=session_user)


@router.post('/logout')
def logout(
    db: Session = Depends(get_db),
    session: SessionManager = Depends(get_session_manager),
):
    user = load_session_user(session)
    if user is not None:
        record_audit(
            db,
            action='LOGOUT',
            entity_type='USER',
            entity_id=user.id,
            details=f'User logged out: {user.email}',
            user_id=user.id,
        )

    session.clear()
    return {'success': True}


@router.get('/me', response_model=SessionUser)
def me(current_user: SessionUser = Depends(get_current_user)):
    return current_user
