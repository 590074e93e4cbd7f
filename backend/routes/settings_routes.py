import json
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import SessionUser, get_current_user, require_roles
from backend.database import get_db
from backend.models.configuration import Configuration
from backend.models.user import Role
from backend.routes.common import bad_request, forbidden, internal_error
from backend.services.audit import record_audit

router = APIRouter(tags=['settings'])

PUBLIC_SETTING_KEYS = frozenset({'workingDays', 'workingHoursStart', 'workingHoursEnd'})


def decode_setting(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def encode_setting(value: Any) -> str:
    if isinstance(value, (dict, list, bool)) or value is None:
        return json.dumps(value)
    return str(value)


def parse_keys(keys: str | None) -> list[str]:
    if not keys:
        return []
    return [key.strip() for key in keys.split(',') if key.strip()]


@router.get('')
def get_settings(
    keys: str | None = Query(default=None),
    current_user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    requested_keys = parse_keys(keys)

    if current_user.role != Role.ADMIN:
        # Other roles may only read the working schedule, and only by asking for it.
        if not requested_keys or any(key not in PUBLIC_SETTING_KEYS for key in requested_keys):
            raise forbidden()

    try:
        query = db.query(Configuration)
        if requested_keys:
            query = query.filter(Configuration.key.in_(requested_keys))
        return {setting.key: decode_setting(setting.value) for setting in query.all()}
    except SQLAlchemyError as exc:
        raise internal_error('Error fetching settings') from exc


@router.post('')
def save_settings(
    settings: dict[str, Any] = Body(...),
    current_user: SessionUser = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    if not settings:
        raise bad_request('At least one setting is required')

    try:
        for key, value in settings.items():
            setting = db.query(Configuration).filter(Configuration.key == key).first()
            if setting is None:
                setting = Configuration(key=key, description=f'Setting for {key}')
                db.add(setting)
            setting.value = encode_setting(value)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error('Error updating settings') from exc

    record_audit(
        db,
        action='UPDATE',
        entity_type='SETTINGS',
        entity_id='MULTIPLE',
        details=f'System settings updated by {current_user.name}',
        user_id=current_user.id,
    )
    return {'success': True, 'count': len(settings)}
