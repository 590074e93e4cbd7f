import logging

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from backend.auth.session import SessionManager, get_session_manager
from backend.models.user import Role

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"


class SessionUser(BaseModel):
    id: int
    email: str
    name: str
    role: Role


def load_session_user(session: SessionManager) -> SessionUser | None:
    value = session.get(SESSION_USER_KEY)
    if value is None:
        return None
    try:
        return SessionUser.model_validate(value)
    except ValidationError:
        logger.info("Discarding malformed session user")
        return None


def require_roles(*allowed_roles: Role):
    """Build a dependency that resolves the session user and enforces an allow-list.

    With no roles given, any authenticated user passes.
    """
    allowed = {Role(role) for role in allowed_roles}

    def dependency(
        request: Request,
        session: SessionManager = Depends(get_session_manager),
    ) -> SessionUser:
        user = load_session_user(session)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

        if allowed and user.role not in allowed:
            logger.info("Denied %s %s to user %s with role %s", request.method, request.url.path, user.id, user.role.value)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

        request.state.user = user
        return user

    return dependency


get_current_user = require_roles()
