import logging
from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

logger = logging.getLogger(__name__)


def encrypt(payload: dict, expires_days: int | None = None) -> str:
    expire_days = config.SESSION_MAX_AGE_DAYS if expires_days is None else expires_days
    now = datetime.now(timezone.utc)
    claims = {**payload, "iat": now, "exp": now + timedelta(days=expire_days)}
    return jwt.encode(claims, config.SESSION_SECRET, algorithm=config.SESSION_ALGORITHM)


def decrypt(token: str | None) -> dict | None:
    """Return the verified claims, or None for anything that fails verification."""
    if not token:
        return None
    try:
        return jwt.decode(token, config.SESSION_SECRET, algorithms=[config.SESSION_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.debug("Failed to verify session token: %s", exc)
        return None
