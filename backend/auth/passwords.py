import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    if not isinstance(password, str):
        raise TypeError("Password must be a string.")
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    if not password or not hashed_password:
        return False
    try:
        return pwd_context.verify(password, hashed_password)
    except (ValueError, TypeError):
        logger.warning("Stored password hash could not be parsed")
        return False
