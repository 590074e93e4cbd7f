import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV.lower() == "production"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

DEFAULT_SESSION_SECRET = "change-me-to-a-long-random-session-secret"
SESSION_SECRET = os.getenv("SESSION_SECRET", DEFAULT_SESSION_SECRET)
SESSION_ALGORITHM = "HS256"
SESSION_BACKEND = os.getenv("SESSION_BACKEND", "cookie").strip().lower()
SESSION_MAX_AGE_DAYS = int(os.getenv("SESSION_MAX_AGE_DAYS", "7"))
SESSION_MAX_AGE_SECONDS = SESSION_MAX_AGE_DAYS * 24 * 60 * 60
SESSION_COOKIE_SECURE = _get_bool(os.getenv("SESSION_COOKIE_SECURE"), default=IS_PRODUCTION)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def validate_runtime_config() -> None:
    if IS_PRODUCTION and SESSION_SECRET == DEFAULT_SESSION_SECRET:
        raise RuntimeError("SESSION_SECRET must be set in production.")
    if SESSION_BACKEND not in {"cookie", "redis"}:
        raise RuntimeError("SESSION_BACKEND must be either 'cookie' or 'redis'.")
