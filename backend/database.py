from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(config.DATABASE_URL, connect_args=_connect_args(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_indexes_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_indexes(bind=None) -> None:
    """Create the lookup indexes used by the capacity counter, once per process."""
    global _booking_indexes_checked

    if _booking_indexes_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _booking_indexes_checked:
            return

        inspector = inspect(bind)

        if 'appointments' not in inspector.get_table_names():
            _booking_indexes_checked = True
            return

        with bind.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_slot_date ON appointments(time_slot_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_user_date ON appointments(user_id, date)')
            )

        _booking_indexes_checked = True
