"""User model definitions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime
from backend.database import Base


class Role(str, Enum):
    ADMIN = "ADMIN"
    RECEPTIONIST = "RECEPTIONIST"
    PHYSIOTHERAPIST = "PHYSIOTHERAPIST"
    PATIENT = "PATIENT"


class User(Base):
    """Represents a clinic staff member or patient login."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.PATIENT.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
