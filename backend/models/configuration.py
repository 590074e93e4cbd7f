"""Clinic configuration model definitions."""

from sqlalchemy import Column, Integer, String, Text
from backend.database import Base


class Configuration(Base):
    """A single key/value clinic setting."""
    __tablename__ = "configurations"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(Text, nullable=False)
    description = Column(String)
