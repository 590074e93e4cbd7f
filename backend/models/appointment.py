"""Appointment model definitions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from backend.database import Base


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Appointment(Base):
    """Represents a patient booked into a time slot with a practitioner."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False)
    date = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("Patient", back_populates="appointments")
    user = relationship("User")
    time_slot = relationship("TimeSlot")
    treatment = relationship("Treatment", back_populates="appointment", uselist=False, cascade="all, delete-orphan")
