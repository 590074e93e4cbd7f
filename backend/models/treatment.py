"""Treatment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from backend.database import Base


class Treatment(Base):
    """Clinical notes recorded against a completed appointment."""
    __tablename__ = "treatments"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    physiotherapist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(DateTime, nullable=False)
    notes = Column(Text, nullable=False)
    home_program = Column(Text)
    progress = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    appointment = relationship("Appointment", back_populates="treatment")
    patient = relationship("Patient", back_populates="treatments")
    physiotherapist = relationship("User")
