"""Patient model definitions."""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from backend.database import Base


class Patient(Base):
    """Represents a patient record managed by the clinic."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String, nullable=False)
    address = Column(String, default="")
    phone = Column(String, nullable=False)
    email = Column(String, index=True)
    emergency_contact = Column(String)
    medical_history = Column(Text)
    assigned_doctor_id = Column(Integer, ForeignKey("users.id"))
    created_by_id = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_doctor = relationship("User", foreign_keys=[assigned_doctor_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    appointments = relationship(
        "Appointment",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Appointment.date.desc()",
    )
    treatments = relationship(
        "Treatment",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="Treatment.date.desc()",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
