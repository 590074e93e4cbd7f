from backend.models.user import Role, User
from backend.models.patient import Patient
from backend.models.time_slot import TimeSlot
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.treatment import Treatment
from backend.models.audit_log import AuditLog
from backend.models.configuration import Configuration

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AuditLog",
    "Configuration",
    "Patient",
    "Role",
    "TimeSlot",
    "Treatment",
    "User",
]
