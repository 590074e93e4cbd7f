"""Weekly time slot model definitions."""

from sqlalchemy import Column, Integer, String, Boolean, UniqueConstraint
from backend.database import Base


class TimeSlot(Base):
    """A recurring weekly booking window with a fixed capacity.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("day_of_week", "start_time", "end_time", name="uq_time_slot_window"),
    )

    id = Column(Integer, primary_key=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
