"""Booking model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from backend.database import Base
from backend.models.companion import Companion


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """A customer reservation occupying [time, time + duration)."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    companion_id = Column(Integer, ForeignKey("companions.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM start
    duration = Column(Integer, nullable=False)  # whole hours
    location = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    # Frozen at submission: companion rate x duration.
    total_amount = Column(Integer, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    companion = relationship(Companion, lazy="joined")
