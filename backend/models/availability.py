"""Availability model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from backend.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilitySlot(Base):
    """A one-off window on a specific date entered by the companion."""
    __tablename__ = "companion_availability"

    id = Column(Integer, primary_key=True)
    companion_id = Column(Integer, ForeignKey("companions.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    # New slots stay hidden until the companion opts them in.
    is_available = Column(Boolean, nullable=False, default=False)
    notes = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class UnavailableDay(Base):
    """Blackout marker suppressing every slot of one date."""
    __tablename__ = "companion_unavailable_days"
    __table_args__ = (
        UniqueConstraint("companion_id", "date", name="uq_unavailable_day_companion_date"),
    )

    id = Column(Integer, primary_key=True)
    companion_id = Column(Integer, ForeignKey("companions.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    reason = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class DefaultHours(Base):
    """Recurring weekly hours; weekday follows date.weekday() (0=Mon..6=Sun)."""
    __tablename__ = "companion_default_hours"

    id = Column(Integer, primary_key=True)
    companion_id = Column(Integer, ForeignKey("companions.id", ondelete="CASCADE"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
