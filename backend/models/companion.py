"""Companion model definitions."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from backend.core import config
from backend.database import Base


class Companion(Base):
    """A bookable companion profile."""
    __tablename__ = "companions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    age = Column(Integer, nullable=False)
    bio = Column(Text, nullable=False, default="")
    image = Column(String)
    images = Column(JSON, nullable=False, default=list)
    rate = Column(Integer, nullable=False, default=config.DEFAULT_COMPANION_RATE)  # currency per hour
    location = Column(String, nullable=False)
    # Companion-wide switch; when off no date is bookable.
    is_available = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="active")
    telegram_username = Column(String)
    # Bumped inside every booking transaction to serialize concurrent attempts.
    booking_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
