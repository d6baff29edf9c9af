"""Booking submission gate, occupancy listings and admin status changes."""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.models.booking import Booking
from backend.models.companion import Companion
from backend.scheduling.conflicts import (
    BOOKING_STATUSES,
    OCCUPYING_STATUSES,
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    booking_interval,
    ensure_booking_window_open,
    find_conflicting_booking,
    is_within_windows,
)
from backend.scheduling.slots import available_windows
from backend.scheduling.time_utils import (
    business_hours_display,
    is_span_within_business_hours,
    is_valid_booking_duration,
    normalize_time,
)
from backend.services import availability_service

logger = logging.getLogger(__name__)

ALLOWED_STATUS_TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_APPROVED: frozenset({STATUS_COMPLETED, STATUS_REJECTED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_REJECTED: frozenset(),
}


@dataclass(frozen=True)
class BookingRequest:
    companion_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    date: date
    time: str
    duration: int
    location: str
    notes: str | None = None


def validate_booking_request(request: BookingRequest) -> str:
    """Check required fields, duration and business hours; return the normalized start time."""
    required = {
        'customer_name': request.customer_name,
        'customer_email': request.customer_email,
        'customer_phone': request.customer_phone,
        'time': request.time,
        'location': request.location,
    }
    missing = sorted(name for name, value in required.items() if not (value or '').strip())
    if missing or request.date is None:
        raise ValidationError('Please fill in all required fields.', details={'missing': missing})

    if not is_valid_booking_duration(request.duration):
        raise ValidationError(
            f'Invalid booking duration. Please select between '
            f'{config.MIN_BOOKING_HOURS}-{config.MAX_BOOKING_HOURS} hours.',
            details={'duration': request.duration},
        )

    try:
        start_time = normalize_time(request.time)
    except ValueError as exc:
        raise ValidationError('Booking time must use the HH:MM format.') from exc

    interval = booking_interval(start_time, request.duration)
    if not is_span_within_business_hours(interval.start, interval.end):
        raise ValidationError(
            f'Bookings must start and end within business hours ({business_hours_display()}).',
            details={'time': start_time, 'duration': request.duration},
        )

    return start_time


def list_bookings(
    db: Session,
    companion_id: int,
    booking_date: date | None = None,
    statuses: frozenset[str] | tuple[str, ...] = OCCUPYING_STATUSES,
) -> list[Booking]:
    query = db.query(Booking).filter(
        Booking.companion_id == companion_id,
        Booking.status.in_(tuple(statuses)),
    )
    if booking_date is not None:
        query = query.filter(Booking.date == booking_date)
    return query.order_by(Booking.date.asc(), Booking.time.asc()).all()


def find_conflict_reason(
    db: Session,
    companion_id: int,
    booking_date: date,
    start_time: str,
    duration_hours: int,
) -> str | None:
    """Why the candidate cannot be booked, or ``None`` when it is free."""
    candidate = booking_interval(start_time, duration_hours)

    rows = availability_service.get_companion_time_slots(db, companion_id, booking_date)
    if not rows:
        return 'The companion is unavailable on this date.'

    if find_conflicting_booking(candidate, list_bookings(db, companion_id, booking_date)) is not None:
        return 'This time slot is already booked. Please choose a different time.'

    if not is_within_windows(candidate, available_windows(rows)):
        return 'This time is outside the companion\'s available hours.'

    return None


def check_booking_conflict(
    db: Session,
    companion_id: int,
    booking_date: date,
    start_time: str,
    duration_hours: int,
) -> bool:
    return find_conflict_reason(db, companion_id, booking_date, start_time, duration_hours) is not None


def _lock_companion(db: Session, companion_id: int) -> Companion:
    """Take the per-companion booking lock for the current transaction.

    The version bump is a write, so PostgreSQL holds the row lock and SQLite
    the database write lock until commit or rollback.
    """
    result = db.execute(
        update(Companion)
        .where(Companion.id == companion_id)
        .values(booking_version=Companion.booking_version + 1)
    )
    if result.rowcount == 0:
        raise NotFoundError('Companion not found.', details={'companion_id': companion_id})
    return db.get(Companion, companion_id, populate_existing=True)


def attempt_booking(
    db: Session,
    user_id: int,
    request: BookingRequest,
    now: datetime | None = None,
) -> Booking:
    """Validate, re-check and insert a booking as one transaction.

    Raises ``ValidationError``, ``BookingCutoffError``, ``ConflictError`` or
    ``NotFoundError``; on success the committed booking is returned.
    """
    start_time = validate_booking_request(request)
    ensure_booking_window_open(request.date, now)

    try:
        companion = _lock_companion(db, request.companion_id)
        if not companion.is_available:
            raise ConflictError('This companion is not currently accepting bookings.')

        reason = find_conflict_reason(db, companion.id, request.date, start_time, request.duration)
        if reason is not None:
            raise ConflictError(
                reason,
                code='BookingConflict',
                details={'date': request.date.isoformat(), 'time': start_time, 'duration': request.duration},
            )

        booking = Booking(
            companion_id=companion.id,
            user_id=user_id,
            customer_name=request.customer_name.strip(),
            customer_email=request.customer_email.strip().lower(),
            customer_phone=request.customer_phone.strip(),
            date=request.date,
            time=start_time,
            duration=request.duration,
            location=request.location.strip(),
            notes=(request.notes or '').strip() or None,
            total_amount=companion.rate * request.duration,
            status=config.NEW_BOOKING_STATUS,
        )
        db.add(booking)
        db.commit()
    except ConflictError as exc:
        db.rollback()
        logger.info('Rejected booking for companion %s on %s at %s: %s',
                    request.companion_id, request.date, start_time, exc.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info('Created booking %s for companion %s on %s at %s', booking.id, booking.companion_id,
                booking.date, booking.time)
    return booking


def list_user_bookings(db: Session, user_id: int) -> list[Booking]:
    return db.query(Booking).filter(Booking.user_id == user_id).order_by(Booking.created_at.desc()).all()


def list_companion_bookings(db: Session, companion_id: int) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.companion_id == companion_id,
    ).order_by(Booking.date.desc(), Booking.time.desc()).all()


def list_all_bookings_admin(db: Session, status: str | None = None) -> list[Booking]:
    query = db.query(Booking)
    if status is not None:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.created_at.desc()).all()


def update_booking_status(db: Session, booking_id: int, new_status: str) -> Booking:
    if new_status not in BOOKING_STATUSES:
        raise ValidationError('Invalid booking status.', details={'status': new_status})

    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError('Booking not found.', details={'booking_id': booking_id})

    current = booking.status or STATUS_PENDING
    if new_status != current and new_status not in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(
            f'Cannot change a {current} booking to {new_status}.',
            details={'from': current, 'to': new_status},
        )

    booking.status = new_status
    db.commit()
    db.refresh(booking)
    return booking
