"""Companion availability storage and the server-side time-slot listing."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.models.availability import AvailabilitySlot, DefaultHours, UnavailableDay
from backend.models.booking import Booking
from backend.models.companion import Companion
from backend.scheduling.conflicts import OCCUPYING_STATUSES, Interval, booking_interval, intervals_overlap
from backend.scheduling.slots import (
    SLOT_TYPE_COMBINED_DEFAULT,
    SLOT_TYPE_DEFAULT,
    SLOT_TYPE_SPECIFIC,
    AvailabilityResult,
    TimeSlotRow,
    resolve_availability,
)
from backend.scheduling.time_utils import (
    business_hours_display,
    is_within_business_hours,
    minutes_to_time,
    normalize_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

SPECIFIC_SOURCE = 'companion_availability'
DEFAULT_SOURCE = 'companion_default_hours'


def get_companion(db: Session, companion_id: int) -> Companion:
    companion = db.get(Companion, companion_id)
    if companion is None:
        raise NotFoundError('Companion not found.', details={'companion_id': companion_id})
    return companion


def validate_window(start_time: str, end_time: str) -> tuple[str, str]:
    """Normalize a window and check it is ordered and inside business hours."""
    try:
        start, end = normalize_time(start_time), normalize_time(end_time)
    except ValueError as exc:
        raise ValidationError('Times must use the HH:MM format.') from exc

    if time_to_minutes(start) >= time_to_minutes(end):
        raise ValidationError('End time must be after start time.')
    if not (is_within_business_hours(start) and is_within_business_hours(end)):
        raise ValidationError(f'Times must be within business hours ({business_hours_display()}).')

    return start, end


def _windows_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    return intervals_overlap(
        time_to_minutes(a_start), time_to_minutes(a_end), time_to_minutes(b_start), time_to_minutes(b_end)
    )


def is_unavailable_day(db: Session, companion_id: int, slot_date: date) -> bool:
    return db.query(UnavailableDay.id).filter(
        UnavailableDay.companion_id == companion_id,
        UnavailableDay.date == slot_date,
    ).first() is not None


def list_availability_slots(
    db: Session,
    companion_id: int,
    slot_date: date | None = None,
    available_only: bool = False,
) -> list[AvailabilitySlot]:
    query = db.query(AvailabilitySlot).filter(AvailabilitySlot.companion_id == companion_id)
    if slot_date is not None:
        query = query.filter(AvailabilitySlot.date == slot_date)
    if available_only:
        query = query.filter(AvailabilitySlot.is_available.is_(True))
    return query.order_by(AvailabilitySlot.date.asc(), AvailabilitySlot.start_time.asc()).all()


def _ensure_no_slot_overlap(
    db: Session,
    companion_id: int,
    slot_date: date,
    start_time: str,
    end_time: str,
    exclude_id: int | None = None,
) -> None:
    for existing in list_availability_slots(db, companion_id, slot_date):
        if existing.id == exclude_id:
            continue
        if _windows_overlap(start_time, end_time, existing.start_time, existing.end_time):
            raise ConflictError(
                'This time slot overlaps an existing availability slot.',
                details={'slot_id': existing.id},
            )


def create_availability_slot(
    db: Session,
    companion_id: int,
    slot_date: date,
    start_time: str,
    end_time: str,
    notes: str | None = None,
    is_available: bool = False,
) -> AvailabilitySlot:
    start, end = validate_window(start_time, end_time)

    if is_unavailable_day(db, companion_id, slot_date):
        raise ConflictError('Cannot add availability slot for a day marked as unavailable.')
    _ensure_no_slot_overlap(db, companion_id, slot_date, start, end)

    slot = AvailabilitySlot(
        companion_id=companion_id,
        date=slot_date,
        start_time=start,
        end_time=end,
        notes=notes or None,
        is_available=is_available,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    logger.info('Added availability slot %s for companion %s on %s', slot.id, companion_id, slot_date)
    return slot


def _get_owned_slot(db: Session, companion_id: int, slot_id: int) -> AvailabilitySlot:
    slot = db.query(AvailabilitySlot).filter(
        AvailabilitySlot.id == slot_id,
        AvailabilitySlot.companion_id == companion_id,
    ).first()
    if slot is None:
        raise NotFoundError('Availability slot not found.', details={'slot_id': slot_id})
    return slot


def update_availability_slot(
    db: Session,
    companion_id: int,
    slot_id: int,
    *,
    is_available: bool | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    notes: str | None = None,
) -> AvailabilitySlot:
    slot = _get_owned_slot(db, companion_id, slot_id)

    if start_time is not None or end_time is not None:
        start, end = validate_window(start_time or slot.start_time, end_time or slot.end_time)
        _ensure_no_slot_overlap(db, companion_id, slot.date, start, end, exclude_id=slot.id)
        slot.start_time, slot.end_time = start, end
    if is_available is not None:
        slot.is_available = is_available
    if notes is not None:
        slot.notes = notes or None

    db.commit()
    db.refresh(slot)
    return slot


def delete_availability_slot(db: Session, companion_id: int, slot_id: int) -> None:
    slot = _get_owned_slot(db, companion_id, slot_id)
    db.delete(slot)
    db.commit()


def list_unavailable_days(db: Session, companion_id: int) -> list[UnavailableDay]:
    return db.query(UnavailableDay).filter(
        UnavailableDay.companion_id == companion_id,
    ).order_by(UnavailableDay.date.asc()).all()


def add_unavailable_day(db: Session, companion_id: int, day: date, reason: str | None = None) -> UnavailableDay:
    """Mark a blackout day and drop that date's slots in the same transaction."""
    if is_unavailable_day(db, companion_id, day):
        raise ConflictError('This day is already marked as unavailable.')

    removed = db.query(AvailabilitySlot).filter(
        AvailabilitySlot.companion_id == companion_id,
        AvailabilitySlot.date == day,
    ).delete(synchronize_session=False)

    unavailable_day = UnavailableDay(companion_id=companion_id, date=day, reason=reason or None)
    db.add(unavailable_day)
    db.commit()
    db.refresh(unavailable_day)

    if removed:
        logger.info('Removed %d availability slots for companion %s on blackout day %s', removed, companion_id, day)
    return unavailable_day


def remove_unavailable_day(db: Session, companion_id: int, day_id: int) -> None:
    unavailable_day = db.query(UnavailableDay).filter(
        UnavailableDay.id == day_id,
        UnavailableDay.companion_id == companion_id,
    ).first()
    if unavailable_day is None:
        raise NotFoundError('Unavailable day not found.', details={'day_id': day_id})

    db.delete(unavailable_day)
    db.commit()


def list_default_hours(db: Session, companion_id: int, weekday: int | None = None) -> list[DefaultHours]:
    query = db.query(DefaultHours).filter(DefaultHours.companion_id == companion_id)
    if weekday is not None:
        query = query.filter(DefaultHours.weekday == weekday)
    return query.order_by(DefaultHours.weekday.asc(), DefaultHours.start_time.asc()).all()


def replace_default_hours(
    db: Session,
    companion_id: int,
    weekday: int,
    windows: list[tuple[str, str]],
) -> list[DefaultHours]:
    if not 0 <= weekday <= 6:
        raise ValidationError('Weekday must be between 0 (Monday) and 6 (Sunday).')

    normalized = sorted(validate_window(start, end) for start, end in windows)
    for (_, previous_end), (next_start, _) in zip(normalized, normalized[1:]):
        if time_to_minutes(next_start) < time_to_minutes(previous_end):
            raise ConflictError('Default hours for a weekday must not overlap.')

    db.query(DefaultHours).filter(
        DefaultHours.companion_id == companion_id,
        DefaultHours.weekday == weekday,
    ).delete(synchronize_session=False)
    for start, end in normalized:
        db.add(DefaultHours(companion_id=companion_id, weekday=weekday, start_time=start, end_time=end))
    db.commit()

    return list_default_hours(db, companion_id, weekday)


def list_occupying_bookings(db: Session, companion_id: int, slot_date: date) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.companion_id == companion_id,
        Booking.date == slot_date,
        Booking.status.in_(OCCUPYING_STATUSES),
    ).order_by(Booking.time.asc()).all()


def _split_into_cells(start_time: str, end_time: str, cell_minutes: int) -> list[tuple[int, int]]:
    start, end = time_to_minutes(start_time), time_to_minutes(end_time)
    return [(cell_start, min(cell_start + cell_minutes, end)) for cell_start in range(start, end, cell_minutes)]


def get_companion_time_slots(db: Session, companion_id: int, slot_date: date) -> list[TimeSlotRow]:
    """Rows for one companion and date; empty means the day is unavailable."""
    if is_unavailable_day(db, companion_id, slot_date):
        return []

    occupied = [
        booking_interval(booking.time, booking.duration)
        for booking in list_occupying_bookings(db, companion_id, slot_date)
    ]

    def is_booked(start: int, end: int) -> bool:
        return any(Interval(start, end).overlaps(interval) for interval in occupied)

    rows: list[TimeSlotRow] = []
    specific_slots = list_availability_slots(db, companion_id, slot_date)
    for slot in specific_slots:
        rows.append(
            TimeSlotRow(
                slot_type=SLOT_TYPE_SPECIFIC,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_available=bool(slot.is_available),
                is_booked=is_booked(time_to_minutes(slot.start_time), time_to_minutes(slot.end_time)),
                source=SPECIFIC_SOURCE,
            )
        )

    recurring_type = SLOT_TYPE_COMBINED_DEFAULT if specific_slots else SLOT_TYPE_DEFAULT
    specific_windows = [
        (time_to_minutes(slot.start_time), time_to_minutes(slot.end_time)) for slot in specific_slots
    ]
    for hours in list_default_hours(db, companion_id, slot_date.weekday()):
        cells = _split_into_cells(hours.start_time, hours.end_time, config.DEFAULT_HOURS_CELL_MINUTES)
        for cell_start, cell_end in cells:
            if any(intervals_overlap(cell_start, cell_end, start, end) for start, end in specific_windows):
                continue
            rows.append(
                TimeSlotRow(
                    slot_type=recurring_type,
                    start_time=minutes_to_time(cell_start),
                    end_time=minutes_to_time(cell_end),
                    is_available=True,
                    is_booked=is_booked(cell_start, cell_end),
                    source=DEFAULT_SOURCE,
                )
            )

    return sorted(rows, key=lambda row: (row.start_minutes, row.end_minutes))


def resolve_start_times(db: Session, companion_id: int, slot_date: date, duration_hours: int) -> AvailabilityResult:
    companion = get_companion(db, companion_id)
    return resolve_availability(
        bool(companion.is_available),
        lambda: get_companion_time_slots(db, companion_id, slot_date),
        duration_hours,
    )
