"""Booking conflict oracle and same-day cutoff policy."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable

from backend.core import config
from backend.core.errors import BookingCutoffError
from backend.scheduling.slots import Period
from backend.scheduling.time_utils import duration_to_minutes, format_display, time_to_minutes

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_COMPLETED = 'completed'
STATUS_REJECTED = 'rejected'
BOOKING_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_COMPLETED, STATUS_REJECTED)

# Bookings in these states hold their time range.
OCCUPYING_STATUSES = frozenset({STATUS_PENDING, STATUS_APPROVED})


@dataclass(frozen=True)
class Interval:
    """Half-open ``[start, end)`` interval in minutes since midnight."""

    start: int
    end: int

    def overlaps(self, other: 'Interval') -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def booking_interval(start_time: str, duration_hours: int) -> Interval:
    start = time_to_minutes(start_time)
    return Interval(start, start + duration_to_minutes(duration_hours))


def _field(booking: Any, name: str) -> Any:
    if isinstance(booking, dict):
        return booking.get(name)
    return getattr(booking, name)


def find_conflicting_booking(candidate: Interval, bookings: Iterable[Any]) -> Any | None:
    """Return the first occupying booking whose interval meets ``candidate``.

    ``bookings`` may be ORM rows or plain mappings with ``time``,
    ``duration`` and ``status``.
    """
    for booking in bookings:
        status = _field(booking, 'status')
        if status is not None and status not in OCCUPYING_STATUSES:
            continue
        if candidate.overlaps(booking_interval(_field(booking, 'time'), _field(booking, 'duration'))):
            return booking
    return None


def has_booking_conflict(start_time: str, duration_hours: int, bookings: Iterable[Any]) -> bool:
    return find_conflicting_booking(booking_interval(start_time, duration_hours), bookings) is not None


def is_within_windows(candidate: Interval, windows: Iterable[Period]) -> bool:
    return any(window.contains(candidate.start, candidate.end) for window in windows)


def is_booking_cutoff_reached(
    selected_date: date | None = None,
    now: datetime | None = None,
    cutoff_hour: int = config.BOOKING_CUTOFF_HOUR,
) -> bool:
    """Whether a new booking for ``selected_date`` must be refused.

    Past dates are always refused, today is refused from ``cutoff_hour``
    onwards, and future dates are never refused. With no date the global
    cutoff applies.
    """
    now = now or datetime.now()

    if selected_date is None:
        return now.hour >= cutoff_hour

    today = now.date()
    if selected_date > today:
        return False
    if selected_date < today:
        return True
    return now.hour >= cutoff_hour


def booking_cutoff_message(selected_date: date | None = None, now: datetime | None = None) -> str:
    now = now or datetime.now()
    cutoff_display = format_display(f'{config.BOOKING_CUTOFF_HOUR % 24:02d}:00')

    if selected_date is not None and selected_date < now.date():
        return 'Cannot book for past dates. Please select a future date.'
    if selected_date is not None and selected_date == now.date():
        return (
            f'Bookings for today are not accepted after {cutoff_display}. '
            'You can still book for future dates.'
        )
    return f'Bookings are not accepted after {cutoff_display}. Please try again tomorrow.'


def ensure_booking_window_open(selected_date: date, now: datetime | None = None) -> None:
    now = now or datetime.now()
    if is_booking_cutoff_reached(selected_date, now):
        raise BookingCutoffError(
            booking_cutoff_message(selected_date, now),
            details={'date': selected_date.isoformat(), 'cutoff_hour': config.BOOKING_CUTOFF_HOUR},
        )
