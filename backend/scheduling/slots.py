"""Availability resolution for a single (companion, date, duration) query.

The backend hands us raw time-slot rows for one day. Recurring rows
(``default`` / ``combined_default``) are merged into contiguous periods and
offered on a half-hour grid. On a day with only ``specific`` rows each slot
offers just its own start time; alongside recurring rows they are merged in
with the rest.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Sequence

from backend.core import config
from backend.core.errors import ValidationError
from backend.scheduling.time_utils import (
    duration_to_minutes,
    is_valid_booking_duration,
    minutes_to_time,
    normalize_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

SLOT_TYPE_DEFAULT = 'default'
SLOT_TYPE_SPECIFIC = 'specific'
SLOT_TYPE_COMBINED_DEFAULT = 'combined_default'
RECURRING_SLOT_TYPES = frozenset({SLOT_TYPE_DEFAULT, SLOT_TYPE_COMBINED_DEFAULT})
SLOT_TYPES = RECURRING_SLOT_TYPES | {SLOT_TYPE_SPECIFIC}


@dataclass(frozen=True)
class TimeSlotRow:
    slot_type: str
    start_time: str
    end_time: str
    is_available: bool
    is_booked: bool
    source: str = ''

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)

    @property
    def is_bookable(self) -> bool:
        return self.is_available and not self.is_booked

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'TimeSlotRow':
        slot_type = row['slot_type']
        if slot_type not in SLOT_TYPES:
            raise ValueError(f'Unknown slot type: {slot_type!r}')

        return cls(
            slot_type=slot_type,
            start_time=normalize_time(row['start_time']),
            end_time=normalize_time(row['end_time']),
            is_available=bool(row.get('is_available')),
            is_booked=bool(row.get('is_booked')),
            source=row.get('source') or '',
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'slot_type': self.slot_type,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'is_available': self.is_available,
            'is_booked': self.is_booked,
            'source': self.source,
        }


@dataclass(frozen=True)
class Period:
    """A contiguous bookable window, in minutes since midnight."""

    start: int
    end: int

    @property
    def span(self) -> int:
        return self.end - self.start

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


@dataclass(frozen=True)
class SlotClassification:
    day_unavailable: bool
    recurring: tuple[TimeSlotRow, ...] = ()
    specific: tuple[TimeSlotRow, ...] = ()

    @property
    def specific_only(self) -> bool:
        return bool(self.specific) and not self.recurring


class Resolution(str, Enum):
    COMPANION_UNAVAILABLE = 'companion_unavailable'
    DAY_UNAVAILABLE = 'day_unavailable'
    NO_FIT = 'no_fit'
    OFFERING = 'offering'


@dataclass(frozen=True)
class AvailabilityResult:
    state: Resolution
    start_times: tuple[str, ...] = ()


def _coerce_rows(rows: Iterable[TimeSlotRow | Mapping[str, Any]]) -> list[TimeSlotRow]:
    return [row if isinstance(row, TimeSlotRow) else TimeSlotRow.from_mapping(row) for row in rows]


def classify_slots(rows: Iterable[TimeSlotRow | Mapping[str, Any]]) -> SlotClassification:
    """Split a day's rows into recurring and specific bookable rows.

    An empty row set means the day itself is unavailable, which is a
    different answer from "nothing fits the requested duration".
    """
    all_rows = _coerce_rows(rows)
    if not all_rows:
        return SlotClassification(day_unavailable=True)

    bookable = [row for row in all_rows if row.is_bookable]
    return SlotClassification(
        day_unavailable=False,
        recurring=tuple(row for row in bookable if row.slot_type in RECURRING_SLOT_TYPES),
        specific=tuple(row for row in bookable if row.slot_type == SLOT_TYPE_SPECIFIC),
    )


def merge_consecutive(rows: Iterable[TimeSlotRow]) -> list[Period]:
    """Merge rows where one ends exactly where the next starts."""
    ordered = sorted(rows, key=lambda row: row.start_minutes)
    periods: list[Period] = []

    for row in ordered:
        if periods and periods[-1].end == row.start_minutes:
            periods[-1] = Period(periods[-1].start, row.end_minutes)
        else:
            periods.append(Period(row.start_minutes, row.end_minutes))

    return periods


def enumerate_period_starts(
    period: Period,
    duration_minutes: int,
    step_minutes: int = config.START_TIME_STEP_MINUTES,
) -> list[str]:
    if period.span < duration_minutes:
        return []

    return [
        minutes_to_time(minutes)
        for minutes in range(period.start, period.end - duration_minutes + 1, step_minutes)
    ]


def fitting_specific_starts(rows: Iterable[TimeSlotRow], duration_minutes: int) -> list[str]:
    # A specific slot is offered whole; it is never scanned for sub-starts.
    return [row.start_time for row in rows if row.end_minutes - row.start_minutes >= duration_minutes]


def offerable_start_times(classification: SlotClassification, duration_hours: int) -> list[str]:
    duration_minutes = duration_to_minutes(duration_hours)

    if classification.specific_only:
        return sorted(set(fitting_specific_starts(classification.specific, duration_minutes)))

    # Once recurring hours exist, specific rows join the consecutive merge too.
    starts: set[str] = set()
    for period in merge_consecutive(classification.recurring + classification.specific):
        starts.update(enumerate_period_starts(period, duration_minutes))

    return sorted(starts)


def available_windows(rows: Iterable[TimeSlotRow | Mapping[str, Any]]) -> list[Period]:
    """Windows a booking may fall inside, ignoring booking occupancy.

    Used by the conflict oracle: occupancy is checked against the bookings
    themselves, so ``is_booked`` is not considered here. The windows follow
    the same grouping as ``offerable_start_times``.
    """
    available = [row for row in _coerce_rows(rows) if row.is_available]
    if any(row.slot_type in RECURRING_SLOT_TYPES for row in available):
        return merge_consecutive(available)

    return sorted(
        (Period(row.start_minutes, row.end_minutes) for row in available),
        key=lambda period: (period.start, period.end),
    )


def resolve_availability(
    companion_available: bool,
    load_rows: Callable[[], Sequence[TimeSlotRow | Mapping[str, Any]]],
    duration_hours: int,
) -> AvailabilityResult:
    """Compute the offerable start times for one companion and date.

    ``load_rows`` is only called once the companion-wide switch is known to
    be on, so an unavailable companion costs no slot query.
    """
    if not is_valid_booking_duration(duration_hours):
        raise ValidationError(
            f'Invalid booking duration. Please select between '
            f'{config.MIN_BOOKING_HOURS}-{config.MAX_BOOKING_HOURS} hours.',
            details={'duration': duration_hours},
        )

    if not companion_available:
        return AvailabilityResult(Resolution.COMPANION_UNAVAILABLE)

    classification = classify_slots(load_rows())
    if classification.day_unavailable:
        return AvailabilityResult(Resolution.DAY_UNAVAILABLE)

    start_times = offerable_start_times(classification, duration_hours)
    logger.debug(
        'Resolved %d start times from %d recurring and %d specific rows for %dh',
        len(start_times),
        len(classification.recurring),
        len(classification.specific),
        duration_hours,
    )
    if not start_times:
        return AvailabilityResult(Resolution.NO_FIT)

    return AvailabilityResult(Resolution.OFFERING, tuple(start_times))
