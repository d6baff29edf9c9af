"""Wall-clock time helpers shared by the resolver, the booking gate and the routes.

All times are minute-resolution values within one business day in the
companion's local time. No timezone handling is done here.
"""

from datetime import time

from backend.core import config

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR


def time_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` (or ``HH:MM:SS``) to minutes since midnight."""
    parts = value.strip().split(':')
    if len(parts) not in (2, 3):
        raise ValueError(f'Invalid time value: {value!r}')

    hours, minutes = int(parts[0]), int(parts[1])
    if not 0 <= hours < 24 or not 0 <= minutes < MINUTES_PER_HOUR:
        raise ValueError(f'Invalid time value: {value!r}')

    return hours * MINUTES_PER_HOUR + minutes


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight back to ``HH:MM``."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'Minutes out of range for a single day: {minutes}')

    hours, mins = divmod(minutes, MINUTES_PER_HOUR)
    return f'{hours:02d}:{mins:02d}'


def normalize_time(value: str | time) -> str:
    if isinstance(value, time):
        return f'{value.hour:02d}:{value.minute:02d}'
    return minutes_to_time(time_to_minutes(value))


def format_display(value: str) -> str:
    """Render ``HH:MM`` as a 12-hour clock string, e.g. ``2:30 PM``."""
    hours, minutes = divmod(time_to_minutes(value), MINUTES_PER_HOUR)
    period = 'PM' if hours >= 12 else 'AM'
    display_hours = 12 if hours % 12 == 0 else hours % 12
    return f'{display_hours}:{minutes:02d} {period}'


def business_hours_display() -> str:
    return f'{format_display(config.BUSINESS_HOURS_START)} - {format_display(config.BUSINESS_HOURS_END)}'


def is_within_business_hours(value: str) -> bool:
    minutes = time_to_minutes(value)
    return time_to_minutes(config.BUSINESS_HOURS_START) <= minutes <= time_to_minutes(config.BUSINESS_HOURS_END)


def is_span_within_business_hours(start_minutes: int, end_minutes: int) -> bool:
    return (
        time_to_minutes(config.BUSINESS_HOURS_START) <= start_minutes
        and end_minutes <= time_to_minutes(config.BUSINESS_HOURS_END)
    )


def is_valid_booking_duration(hours: object) -> bool:
    if isinstance(hours, bool) or not isinstance(hours, int):
        return False
    return config.MIN_BOOKING_HOURS <= hours <= config.MAX_BOOKING_HOURS


def duration_to_minutes(hours: int) -> int:
    return hours * MINUTES_PER_HOUR
