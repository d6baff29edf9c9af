import pytest

from backend.core.errors import ValidationError
from backend.scheduling.slots import (
    Period,
    Resolution,
    TimeSlotRow,
    available_windows,
    classify_slots,
    enumerate_period_starts,
    merge_consecutive,
    offerable_start_times,
    resolve_availability,
)


def _row(slot_type: str, start: str, end: str, is_available: bool = True, is_booked: bool = False) -> TimeSlotRow:
    return TimeSlotRow(
        slot_type=slot_type,
        start_time=start,
        end_time=end,
        is_available=is_available,
        is_booked=is_booked,
        source='test',
    )


def _resolve(rows, duration: int, companion_available: bool = True):
    return resolve_availability(companion_available, lambda: rows, duration)


def test_classify_slots_marks_empty_row_set_as_day_unavailable() -> None:
    assert classify_slots([]).day_unavailable is True


def test_classify_slots_drops_unavailable_and_booked_rows() -> None:
    classification = classify_slots([
        _row('default', '09:00', '10:00'),
        _row('default', '10:00', '11:00', is_booked=True),
        _row('specific', '14:00', '15:00', is_available=False),
        _row('specific', '16:00', '17:00'),
    ])

    assert classification.day_unavailable is False
    assert [row.start_time for row in classification.recurring] == ['09:00']
    assert [row.start_time for row in classification.specific] == ['16:00']


def test_classify_slots_accepts_backend_mappings() -> None:
    classification = classify_slots([
        {
            'slot_type': 'combined_default',
            'start_time': '09:00:00',
            'end_time': '09:30:00',
            'is_available': True,
            'is_booked': False,
            'source': 'companion_default_hours',
        },
    ])

    assert classification.recurring[0].start_time == '09:00'


def test_merge_consecutive_sorts_and_merges_exact_adjacency_only() -> None:
    periods = merge_consecutive([
        _row('default', '12:00', '15:00'),
        _row('default', '09:00', '12:00'),
        _row('default', '15:30', '17:00'),
    ])

    assert periods == [Period(540, 900), Period(930, 1020)]


def test_enumerate_period_starts_covers_grid_up_to_last_fitting_start() -> None:
    starts = enumerate_period_starts(Period(540, 900), 120)

    assert starts[0] == '09:00'
    assert starts[-1] == '13:00'
    assert len(starts) == 9


def test_enumerate_period_starts_returns_nothing_when_period_too_short() -> None:
    assert enumerate_period_starts(Period(540, 600), 120) == []


def test_default_hours_merge_and_offer_half_hour_grid() -> None:
    result = _resolve([_row('default', '09:00', '12:00'), _row('default', '12:00', '15:00')], 2)

    assert result.state is Resolution.OFFERING
    assert result.start_times == (
        '09:00', '09:30', '10:00', '10:30', '11:00', '11:30', '12:00', '12:30', '13:00',
    )


def test_specific_only_slot_offers_its_own_start_once() -> None:
    result = _resolve([_row('specific', '14:00', '16:00')], 1)

    assert result.state is Resolution.OFFERING
    assert result.start_times == ('14:00',)


def test_specific_slots_are_offered_only_when_long_enough() -> None:
    rows = [
        _row('specific', '10:00', '11:00'),
        _row('specific', '13:00', '16:00'),
    ]

    assert offerable_start_times(classify_slots(rows), 2) == ['13:00']


def test_mixed_rows_put_specific_slots_on_the_grid() -> None:
    rows = [
        _row('combined_default', '09:00', '09:30'),
        _row('combined_default', '09:30', '10:00'),
        _row('specific', '15:00', '17:00'),
    ]

    assert offerable_start_times(classify_slots(rows), 1) == ['09:00', '15:00', '15:30', '16:00']


def test_mixed_rows_merge_adjacent_specific_slot_into_one_period() -> None:
    rows = [
        _row('combined_default', '09:00', '10:30'),
        _row('combined_default', '10:30', '12:00'),
        _row('specific', '12:00', '14:00'),
    ]

    assert _resolve(rows, 2).start_times == (
        '09:00', '09:30', '10:00', '10:30', '11:00', '11:30', '12:00',
    )
    assert available_windows(rows) == [Period(540, 840)]


def test_resolver_reports_day_unavailable_not_no_fit_for_empty_rows() -> None:
    assert _resolve([], 1).state is Resolution.DAY_UNAVAILABLE


def test_resolver_reports_no_fit_when_nothing_accommodates_duration() -> None:
    result = _resolve([_row('default', '09:00', '10:00')], 2)

    assert result.state is Resolution.NO_FIT
    assert result.start_times == ()


def test_resolver_reports_no_fit_when_every_row_is_booked() -> None:
    result = _resolve([_row('default', '09:00', '12:00', is_booked=True)], 1)

    assert result.state is Resolution.NO_FIT


def test_resolver_short_circuits_without_loading_rows_for_unavailable_companion() -> None:
    def load_rows():
        raise AssertionError('rows must not be loaded')

    result = resolve_availability(False, load_rows, 1)

    assert result.state is Resolution.COMPANION_UNAVAILABLE


def test_resolver_is_idempotent_for_unchanged_snapshot() -> None:
    rows = [
        _row('default', '10:00', '10:30'),
        _row('default', '08:00', '10:00'),
        _row('specific', '16:00', '18:00'),
    ]

    assert _resolve(rows, 1) == _resolve(list(rows), 1)


def test_resolver_output_is_sorted_and_deduplicated() -> None:
    rows = [
        _row('default', '09:00', '11:00'),
        _row('specific', '09:00', '10:00'),
    ]

    assert _resolve(rows, 1).start_times == ('09:00', '09:30', '10:00')


@pytest.mark.parametrize('duration', [0, 13])
def test_resolver_rejects_invalid_duration(duration: int) -> None:
    with pytest.raises(ValidationError):
        _resolve([_row('default', '09:00', '10:00')], duration)


def test_available_windows_ignore_booking_occupancy() -> None:
    windows = available_windows([
        _row('default', '09:00', '10:00', is_booked=True),
        _row('default', '10:00', '11:00'),
        _row('specific', '14:00', '15:00'),
        _row('specific', '16:00', '17:00', is_available=False),
    ])

    assert windows == [Period(540, 660), Period(840, 900)]
