from datetime import date

import pytest
from pydantic import ValidationError

from backend.auth.dependencies import Principal
from backend.core.errors import ConflictError
from backend.models.user import ROLE_COMPANION
from backend.routes import availability_routes
from backend.routes.availability_routes import (
    CreateSlotRequest,
    CreateUnavailableDayRequest,
    DefaultHoursRequest,
    HoursWindow,
    UpdateSlotRequest,
    create_slot,
    create_unavailable_day,
    list_companion_slots,
    list_start_times,
    list_time_slots,
    replace_default_hours,
    resolution_message,
    update_slot,
)
from backend.scheduling.slots import Resolution

SLOT_DATE = date(2030, 3, 4)


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch):
    monkeypatch.setattr(availability_routes, 'ensure_database_ready', lambda: None)


@pytest.fixture
def principal(companion_user) -> Principal:
    companion, user = companion_user
    return Principal(user_id=user.id, email=user.email, role=ROLE_COMPANION, companion_id=companion.id)


def test_create_slot_request_normalizes_times_and_notes() -> None:
    request = CreateSlotRequest(date=SLOT_DATE, start_time='9:00', end_time='10:30:00', notes='   ')

    assert request.start_time == '09:00'
    assert request.end_time == '10:30'
    assert request.notes is None


def test_create_slot_request_rejects_malformed_time() -> None:
    with pytest.raises(ValidationError):
        CreateSlotRequest(date=SLOT_DATE, start_time='nine', end_time='10:00')


def test_unavailable_day_request_limits_reason_length() -> None:
    with pytest.raises(ValidationError):
        CreateUnavailableDayRequest(date=SLOT_DATE, reason='x' * 301)


def test_update_slot_request_keeps_missing_fields_unset() -> None:
    request = UpdateSlotRequest(is_available=True)

    assert request.start_time is None
    assert request.end_time is None


def test_companion_slot_lifecycle(db_session, principal) -> None:
    slot = create_slot(
        CreateSlotRequest(date=SLOT_DATE, start_time='14:00', end_time='16:00'),
        db=db_session,
        principal=principal,
    )
    assert slot.is_available is False
    assert list_companion_slots(principal.companion_id, SLOT_DATE, db=db_session) == []

    update_slot(slot.id, UpdateSlotRequest(is_available=True), db=db_session, principal=principal)

    public = list_companion_slots(principal.companion_id, SLOT_DATE, db=db_session)
    assert [(item.start_time, item.end_time) for item in public] == [('14:00', '16:00')]


def test_start_times_response_offers_labels(db_session, principal) -> None:
    replace_default_hours(
        SLOT_DATE.weekday(),
        DefaultHoursRequest(windows=[HoursWindow(start_time='09:00', end_time='12:00')]),
        db=db_session,
        principal=principal,
    )

    response = list_start_times(principal.companion_id, SLOT_DATE, 2, db=db_session)

    assert response.state is Resolution.OFFERING
    assert response.start_times == ['09:00', '09:30', '10:00']
    assert [option.label for option in response.options] == ['9:00 AM', '9:30 AM', '10:00 AM']
    assert response.message is None


def test_start_times_for_blackout_day(db_session, principal) -> None:
    create_unavailable_day(CreateUnavailableDayRequest(date=SLOT_DATE), db=db_session, principal=principal)

    response = list_start_times(principal.companion_id, SLOT_DATE, 1, db=db_session)

    assert response.state is Resolution.DAY_UNAVAILABLE
    assert response.start_times == []
    assert response.message == 'The companion is unavailable on this date. Please choose another day.'
    assert list_time_slots(principal.companion_id, SLOT_DATE, db=db_session) == []


def test_create_slot_on_blackout_day_is_a_conflict(db_session, principal) -> None:
    create_unavailable_day(CreateUnavailableDayRequest(date=SLOT_DATE), db=db_session, principal=principal)

    with pytest.raises(ConflictError):
        create_slot(
            CreateSlotRequest(date=SLOT_DATE, start_time='10:00', end_time='11:00'),
            db=db_session,
            principal=principal,
        )


def test_time_slots_response_mirrors_rows(db_session, principal) -> None:
    replace_default_hours(
        SLOT_DATE.weekday(),
        DefaultHoursRequest(windows=[HoursWindow(start_time='09:00', end_time='10:00')]),
        db=db_session,
        principal=principal,
    )

    rows = list_time_slots(principal.companion_id, SLOT_DATE, db=db_session)

    assert [(row.slot_type, row.start_time, row.is_booked) for row in rows] == [
        ('default', '09:00', False),
        ('default', '09:30', False),
    ]


@pytest.mark.parametrize(
    ('state', 'duration', 'message'),
    [
        (Resolution.OFFERING, 1, None),
        (Resolution.COMPANION_UNAVAILABLE, 1, 'This companion is not currently available for bookings.'),
        (Resolution.NO_FIT, 1, 'No time slots can accommodate 1 hour on this date. Try a shorter duration.'),
        (Resolution.NO_FIT, 3, 'No time slots can accommodate 3 hours on this date. Try a shorter duration.'),
    ],
)
def test_resolution_message(state: Resolution, duration: int, message: str | None) -> None:
    assert resolution_message(state, duration) == message
