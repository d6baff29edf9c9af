import asyncio
from datetime import date

import httpx
import pytest
import respx

from backend.client import (
    BackendUnavailableError,
    BookingClient,
    BookingConflictError,
    BookingValidationError,
    StaleResponseGuard,
    TimeSlotPicker,
)
from backend.scheduling.slots import Resolution

BASE_URL = 'http://booking.test'
SLOT_DATE = date(2030, 3, 4)


def _start_times_payload(companion_id: int, duration: int, start_times: list[str]) -> dict:
    return {
        'companion_id': companion_id,
        'date': SLOT_DATE.isoformat(),
        'duration': duration,
        'state': 'offering' if start_times else 'no_fit',
        'start_times': start_times,
        'options': [],
        'message': None,
    }


def test_stale_response_guard_tracks_latest_request() -> None:
    guard = StaleResponseGuard()

    first = guard.begin((1, SLOT_DATE, 1))
    second = guard.begin((1, SLOT_DATE, 2))

    assert guard.is_current(first, (1, SLOT_DATE, 1)) is False
    assert guard.is_current(second, (1, SLOT_DATE, 2)) is True
    assert guard.is_current(second, (1, SLOT_DATE, 1)) is False


@pytest.mark.asyncio
@respx.mock
async def test_get_start_times_parses_resolution() -> None:
    route = respx.get(f'{BASE_URL}/availability/7/start-times').mock(
        return_value=httpx.Response(200, json=_start_times_payload(7, 1, ['14:00'])),
    )
    client = BookingClient(BASE_URL)

    view = await client.get_start_times(7, SLOT_DATE, 1)
    await client.aclose()

    assert route.calls.last.request.url.params['date'] == '2030-03-04'
    assert view.result.state is Resolution.OFFERING
    assert view.result.start_times == ('14:00',)


@pytest.mark.asyncio
@respx.mock
async def test_attempt_booking_maps_conflict() -> None:
    respx.post(f'{BASE_URL}/bookings').mock(
        return_value=httpx.Response(
            409,
            json={'detail': {'message': 'This time slot is already booked.', 'code': 'BookingConflict', 'details': {}}},
        ),
    )
    client = BookingClient(BASE_URL, access_token='token')

    with pytest.raises(BookingConflictError) as exception_info:
        await client.attempt_booking({'companion_id': 7, 'date': SLOT_DATE, 'time': '10:00', 'duration': 1})
    await client.aclose()

    assert exception_info.value.message == 'This time slot is already booked.'
    assert exception_info.value.status_code == 409


@pytest.mark.asyncio
@respx.mock
async def test_call_sends_bearer_token_and_maps_validation_errors() -> None:
    route = respx.post(f'{BASE_URL}/bookings/conflicts').mock(
        return_value=httpx.Response(422, json={'detail': [{'msg': 'Times must use the HH:MM format.'}]}),
    )
    client = BookingClient(BASE_URL, access_token='token')

    with pytest.raises(BookingValidationError) as exception_info:
        await client.check_conflict(7, SLOT_DATE, 'nine', 1)
    await client.aclose()

    assert route.calls.last.request.headers['Authorization'] == 'Bearer token'
    assert exception_info.value.message == 'Times must use the HH:MM format.'


@pytest.mark.asyncio
@respx.mock
async def test_call_maps_transport_failures() -> None:
    respx.post(f'{BASE_URL}/bookings/conflicts').mock(side_effect=httpx.ConnectError('refused'))
    client = BookingClient(BASE_URL)

    with pytest.raises(BackendUnavailableError):
        await client.check_conflict(7, SLOT_DATE, '10:00', 1)
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_picker_ignores_superseded_response() -> None:
    slow_response = asyncio.Event()

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await slow_response.wait()
        return httpx.Response(200, json=_start_times_payload(7, 1, ['09:00', '09:30']))

    def fast_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_start_times_payload(7, 2, ['09:00']))

    async def dispatch(request: httpx.Request) -> httpx.Response:
        if request.url.params['duration'] == '1':
            return await slow_handler(request)
        return fast_handler(request)

    respx.get(f'{BASE_URL}/availability/7/start-times').mock(side_effect=dispatch)
    client = BookingClient(BASE_URL)
    picker = TimeSlotPicker(client)

    stale_task = asyncio.create_task(picker.select(7, SLOT_DATE, 1))
    await asyncio.sleep(0)
    assert await picker.select(7, SLOT_DATE, 2) is True
    slow_response.set()
    assert await stale_task is False
    await client.aclose()

    assert picker.start_times == ('09:00',)
    assert picker.view.duration == 2
    assert picker.loading is False


@pytest.mark.asyncio
@respx.mock
async def test_picker_records_error_for_current_selection() -> None:
    respx.get(f'{BASE_URL}/availability/7/start-times').mock(
        return_value=httpx.Response(503, json={'detail': 'Database unavailable. Please try again.'}),
    )
    client = BookingClient(BASE_URL)
    picker = TimeSlotPicker(client)

    assert await picker.select(7, SLOT_DATE, 1) is True
    await client.aclose()

    assert picker.error == 'Database unavailable. Please try again.'
    assert picker.start_times == ()


@pytest.mark.parametrize(
    'payload',
    [
        {'start_times': ['09:00']},
        {'state': 'maybe', 'start_times': []},
        ['not', 'an', 'object'],
    ],
)
@pytest.mark.asyncio
@respx.mock
async def test_picker_reports_malformed_start_times_as_backend_error(payload) -> None:
    respx.get(f'{BASE_URL}/availability/7/start-times').mock(return_value=httpx.Response(200, json=payload))
    client = BookingClient(BASE_URL)
    picker = TimeSlotPicker(client)

    assert await picker.select(7, SLOT_DATE, 1) is True
    await client.aclose()

    assert picker.loading is False
    assert picker.view is None
    assert picker.error.startswith('backend_invalid_start_times')


@pytest.mark.asyncio
@respx.mock
async def test_call_rejects_non_json_body() -> None:
    respx.get(f'{BASE_URL}/availability/7/start-times').mock(return_value=httpx.Response(200, text='<html>'))
    client = BookingClient(BASE_URL)

    with pytest.raises(BackendUnavailableError) as exception_info:
        await client.get_start_times(7, SLOT_DATE, 1)
    await client.aclose()

    assert exception_info.value.message == 'backend_invalid_json'
