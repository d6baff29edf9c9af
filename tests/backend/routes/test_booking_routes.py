from datetime import date, timedelta

import pytest

from backend.services import availability_service

BOOKING_DATE = date.today() + timedelta(days=14)


@pytest.fixture
def companion(db_session, make_companion):
    companion = make_companion(rate=3000)
    availability_service.replace_default_hours(
        db_session, companion.id, BOOKING_DATE.weekday(), [('09:00', '12:00'), ('12:00', '15:00')],
    )
    return companion


@pytest.fixture
def auth_headers(make_user, bearer_headers):
    return bearer_headers(make_user())


def _booking_payload(companion_id: int, **overrides) -> dict:
    payload = {
        'companion_id': companion_id,
        'customer_name': 'Ravi Kumar',
        'customer_email': 'ravi@example.com',
        'customer_phone': '+91 98000 00000',
        'date': BOOKING_DATE.isoformat(),
        'time': '10:00',
        'duration': 2,
        'location': 'Bandra West',
    }
    payload.update(overrides)
    return payload


def test_create_booking_then_slot_is_taken(api_client, companion, auth_headers) -> None:
    response = api_client.post('/bookings', json=_booking_payload(companion.id), headers=auth_headers)

    assert response.status_code == 201
    assert response.json()['total_amount'] == 6000
    assert response.json()['status'] == 'approved'

    retry = api_client.post(
        '/bookings',
        json=_booking_payload(companion.id, time='11:00', duration=1),
        headers=auth_headers,
    )

    assert retry.status_code == 409
    assert retry.json()['detail']['code'] == 'BookingConflict'


def test_create_booking_requires_authentication(api_client, companion) -> None:
    response = api_client.post('/bookings', json=_booking_payload(companion.id))

    assert response.status_code in {401, 403}


def test_create_booking_rejects_invalid_duration(api_client, companion, auth_headers) -> None:
    response = api_client.post('/bookings', json=_booking_payload(companion.id, duration=13), headers=auth_headers)

    assert response.status_code == 400
    assert response.json()['detail']['message'].startswith('Invalid booking duration.')


def test_conflict_check_reports_reason(api_client, companion, auth_headers) -> None:
    api_client.post('/bookings', json=_booking_payload(companion.id), headers=auth_headers)

    body = {'companion_id': companion.id, 'date': BOOKING_DATE.isoformat(), 'duration': 1}
    taken = api_client.post('/bookings/conflicts', json={**body, 'start_time': '11:00'})
    free = api_client.post('/bookings/conflicts', json={**body, 'start_time': '12:00'})

    assert taken.json() == {
        'conflict': True,
        'reason': 'This time slot is already booked. Please choose a different time.',
    }
    assert free.json() == {'conflict': False, 'reason': None}


def test_occupancy_listing_and_start_times(api_client, companion, auth_headers) -> None:
    api_client.post('/bookings', json=_booking_payload(companion.id, time='09:00', duration=3), headers=auth_headers)

    occupancy = api_client.get('/bookings', params={'companion_id': companion.id, 'date': BOOKING_DATE.isoformat()})
    start_times = api_client.get(
        f'/availability/{companion.id}/start-times',
        params={'date': BOOKING_DATE.isoformat(), 'duration': 2},
    )

    assert [(item['time'], item['duration']) for item in occupancy.json()] == [('09:00', 3)]
    assert start_times.json()['state'] == 'offering'
    assert start_times.json()['start_times'] == ['12:00', '12:30', '13:00']


def test_occupancy_listing_rejects_finished_status_filter(api_client, companion) -> None:
    response = api_client.get('/bookings', params={'companion_id': companion.id, 'status': 'completed'})

    assert response.status_code == 400


def test_start_times_for_unknown_companion(api_client) -> None:
    response = api_client.get('/availability/999/start-times', params={'date': BOOKING_DATE.isoformat(), 'duration': 1})

    assert response.status_code == 404
    assert response.json()['detail']['code'] == 'NotFoundError'


def test_my_bookings_lists_own_bookings(api_client, companion, auth_headers) -> None:
    api_client.post('/bookings', json=_booking_payload(companion.id), headers=auth_headers)

    response = api_client.get('/bookings/mine', headers=auth_headers)

    assert response.status_code == 200
    assert [item['time'] for item in response.json()] == ['10:00']
