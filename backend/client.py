"""Async HTTP client for the booking API, used by booking front-ends.

``TimeSlotPicker`` keeps the start-time list for the currently selected
companion, date and duration, and never lets a late response for an older
selection overwrite a newer one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Hashable

import httpx

from backend.scheduling.slots import AvailabilityResult, Resolution

logger = logging.getLogger(__name__)


class BookingClientError(Exception):
    """Base error for booking API failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BookingValidationError(BookingClientError):
    """Raised for 400/422 responses."""


class BookingConflictError(BookingClientError):
    """Raised when the slot was taken, blacked out or past the cutoff."""


class BackendUnavailableError(BookingClientError):
    """Raised when the backend cannot be reached or fails unexpectedly."""


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get('detail')
    except ValueError:
        return response.text or f'backend_error_{response.status_code}'

    if isinstance(detail, dict):
        return str(detail.get('message') or detail)
    if isinstance(detail, list):
        return '; '.join(str(item.get('msg', item)) if isinstance(item, dict) else str(item) for item in detail)
    return str(detail or f'backend_error_{response.status_code}')


@dataclass(frozen=True)
class StartTimesView:
    companion_id: int
    date: date
    duration: int
    result: AvailabilityResult
    message: str | None = None


class BookingClient:
    """HTTP client for the booking API."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.access_token = access_token
        self.http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {}
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'

        try:
            response = await self.http.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise BackendUnavailableError(f'backend_connection_failed: {exc}') from exc

        if response.status_code == 409:
            raise BookingConflictError(_error_message(response), response.status_code)
        if response.status_code in {400, 422}:
            raise BookingValidationError(_error_message(response), response.status_code)
        if response.status_code >= 400:
            raise BackendUnavailableError(_error_message(response), response.status_code)

        if response.status_code == 204:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendUnavailableError('backend_invalid_json', response.status_code) from exc

    async def get_start_times(self, companion_id: int, slot_date: date, duration: int) -> StartTimesView:
        data = await self.call(
            'GET',
            f'/availability/{companion_id}/start-times',
            params={'date': slot_date.isoformat(), 'duration': duration},
        )
        try:
            result = AvailabilityResult(Resolution(data['state']), tuple(data.get('start_times') or ()))
            message = data.get('message')
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise BackendUnavailableError(f'backend_invalid_start_times: {exc!r}') from exc

        return StartTimesView(
            companion_id=companion_id,
            date=slot_date,
            duration=duration,
            result=result,
            message=message,
        )

    async def check_conflict(self, companion_id: int, slot_date: date, start_time: str, duration: int) -> bool:
        data = await self.call(
            'POST',
            '/bookings/conflicts',
            json={
                'companion_id': companion_id,
                'date': slot_date.isoformat(),
                'start_time': start_time,
                'duration': duration,
            },
        )
        return bool(data['conflict'])

    async def attempt_booking(self, booking: dict[str, Any]) -> dict[str, Any]:
        payload = dict(booking)
        if isinstance(payload.get('date'), date):
            payload['date'] = payload['date'].isoformat()
        return await self.call('POST', '/bookings', json=payload)


class StaleResponseGuard:
    """Generation counter that identifies the latest in-flight request."""

    def __init__(self) -> None:
        self._generation = 0
        self._params: Hashable | None = None

    def begin(self, params: Hashable) -> int:
        self._generation += 1
        self._params = params
        return self._generation

    def is_current(self, generation: int, params: Hashable) -> bool:
        return generation == self._generation and params == self._params


@dataclass
class TimeSlotPicker:
    client: BookingClient
    view: StartTimesView | None = None
    error: str | None = None
    loading: bool = False
    guard: StaleResponseGuard = field(default_factory=StaleResponseGuard)

    @property
    def start_times(self) -> tuple[str, ...]:
        if self.view is None:
            return ()
        return self.view.result.start_times

    async def select(self, companion_id: int, slot_date: date, duration: int) -> bool:
        """Re-resolve for a new selection; False if a newer one superseded it."""
        params = (companion_id, slot_date, duration)
        generation = self.guard.begin(params)
        self.loading = True

        try:
            view = await self.client.get_start_times(companion_id, slot_date, duration)
        except BookingClientError as exc:
            if not self.guard.is_current(generation, params):
                logger.debug('Discarding stale error for %s: %s', params, exc)
                return False
            logger.warning('Failed to load start times for %s: %s', params, exc.message)
            self.view = None
            self.error = exc.message
            self.loading = False
            return True
        except Exception:
            if self.guard.is_current(generation, params):
                self.loading = False
            raise

        if not self.guard.is_current(generation, params):
            logger.debug('Discarding stale start times for %s', params)
            return False

        self.view = view
        self.error = None
        self.loading = False
        return True
