from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal, require_companion
from backend.core import config
from backend.database import ensure_booking_schema, get_db
from backend.scheduling.conflicts import booking_cutoff_message, is_booking_cutoff_reached
from backend.scheduling.slots import Resolution
from backend.scheduling.time_utils import format_display, normalize_time
from backend.services import availability_service

router = APIRouter(tags=['availability'])

MAX_SLOT_NOTES_LENGTH = 300
MAX_UNAVAILABLE_REASON_LENGTH = 300


def _normalize_hhmm(value: str) -> str:
    try:
        return normalize_time(value)
    except ValueError as exc:
        raise ValueError('Times must use the HH:MM format.') from exc


def _normalize_optional_text(value: str | None, max_length: int) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'Must be {max_length} characters or fewer.')

    return normalized


class CreateSlotRequest(BaseModel):
    date: date
    start_time: str
    end_time: str
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_hhmm(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_SLOT_NOTES_LENGTH)


class UpdateSlotRequest(BaseModel):
    is_available: bool | None = None
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _normalize_hhmm(value)


class AvailabilitySlotResponse(BaseModel):
    id: int
    date: date
    start_time: str
    end_time: str
    is_available: bool
    notes: str | None = None

    class Config:
        from_attributes = True


class CreateUnavailableDayRequest(BaseModel):
    date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_UNAVAILABLE_REASON_LENGTH)


class UnavailableDayResponse(BaseModel):
    id: int
    date: date
    reason: str | None = None

    class Config:
        from_attributes = True


class HoursWindow(BaseModel):
    start_time: str
    end_time: str

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_hhmm(value)


class DefaultHoursRequest(BaseModel):
    windows: list[HoursWindow]


class DefaultHoursResponse(BaseModel):
    id: int
    weekday: int
    start_time: str
    end_time: str

    class Config:
        from_attributes = True


class TimeSlotRowResponse(BaseModel):
    slot_type: str
    start_time: str
    end_time: str
    is_available: bool
    is_booked: bool
    source: str


class StartTimeOption(BaseModel):
    time: str
    label: str


class StartTimesResponse(BaseModel):
    companion_id: int
    date: date
    duration: int
    state: Resolution
    start_times: list[str]
    options: list[StartTimeOption]
    message: str | None = None


def resolution_message(state: Resolution, duration: int) -> str | None:
    if state is Resolution.COMPANION_UNAVAILABLE:
        return 'This companion is not currently available for bookings.'
    if state is Resolution.DAY_UNAVAILABLE:
        return 'The companion is unavailable on this date. Please choose another day.'
    if state is Resolution.NO_FIT:
        unit = 'hour' if duration == 1 else 'hours'
        return f'No time slots can accommodate {duration} {unit} on this date. Try a shorter duration.'
    return None


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def _database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.get('/slots', response_model=list[AvailabilitySlotResponse])
def list_my_slots(
    slot_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.list_availability_slots(db, principal.companion_id, slot_date)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.post('/slots', response_model=AvailabilitySlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: CreateSlotRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.create_availability_slot(
            db,
            principal.companion_id,
            data.date,
            data.start_time,
            data.end_time,
            notes=data.notes,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.patch('/slots/{slot_id}', response_model=AvailabilitySlotResponse)
def update_slot(
    slot_id: int,
    data: UpdateSlotRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.update_availability_slot(
            db,
            principal.companion_id,
            slot_id,
            is_available=data.is_available,
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.delete('/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        availability_service.delete_availability_slot(db, principal.companion_id, slot_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.get('/unavailable-days', response_model=list[UnavailableDayResponse])
def list_my_unavailable_days(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.list_unavailable_days(db, principal.companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.post('/unavailable-days', response_model=UnavailableDayResponse, status_code=status.HTTP_201_CREATED)
def create_unavailable_day(
    data: CreateUnavailableDayRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.add_unavailable_day(db, principal.companion_id, data.date, data.reason)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.delete('/unavailable-days/{day_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_unavailable_day(
    day_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        availability_service.remove_unavailable_day(db, principal.companion_id, day_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.get('/default-hours', response_model=list[DefaultHoursResponse])
def list_my_default_hours(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.list_default_hours(db, principal.companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.put('/default-hours/{weekday}', response_model=list[DefaultHoursResponse])
def replace_default_hours(
    weekday: int,
    data: DefaultHoursRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    ensure_database_ready()

    try:
        return availability_service.replace_default_hours(
            db,
            principal.companion_id,
            weekday,
            [(window.start_time, window.end_time) for window in data.windows],
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}/slots', response_model=list[AvailabilitySlotResponse])
def list_companion_slots(
    companion_id: int,
    slot_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_service.list_availability_slots(db, companion_id, slot_date, available_only=True)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}/unavailable-days', response_model=list[UnavailableDayResponse])
def list_companion_unavailable_days(companion_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return availability_service.list_unavailable_days(db, companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}/time-slots', response_model=list[TimeSlotRowResponse])
def list_time_slots(
    companion_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rows = availability_service.get_companion_time_slots(db, companion_id, slot_date)
        return [TimeSlotRowResponse(**row.to_dict()) for row in rows]
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}/start-times', response_model=StartTimesResponse)
def list_start_times(
    companion_id: int,
    slot_date: date = Query(..., alias='date'),
    duration: int = Query(..., ge=config.MIN_BOOKING_HOURS, le=config.MAX_BOOKING_HOURS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = availability_service.resolve_start_times(db, companion_id, slot_date, duration)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return StartTimesResponse(
        companion_id=companion_id,
        date=slot_date,
        duration=duration,
        state=result.state,
        start_times=list(result.start_times),
        options=[StartTimeOption(time=value, label=format_display(value)) for value in result.start_times],
        message=resolution_message(result.state, duration),
    )


@router.get('/cutoff')
def booking_cutoff_status(slot_date: date | None = Query(default=None, alias='date')):
    now = datetime.now()
    reached = is_booking_cutoff_reached(slot_date, now)
    return {
        'cutoff_hour': config.BOOKING_CUTOFF_HOUR,
        'cutoff_reached': reached,
        'message': booking_cutoff_message(slot_date, now) if reached else None,
    }
