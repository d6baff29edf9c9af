from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal, get_current_principal, require_companion
from backend.core import config
from backend.database import ensure_booking_schema, get_db
from backend.scheduling.conflicts import BOOKING_STATUSES, OCCUPYING_STATUSES
from backend.scheduling.time_utils import normalize_time
from backend.services import booking_service

router = APIRouter(tags=['bookings'])

MAX_BOOKING_NOTES_LENGTH = 600


def _normalize_hhmm(value: str) -> str:
    try:
        return normalize_time(value)
    except ValueError as exc:
        raise ValueError('Times must use the HH:MM format.') from exc


class ConflictCheckRequest(BaseModel):
    companion_id: int
    date: date
    start_time: str
    duration: int

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _normalize_hhmm(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if not config.MIN_BOOKING_HOURS <= value <= config.MAX_BOOKING_HOURS:
            raise ValueError(
                f'Invalid booking duration. Please select between '
                f'{config.MIN_BOOKING_HOURS}-{config.MAX_BOOKING_HOURS} hours.'
            )
        return value


class ConflictCheckResponse(BaseModel):
    conflict: bool
    reason: str | None = None


class CreateBookingRequest(BaseModel):
    companion_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    date: date
    time: str
    duration: int
    location: str
    notes: str | None = None

    @field_validator('customer_email')
    @classmethod
    def validate_customer_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized and '@' not in normalized:
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized

    def to_booking_request(self) -> booking_service.BookingRequest:
        return booking_service.BookingRequest(**self.model_dump())


class BookingResponse(BaseModel):
    id: int
    companion_id: int
    user_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    date: date
    time: str
    duration: int
    location: str
    status: str
    total_amount: int
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class OccupancyResponse(BaseModel):
    date: date
    time: str
    duration: int
    status: str

    class Config:
        from_attributes = True


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


@router.post('/conflicts', response_model=ConflictCheckResponse)
def check_conflict(data: ConflictCheckRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        reason = booking_service.find_conflict_reason(
            db,
            data.companion_id,
            data.date,
            data.start_time,
            data.duration,
        )
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return ConflictCheckResponse(conflict=reason is not None, reason=reason)


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ensure_database_ready()

    try:
        return booking_service.attempt_booking(db, principal.user_id, data.to_booking_request())
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('', response_model=list[OccupancyResponse])
def list_occupancy(
    companion_id: int = Query(...),
    booking_date: date | None = Query(default=None, alias='date'),
    statuses: list[str] = Query(default=sorted(OCCUPYING_STATUSES), alias='status'),
    db: Session = Depends(get_db),
):
    unknown = [value for value in statuses if value not in OCCUPYING_STATUSES]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Status filter must be one of: {", ".join(sorted(OCCUPYING_STATUSES))}.',
        )

    ensure_database_ready()

    try:
        return booking_service.list_bookings(db, companion_id, booking_date, tuple(statuses))
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/mine', response_model=list[BookingResponse])
def list_my_bookings(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ensure_database_ready()

    try:
        return booking_service.list_user_bookings(db, principal.user_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/companion', response_model=list[BookingResponse])
def list_companion_dashboard_bookings(
    booking_status: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_companion),
):
    if booking_status is not None and booking_status not in BOOKING_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid booking status.')

    ensure_database_ready()

    try:
        bookings = booking_service.list_companion_bookings(db, principal.companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    if booking_status is not None:
        bookings = [booking for booking in bookings if booking.status == booking_status]
    return bookings
