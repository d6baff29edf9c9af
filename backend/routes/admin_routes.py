from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal, require_roles
from backend.database import get_db
from backend.models.user import ROLE_ADMIN
from backend.routes.booking_routes import BookingResponse
from backend.scheduling.conflicts import BOOKING_STATUSES
from backend.services import booking_service

router = APIRouter(tags=['admin'])


class AdminBookingResponse(BookingResponse):
    companion_name: str | None = None


class UpdateBookingStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise ValueError('Invalid booking status.')
        return normalized


def _to_admin_response(booking) -> AdminBookingResponse:
    response = AdminBookingResponse.model_validate(booking)
    response.companion_name = booking.companion.name if booking.companion is not None else None
    return response


def _database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.get('/bookings', response_model=list[AdminBookingResponse])
def list_all_bookings(
    booking_status: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    if booking_status is not None and booking_status not in BOOKING_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid booking status.')

    try:
        bookings = booking_service.list_all_bookings_admin(db, booking_status)
        return [_to_admin_response(booking) for booking in bookings]
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.patch('/bookings/{booking_id}/status', response_model=AdminBookingResponse)
def update_booking_status(
    booking_id: int,
    data: UpdateBookingStatusRequest,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    try:
        booking = booking_service.update_booking_status(db, booking_id, data.status)
        return _to_admin_response(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc
