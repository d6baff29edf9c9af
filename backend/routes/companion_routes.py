from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal, require_roles, role_cache
from backend.auth.passwords import hash_password
from backend.core import config
from backend.database import get_db
from backend.models.companion import Companion
from backend.models.user import ROLE_ADMIN, ROLE_COMPANION, User
from backend.services.availability_service import get_companion

router = APIRouter(tags=['companions'])

MAX_GALLERY_IMAGES = 4
MIN_COMPANION_AGE = 18


class CompanionRequest(BaseModel):
    name: str
    age: int
    bio: str = ''
    rate: int = config.DEFAULT_COMPANION_RATE
    location: str
    image: str | None = None
    images: list[str] = []
    is_available: bool = True
    status: str = 'active'
    telegram_username: str | None = None

    @field_validator('name', 'location')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('age')
    @classmethod
    def validate_age(cls, value: int) -> int:
        if value < MIN_COMPANION_AGE:
            raise ValueError(f'Companions must be at least {MIN_COMPANION_AGE}.')
        return value

    @field_validator('rate')
    @classmethod
    def validate_rate(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Rate must be positive.')
        return value

    @field_validator('images')
    @classmethod
    def validate_images(cls, value: list[str]) -> list[str]:
        if len(value) > MAX_GALLERY_IMAGES:
            raise ValueError(f'At most {MAX_GALLERY_IMAGES} gallery images are allowed.')
        return value

    @field_validator('telegram_username')
    @classmethod
    def validate_telegram_username(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lstrip('@')
        return normalized or None


class CompanionResponse(BaseModel):
    id: int
    name: str
    age: int
    bio: str
    image: str | None = None
    images: list[str] = []
    rate: int
    location: str
    is_available: bool
    status: str
    telegram_username: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class CompanionAccountRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError('Password must be at least 8 characters.')
        return value


class CompanionAccountResponse(BaseModel):
    user_id: int
    email: str
    companion_id: int


class ContactResponse(BaseModel):
    telegram_username: str
    url: str


def _database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.get('', response_model=list[CompanionResponse])
def list_companions(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Companion)
        if not include_inactive:
            query = query.filter(Companion.status == 'active')
        return query.order_by(Companion.name.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}', response_model=CompanionResponse)
def get_companion_profile(companion_id: int, db: Session = Depends(get_db)):
    try:
        return get_companion(db, companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc


@router.get('/{companion_id}/contact', response_model=ContactResponse)
def get_companion_contact(companion_id: int, db: Session = Depends(get_db)):
    try:
        companion = get_companion(db, companion_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    if not companion.telegram_username:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No contact available for this companion.')

    return ContactResponse(
        telegram_username=companion.telegram_username,
        url=f'{config.TELEGRAM_BASE_URL}/{companion.telegram_username}',
    )


@router.post('', response_model=CompanionResponse, status_code=status.HTTP_201_CREATED)
def create_companion(
    data: CompanionRequest,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    try:
        companion = Companion(**data.model_dump())
        db.add(companion)
        db.commit()
        db.refresh(companion)
        return companion
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.put('/{companion_id}', response_model=CompanionResponse)
def update_companion(
    companion_id: int,
    data: CompanionRequest,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    try:
        companion = get_companion(db, companion_id)
        for field, value in data.model_dump().items():
            setattr(companion, field, value)
        db.commit()
        db.refresh(companion)
        return companion
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.delete('/{companion_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_companion(
    companion_id: int,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    try:
        companion = get_companion(db, companion_id)
        # Soft delete keeps booking history intact.
        companion.status = 'inactive'
        companion.is_available = False
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc


@router.post('/{companion_id}/account', response_model=CompanionAccountResponse, status_code=status.HTTP_201_CREATED)
def create_companion_account(
    companion_id: int,
    data: CompanionAccountRequest,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    try:
        get_companion(db, companion_id)
        if db.query(User.id).filter(User.companion_id == companion_id).first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This companion already has an account.',
            )

        user = db.query(User).filter(User.email == data.email).first()
        if user is None:
            user = User(email=data.email, hashed_password=hash_password(data.password))
            db.add(user)
        elif user.role == ROLE_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Admin accounts cannot be linked to a companion.',
            )
        user.role = ROLE_COMPANION
        user.companion_id = companion_id
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Account could not be created.') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable(exc) from exc

    role_cache.invalidate(user.id)
    return CompanionAccountResponse(user_id=user.id, email=user.email, companion_id=companion_id)
