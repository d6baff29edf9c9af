from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import Principal, get_current_principal, role_cache
from backend.auth.passwords import hash_password, verify_password
from backend.database import get_db
from backend.models.user import ROLE_USER, User

router = APIRouter(tags=['auth'])

MIN_PASSWORD_LENGTH = 8


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized or '@' not in normalized:
        raise ValueError('A valid email address is required.')
    return normalized


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    role: str
    companion_id: int | None = None


class MeResponse(BaseModel):
    id: int
    email: str
    role: str
    companion_id: int | None = None


def _backend_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.post('/signup', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    try:
        user = User(
            email=data.email,
            hashed_password=hash_password(data.password),
            full_name=(data.full_name or '').strip() or None,
            role=ROLE_USER,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='An account with this email already exists.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise _backend_unavailable(exc) from exc

    return TokenResponse(
        access_token=jwt_handler.create_access_token(subject=str(user.id), role=user.role),
        role=user.role,
    )


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise _backend_unavailable(exc) from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password.')

    # Fresh sign-in always re-reads the role.
    role_cache.invalidate(user.id)
    return TokenResponse(
        access_token=jwt_handler.create_access_token(subject=str(user.id), role=user.role),
        role=user.role,
        companion_id=user.companion_id,
    )


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(principal: Principal = Depends(get_current_principal)):
    role_cache.invalidate(principal.user_id)


@router.get('/me', response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)):
    return MeResponse(
        id=principal.user_id,
        email=principal.email,
        role=principal.role,
        companion_id=principal.companion_id,
    )
