import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.auth import jwt_handler  # noqa: E402
from backend.auth.dependencies import role_cache  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base, get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models import availability, booking  # noqa: E402,F401
from backend.models.companion import Companion  # noqa: E402
from backend.models.user import ROLE_COMPANION, ROLE_USER, User  # noqa: E402
from backend.routes import availability_routes, booking_routes  # noqa: E402


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clear_role_cache():
    role_cache.clear()
    yield
    role_cache.clear()


@pytest.fixture
def make_companion(db_session):
    def _make(**overrides) -> Companion:
        values = {
            'name': 'Asha',
            'age': 27,
            'bio': 'Art lover and city guide.',
            'rate': 4000,
            'location': 'Mumbai',
            'is_available': True,
        }
        values.update(overrides)
        companion = Companion(**values)
        db_session.add(companion)
        db_session.commit()
        db_session.refresh(companion)
        return companion

    return _make


@pytest.fixture
def make_user(db_session):
    def _make(email: str = 'customer@example.com', role: str = ROLE_USER, companion_id: int | None = None) -> User:
        user = User(
            email=email,
            hashed_password=hash_password('correct-horse'),
            role=role,
            companion_id=companion_id,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def companion_user(make_companion, make_user):
    companion = make_companion()
    user = make_user(email='asha@example.com', role=ROLE_COMPANION, companion_id=companion.id)
    return companion, user


@pytest.fixture
def api_client(db_session, monkeypatch):
    def override_get_db():
        yield db_session

    monkeypatch.setattr(booking_routes, 'ensure_database_ready', lambda: None)
    monkeypatch.setattr(availability_routes, 'ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def bearer_headers():
    def _headers(user: User) -> dict[str, str]:
        return {'Authorization': f'Bearer {jwt_handler.create_access_token(subject=str(user.id))}'}

    return _headers
