import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./companion_booking.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        with engine.begin() as connection:
            if 'companions' in table_names:
                existing_columns = {column['name'] for column in inspector.get_columns('companions')}
                migration_steps = [
                    ('telegram_username', 'ALTER TABLE companions ADD COLUMN telegram_username VARCHAR'),
                    ('images', 'ALTER TABLE companions ADD COLUMN images JSON'),
                    ('booking_version', 'ALTER TABLE companions ADD COLUMN booking_version INTEGER NOT NULL DEFAULT 0'),
                ]
                for column_name, statement in migration_steps:
                    if column_name not in existing_columns:
                        connection.execute(text(statement))

            if 'bookings' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_bookings_companion_date ON bookings(companion_id, date)')
                )
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_bookings_user_created ON bookings(user_id, created_at)')
                )

            if 'companion_availability' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_availability_companion_date '
                        'ON companion_availability(companion_id, date)'
                    )
                )

        _booking_schema_checked = True
