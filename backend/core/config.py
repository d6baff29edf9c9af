import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173", "http://localhost:8080"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Role lookups are cached per user until sign-out or expiry.
ROLE_CACHE_TTL_SECONDS = int(os.getenv("ROLE_CACHE_TTL_SECONDS", "300"))

# Wall-clock bounds of a business day, companion local time.
BUSINESS_HOURS_START = os.getenv("BUSINESS_HOURS_START", "08:00")
BUSINESS_HOURS_END = os.getenv("BUSINESS_HOURS_END", "20:00")

MIN_BOOKING_HOURS = int(os.getenv("MIN_BOOKING_HOURS", "1"))
MAX_BOOKING_HOURS = int(os.getenv("MAX_BOOKING_HOURS", "12"))

# No new bookings for the current date once this hour is reached.
BOOKING_CUTOFF_HOUR = int(os.getenv("BOOKING_CUTOFF_HOUR", "17"))

START_TIME_STEP_MINUTES = int(os.getenv("START_TIME_STEP_MINUTES", "30"))
DEFAULT_HOURS_CELL_MINUTES = int(os.getenv("DEFAULT_HOURS_CELL_MINUTES", "30"))

DEFAULT_COMPANION_RATE = int(os.getenv("DEFAULT_COMPANION_RATE", "4000"))
NEW_BOOKING_STATUS = os.getenv("NEW_BOOKING_STATUS", "approved")

TELEGRAM_BASE_URL = os.getenv("TELEGRAM_BASE_URL", "https://t.me")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if MIN_BOOKING_HOURS < 1 or MAX_BOOKING_HOURS < MIN_BOOKING_HOURS:
        raise RuntimeError("Booking duration bounds are inconsistent.")
    if not 0 <= BOOKING_CUTOFF_HOUR <= 24:
        raise RuntimeError("BOOKING_CUTOFF_HOUR must be between 0 and 24.")
