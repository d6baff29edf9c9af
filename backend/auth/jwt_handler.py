from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

ACCESS_TOKEN_TYPE = "access"


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    """Issue a bearer token for a user id; ``role`` is a display hint only."""
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject, "type": ACCESS_TOKEN_TYPE, "exp": expire, "iat": issued_at}
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not an access token")
    return payload
