import time
from dataclasses import dataclass
from threading import Lock

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core import config
from backend.core.errors import PermissionDeniedError
from backend.database import get_db
from backend.models.user import ROLE_COMPANION, ROLE_USER, User

security = HTTPBearer()


@dataclass(frozen=True)
class RoleAssignment:
    role: str
    companion_id: int | None = None


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str
    role: str
    companion_id: int | None = None


class RoleCache:
    """Per-user role lookups, dropped on sign-out or when a role changes."""

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl_seconds = ttl_seconds
        self._entries: dict[int, tuple[RoleAssignment, float]] = {}
        self._lock = Lock()

    def get(self, user_id: int) -> RoleAssignment | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            assignment, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[user_id]
                return None
            return assignment

    def set(self, user_id: int, assignment: RoleAssignment) -> None:
        with self._lock:
            self._entries[user_id] = (assignment, time.monotonic() + self._ttl_seconds)

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


role_cache = RoleCache(config.ROLE_CACHE_TTL_SECONDS)


def lookup_role(user: User) -> RoleAssignment:
    cached = role_cache.get(user.id)
    if cached is not None:
        return cached

    assignment = RoleAssignment(role=user.role or ROLE_USER, companion_id=user.companion_id)
    role_cache.set(user.id, assignment)
    return assignment


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.get(User, int(subject))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_principal(user: User = Depends(get_current_user)) -> Principal:
    assignment = lookup_role(user)
    return Principal(
        user_id=user.id,
        email=user.email,
        role=assignment.role,
        companion_id=assignment.companion_id,
    )


def require_roles(*roles: str):
    def _guard(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return principal
    return _guard


def require_companion(principal: Principal = Depends(require_roles(ROLE_COMPANION))) -> Principal:
    if principal.companion_id is None:
        raise PermissionDeniedError("No companion profile is linked to this account.")
    return principal
