"""
eventhub/rbac.py
Bearer token decoding and role / ownership checks

Tokens are issued elsewhere; this module only decodes them (HS256) into an
``Actor`` carrying the caller's id and role. Routes combine the actor with
ownership checks ("is this user the event's organizer").
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt

from eventhub.config.settings import settings
from eventhub.errors import ErrorCode, ForbiddenError, UnauthorizedError
from eventhub.orm.event import Event
from eventhub.orm.user import UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as decoded from the bearer token."""
    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


# ================= TOKEN UTILS =================

def create_access_token(user_id: int, role: str, expires_minutes: int = 60) -> str:
    """Sign a token for ``user_id``. Used by tooling and tests."""
    payload = {
        "id": user_id,
        "role": role,
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Actor:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthorizedError("Token has expired", code=ErrorCode.AUTH_EXPIRED)
    except JWTError:
        raise UnauthorizedError("Invalid token", code=ErrorCode.AUTH_INVALID)

    user_id = payload.get("id")
    if user_id is None:
        user_id = payload.get("sub")
    try:
        return Actor(id=int(user_id), role=UserRole(payload.get("role")))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token payload", code=ErrorCode.AUTH_INVALID)


# ================= AUTH DEPENDENCIES =================

async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Resolve the caller from the Authorization header; 401 if missing or bad."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return decode_token(credentials.credentials)


async def require_judge(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != UserRole.judge:
        raise ForbiddenError("Only judges can perform this action")
    return actor


async def require_participant(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != UserRole.participant:
        raise ForbiddenError("Only participants can register for rounds")
    return actor


def ensure_event_manager(actor: Actor, event: Event) -> None:
    """Admins manage every event; organizers only their own."""
    if actor.is_admin:
        return
    if actor.role == UserRole.organizer and event.organizer_id == actor.id:
        return
    logger.warning(f"[RBAC] actor={actor.id} role={actor.role.value} denied on event={event.id}")
    raise ForbiddenError(
        "Not authorized to manage this event",
        code=ErrorCode.OWNERSHIP_VIOLATION,
        details={"event_id": event.id}
    )
