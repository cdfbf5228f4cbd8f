from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from sihha.config import settings
from sihha.core.clock import Clock, utcnow
from sihha.core.error_handling import AuthorizationError, UnauthenticatedError
from sihha.database import get_db
from sihha.models.user import User
from sihha.services.presence_tracker import PresenceTracker
from sihha.utils.security import verify_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/signin", auto_error=False)


def get_clock() -> Clock:
    """Wall clock for request handlers; tests override this dependency."""
    return utcnow


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> User:
    if not token:
        raise UnauthenticatedError("unauthorized", "Missing bearer token.")

    payload = verify_token(token)
    if payload is None:
        raise UnauthenticatedError("unauthorized", "Invalid or expired token.")

    user_id = payload.get("uid")
    if user_id is None or not isinstance(user_id, str):
        raise UnauthenticatedError("unauthorized", "Invalid or expired token.")

    user = db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("unauthorized", "User not found.")
    if user.is_disabled:
        raise AuthorizationError("account-disabled", "This account has been disabled.")

    PresenceTracker(db, clock).touch_user_activity(user.id)
    db.commit()
    return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not (current_user.is_admin or current_user.phone_number == settings.ADMIN_PHONE_NUMBER):
        raise AuthorizationError("forbidden", "Admin access required.")
    return current_user
