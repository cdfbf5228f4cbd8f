"""
Authentication API Router
Phone number + password accounts with bearer JWT sessions
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.core.logging import log_audit
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import ChangePasswordBody, SigninBody, SignupBody
from sihha.services.user_service import UserService, serialize_user

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/signup", status_code=201)
async def signup(body: SignupBody, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    token, user = UserService(db, clock).signup(body.name, body.phone_number, body.password, body.role)
    return {"token": token, "user": serialize_user(user)}


@router.post("/signin")
async def signin(body: SigninBody, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    token, user = UserService(db, clock).signin(body.phone_number, body.password)
    log_audit("auth.signin", user.id, {"role": user.role})
    return {"token": token, "user": serialize_user(user)}


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return {"user": serialize_user(current_user)}


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    """Tokens are stateless; the client drops its copy."""
    log_audit("auth.logout", current_user.id, {})
    return {"ok": True}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    UserService(db, clock).change_password(current_user, body.current_password, body.new_password)
    return {"ok": True}
