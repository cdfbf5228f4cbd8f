"""
Admin API Router
Dashboard statistics and user management for the built-in admin account.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_admin
from sihha.models.user import User
from sihha.schemas.chat_schemas import AdminCreateUserBody, ResetPasswordBody, UserStatusBody
from sihha.services.admin_service import AdminService
from sihha.services.user_service import serialize_user

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
async def list_users(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return {"users": AdminService(db, clock).list_users()}


@router.get("/dashboard")
async def dashboard(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return AdminService(db, clock).dashboard()


@router.post("/users", status_code=201)
async def create_user(
    body: AdminCreateUserBody,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user = AdminService(db, clock).create_user(admin, body.model_dump())
    return {"user": serialize_user(user)}


@router.patch("/users/{user_id}/status")
async def set_user_status(
    user_id: str,
    body: UserStatusBody,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return {"user": AdminService(db, clock).set_disabled(admin, user_id, body.disabled)}


@router.post("/users/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    body: ResetPasswordBody,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    AdminService(db, clock).reset_password(admin, user_id, body.new_password)
    return {"ok": True}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    AdminService(db, clock).delete_user(admin, user_id)
    return {"ok": True}
