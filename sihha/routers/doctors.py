from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import DoctorProfileBody
from sihha.services.user_service import UserService, serialize_user

router = APIRouter(prefix="/api", tags=["doctors"])


@router.get("/doctors")
async def list_doctors(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    doctors = UserService(db, clock).list_doctors()
    return {"doctors": [serialize_user(doctor) for doctor in doctors]}


@router.put("/users/me/doctor-profile")
async def update_doctor_profile(
    body: DoctorProfileBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user = UserService(db, clock).update_doctor_profile(
        current_user,
        body.specialty,
        body.hospital_name,
        body.experience_years,
        body.study_years,
    )
    return {"user": serialize_user(user)}
