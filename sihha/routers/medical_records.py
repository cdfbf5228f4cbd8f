from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import MedicalRecordBody
from sihha.services.medical_record_service import MedicalRecordService

router = APIRouter(prefix="/api/rooms", tags=["medical-records"])


@router.get("/{room_id}/medical-record")
async def get_medical_record(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    record = MedicalRecordService(db, clock).get_record(current_user, room_id)
    return {"record": record}


@router.put("/{room_id}/medical-record")
async def update_medical_record(
    room_id: str,
    body: MedicalRecordBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Partial update: fields missing from the body keep their stored values."""
    record = MedicalRecordService(db, clock).update_record(
        current_user, room_id, body.model_dump(exclude_unset=True)
    )
    return {"record": record}
