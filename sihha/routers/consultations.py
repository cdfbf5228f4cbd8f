from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import ConsultationEditBody, ConsultationRequestBody, TransferBody
from sihha.services.consultation_service import ConsultationService, serialize_request
from sihha.services.room_registry import serialize_room

router = APIRouter(prefix="/api/consultation-requests", tags=["consultations"])


@router.get("/mine")
async def my_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    requests = ConsultationService(db, clock).list_for_patient(current_user)
    return {"requests": [serialize_request(request) for request in requests]}


@router.get("/inbox")
async def doctor_inbox(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    requests = ConsultationService(db, clock).inbox_for_doctor(current_user)
    return {"requests": [serialize_request(request) for request in requests]}


@router.post("", status_code=201)
async def create_request(
    body: ConsultationRequestBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Patient asks a doctor for a consultation.

    Refused while the pair already has an open room or a pending request.
    """
    request = ConsultationService(db, clock).create(current_user, body.model_dump())
    return {"request": serialize_request(request)}


@router.post("/{request_id}/accept")
async def accept_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request, room = ConsultationService(db, clock).accept(current_user, request_id)
    return {"request": serialize_request(request), "room": serialize_room(room)}


@router.post("/{request_id}/reject")
async def reject_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request = ConsultationService(db, clock).reject(current_user, request_id)
    return {"request": serialize_request(request)}


@router.post("/{request_id}/transfer")
async def transfer_request(
    request_id: str,
    body: TransferBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request = ConsultationService(db, clock).transfer(current_user, request_id, body.doctor_id)
    return {"request": serialize_request(request)}


@router.put("/{request_id}")
async def edit_request(
    request_id: str,
    body: ConsultationEditBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request = ConsultationService(db, clock).edit(current_user, request_id, body.model_dump())
    return {"request": serialize_request(request)}
