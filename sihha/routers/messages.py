from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import (
    AudioMessageBody,
    ImageMessageBody,
    LiveSignalBody,
    TextMessageBody,
)
from sihha.services.live_session_service import LiveSessionService
from sihha.services.message_ledger import MessageLedger, serialize_message

router = APIRouter(prefix="/api/rooms/{room_id}/messages", tags=["messages"])


@router.get("")
async def list_messages(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Room history, oldest first. Marks the other side's messages delivered and read."""
    messages = MessageLedger(db, clock).list_and_mark_delivered(current_user, room_id)
    return {"messages": [serialize_message(message) for message in messages]}


@router.post("/text", status_code=201)
async def send_text(
    room_id: str,
    body: TextMessageBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    message = MessageLedger(db, clock).send_text(current_user, room_id, body.text)
    return {"message": serialize_message(message)}


@router.post("/audio", status_code=201)
async def send_audio(
    room_id: str,
    body: AudioMessageBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    message = MessageLedger(db, clock).send_audio(current_user, room_id, body.audio_url, body.duration_seconds)
    return {"message": serialize_message(message)}


@router.post("/image", status_code=201)
async def send_image(
    room_id: str,
    body: ImageMessageBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    message = MessageLedger(db, clock).send_image(current_user, room_id, body.image_url)
    return {"message": serialize_message(message)}


@router.post("/live", status_code=201)
async def send_live_signal(
    room_id: str,
    body: LiveSignalBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    message = LiveSessionService(db, clock).signal(current_user, room_id, body.content)
    return {"message": serialize_message(message)}
