from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock, to_iso
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import CreateRoomBody, PresenceBody
from sihha.services.consultation_service import ConsultationService, serialize_request
from sihha.services.presence_tracker import PresenceTracker
from sihha.services.room_registry import RoomRegistry, serialize_room

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.post("/create-or-get")
async def create_or_get_room(
    body: CreateRoomBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    room = RoomRegistry(db, clock).create_or_get_room(current_user, body.doctor_id)
    return {"room": serialize_room(room)}


@router.get("/with-doctor/{doctor_id}")
async def get_room_with_doctor(
    doctor_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    room = RoomRegistry(db, clock).get_room_for_pair(current_user, doctor_id)
    return {"room": serialize_room(room)}


@router.get("")
async def list_rooms(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    rows = RoomRegistry(db, clock).list_rooms(current_user)
    return {"rooms": [serialize_room(room, unread) for room, unread in rows]}


@router.get("/{room_id}")
async def get_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    room = RoomRegistry(db, clock).require_participant(current_user, room_id)
    return {"room": serialize_room(room)}


@router.post("/{room_id}/presence")
async def update_presence(
    room_id: str,
    body: PresenceBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    room = RoomRegistry(db, clock).require_participant(current_user, room_id, "room.presence")
    last_seen_at = PresenceTracker(db, clock).heartbeat(room, current_user.id, body.is_active)
    return {"ok": True, "lastSeenAt": to_iso(last_seen_at)}


@router.post("/{room_id}/close")
async def close_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    room = RoomRegistry(db, clock).close_room(current_user, room_id)
    return {"room": serialize_room(room)}


@router.get("/{room_id}/consultation-request")
async def get_room_consultation_request(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    request = ConsultationService(db, clock).get_for_room(current_user, room_id)
    return {"request": serialize_request(request)}
