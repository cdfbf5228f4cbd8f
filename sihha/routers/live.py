"""
Live Session Router
Voice-call negotiation inside a chat room and LiveKit join credentials.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.services.live_session_service import LiveSessionService, serialize_session
from sihha.services.message_ledger import serialize_message

router = APIRouter(prefix="/api/rooms/{room_id}/live", tags=["live"])


def get_live_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> LiveSessionService:
    return LiveSessionService(db, clock)


def _transition(result):
    session, message = result
    return {"session": serialize_session(session), "message": serialize_message(message)}


@router.get("/status")
async def live_status(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    return {"session": serialize_session(service.status(current_user, room_id))}


@router.post("/request")
async def request_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    return _transition(service.request(current_user, room_id))


@router.post("/start")
async def start_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    """Older clients: same as /request but overrides a pending request from the other side."""
    return _transition(service.request(current_user, room_id, replace_pending=True))


@router.post("/accept")
async def accept_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    return _transition(service.accept(current_user, room_id))


@router.post("/reject")
async def reject_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    return _transition(service.reject(current_user, room_id))


@router.post("/stop")
async def stop_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    return _transition(service.stop(current_user, room_id))


@router.post("/join")
async def join_live(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_service),
):
    grant = service.join(current_user, room_id)
    return {
        "session": serialize_session(grant["session"]),
        "url": grant["url"],
        "token": grant["token"],
        "roomName": grant["room_name"],
        "participantIdentity": grant["participant_identity"],
        "audioOnly": grant["audio_only"],
    }
