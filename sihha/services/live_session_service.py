"""
Live Session Negotiator
Per-room live (voice) session state machine layered on top of a chat room.

    idle --request--> pending --accept--> active
      ^                  |                  |
      +-----reject-------+                  |
      +-----------------stop----------------+   (stop is allowed from any state)

Every transition the caller starts refreshes the caller's own room presence
first, then requires the other participant's presence to be fresh. That
refresh is committed even when the negotiation is refused.
"""

from typing import Dict, Optional

from sqlalchemy.orm import Session

from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import ConflictError, ValidationError
from sihha.core.logging import log_audit
from sihha.database import upsert
from sihha.models.live_session import (
    LiveSession,
    LIVE_STATUS_IDLE,
    LIVE_STATUS_PENDING,
    LIVE_STATUS_ACTIVE,
)
from sihha.models.message import Message, EventKind, MESSAGE_TYPE_LIVE
from sihha.models.room import Room
from sihha.models.user import User
from sihha.services.livekit_token_service import LiveKitTokenService
from sihha.services.message_ledger import MessageLedger
from sihha.services.presence_tracker import PresenceTracker
from sihha.services.room_registry import RoomRegistry


def serialize_session(session: LiveSession) -> Dict:
    return {
        "roomId": session.room_id,
        "status": session.status or LIVE_STATUS_IDLE,
        "requestedBy": session.requested_by,
        "requestedAt": to_iso(session.requested_at),
        "respondedAt": to_iso(session.responded_at),
    }


class LiveSessionService:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        presence: Optional[PresenceTracker] = None,
        rooms: Optional[RoomRegistry] = None,
        ledger: Optional[MessageLedger] = None,
        tokens: Optional[LiveKitTokenService] = None,
    ):
        self.db = db
        self.clock = clock
        self.presence = presence or PresenceTracker(db, clock)
        self.rooms = rooms or RoomRegistry(db, clock)
        self.ledger = ledger or MessageLedger(db, clock, self.presence, self.rooms)
        self.tokens = tokens or LiveKitTokenService()

    def get_session(self, room_id: str) -> LiveSession:
        """Stored session, or a transient idle one when the room never negotiated."""
        session = self.db.get(LiveSession, room_id, populate_existing=True)
        if session is None:
            return LiveSession(room_id=room_id, status=LIVE_STATUS_IDLE)
        return session

    def _write(self, room_id: str, status: str, requested_by=None, requested_at=None, responded_at=None) -> None:
        upsert(
            self.db,
            LiveSession,
            {
                "room_id": room_id,
                "status": status,
                "requested_by": requested_by,
                "requested_at": requested_at,
                "responded_at": responded_at,
            },
            index_elements=["room_id"],
        )

    def _event(self, room: Room, user: User, kind: EventKind, content: str, update_preview: bool = True) -> Message:
        return self.ledger.append(
            room, user, MESSAGE_TYPE_LIVE, content,
            event_kind=kind, update_preview=update_preview,
        )

    def _require_peer_online(self, room: Room, user: User, message: str) -> None:
        """Refresh the caller, then demand a fresh peer. The refresh survives a refusal."""
        self.presence.refresh(room.id, user.id, True)
        if not self.presence.is_peer_online(room, user.id):
            self.db.commit()
            raise ConflictError("live-peer-offline", message)

    def status(self, user: User, room_id: str) -> LiveSession:
        room = self.rooms.require_participant(user, room_id, "live.status")
        return self.get_session(room.id)

    def request(self, user: User, room_id: str, replace_pending: bool = False):
        """
        Ask the other participant for a live session.

        A pending request from the other side is a conflict unless
        replace_pending is set (the legacy "start" entry point).
        """
        room = self.rooms.require_participant(user, room_id, "live.negotiate")
        self._require_peer_online(room, user, "The other participant must be in the chat to send a live request.")

        current = self.get_session(room.id)
        if current.status == LIVE_STATUS_ACTIVE:
            self.db.commit()
            raise ConflictError("live-already-active", "Live conversation is already active.")
        if (
            not replace_pending
            and current.status == LIVE_STATUS_PENDING
            and current.requested_by
            and current.requested_by != user.id
        ):
            self.db.commit()
            raise ConflictError("live-request-pending-other", "There is already a pending request.")

        now = self.clock()
        self._write(room.id, LIVE_STATUS_PENDING, requested_by=user.id, requested_at=now)
        message = self._event(room, user, EventKind.REQUEST, user.name)
        self.db.commit()

        log_audit("live.requested", user.id, {"room_id": room.id})
        return self.get_session(room.id), message

    def _pending_from_other(self, room: Room, user: User, own_code: str, own_message: str) -> LiveSession:
        current = self.get_session(room.id)
        if current.status != LIVE_STATUS_PENDING or not current.requested_by:
            raise ConflictError("live-no-pending-request", "No pending live request.")
        if current.requested_by == user.id:
            raise ConflictError(own_code, own_message)
        return current

    def accept(self, user: User, room_id: str):
        room = self.rooms.require_participant(user, room_id, "live.negotiate")
        current = self._pending_from_other(
            room, user, "live-cannot-accept-own", "Requester cannot accept own request."
        )
        self._require_peer_online(room, user, "The requester is no longer online.")

        now = self.clock()
        self._write(
            room.id,
            LIVE_STATUS_ACTIVE,
            requested_by=current.requested_by,
            requested_at=current.requested_at or now,
            responded_at=now,
        )
        message = self._event(room, user, EventKind.START, user.name)
        self.db.commit()

        log_audit("live.accepted", user.id, {"room_id": room.id, "requested_by": current.requested_by})
        return self.get_session(room.id), message

    def reject(self, user: User, room_id: str):
        room = self.rooms.require_participant(user, room_id, "live.negotiate")
        self._pending_from_other(room, user, "live-cannot-reject-own", "Requester cannot reject own request.")

        self._write(room.id, LIVE_STATUS_IDLE, responded_at=self.clock())
        message = self._event(room, user, EventKind.REJECT, user.name)
        self.db.commit()

        log_audit("live.rejected", user.id, {"room_id": room.id})
        return self.get_session(room.id), message

    def stop(self, user: User, room_id: str):
        """End or cancel from any state. Also marks the caller as gone from the live view."""
        room = self.rooms.require_participant(user, room_id, "live.negotiate")

        self._write(room.id, LIVE_STATUS_IDLE, responded_at=self.clock())
        message = self._event(room, user, EventKind.STOP, user.name)
        self.presence.refresh(room.id, user.id, False)
        self.db.commit()

        log_audit("live.stopped", user.id, {"room_id": room.id})
        return self.get_session(room.id), message

    def join(self, user: User, room_id: str) -> Dict:
        """Media credentials for the call of the currently active session."""
        room = self.rooms.require_participant(user, room_id, "live.join")
        session = self.get_session(room.id)
        if session.status != LIVE_STATUS_ACTIVE:
            raise ConflictError("live-not-active", "Live conversation is not active.")
        self._require_peer_online(room, user, "The other participant is offline.")
        self.db.commit()

        room_name = self.tokens.build_room_name(room.id, session.requested_at, session.responded_at)
        token = self.tokens.create_access_token(room_name, user.id, user.name)

        log_audit("live.joined", user.id, {"room_id": room.id, "call_room": room_name})
        return {
            "session": session,
            "url": self.tokens.url,
            "token": token,
            "room_name": room_name,
            "participant_identity": user.id,
            "audio_only": True,
        }

    def signal(self, user: User, room_id: str, content) -> Message:
        """
        Append a signaling payload to the live transcript.

        A payload that starts with its own bracket tag is stored verbatim with
        no event kind and updates the room preview, even when the tag looks
        like a lifecycle marker; the session itself only changes through the
        negotiation operations. A bare payload is stored as a signal and
        leaves the preview alone.
        """
        room = self.rooms.require_participant(user, room_id, "live.signal")
        self.rooms.ensure_can_write(room, user)
        content = str(content or "").strip()
        if not content:
            raise ValidationError("live-content-required", "Live content is required.")

        session = self.get_session(room.id)
        if session.status != LIVE_STATUS_ACTIVE:
            raise ConflictError("live-not-active", "Live conversation is not active yet.")
        self._require_peer_online(room, user, "The other participant is offline.")

        kind = EventKind.for_client_payload(content)
        message = self._event(room, user, kind, content, update_preview=kind is not EventKind.SIGNAL)
        self.db.commit()
        return message
