"""
Message Ledger
Append-only chat history. Every append bumps the owning room's preview and
activity timestamp unless the caller asks otherwise; reading a room's history
stamps the other side's messages as delivered and read.
"""

import math
import uuid
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import ValidationError
from sihha.models.message import (
    Message,
    EventKind,
    MESSAGE_TYPE_TEXT,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_IMAGE,
    MESSAGE_TYPE_LIVE,
)
from sihha.models.room import Room
from sihha.models.user import User
from sihha.services.presence_tracker import PresenceTracker
from sihha.services.room_registry import RoomRegistry


def room_preview(message_type: str, transcript: str) -> str:
    if message_type == MESSAGE_TYPE_AUDIO:
        return "Voice message"
    if message_type == MESSAGE_TYPE_IMAGE:
        return "Image"
    if message_type == MESSAGE_TYPE_LIVE:
        return f"[LIVE] {transcript or 'Live update'}".strip()
    return transcript or ""


def serialize_message(message: Optional[Message]) -> Optional[Dict]:
    if message is None:
        return None
    kind = message.event_kind or EventKind.NONE
    return {
        "id": message.id,
        "roomId": message.room_id,
        "senderId": message.sender_id,
        "senderName": message.sender_name,
        "type": message.type,
        "eventKind": kind.value,
        "content": message.transcript if message.type == MESSAGE_TYPE_LIVE else message.content,
        "durationSeconds": message.duration_seconds,
        "deliveredAt": to_iso(message.delivered_at),
        "readAt": to_iso(message.read_at),
        "sentAt": to_iso(message.sent_at),
    }


class MessageLedger:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        presence: Optional[PresenceTracker] = None,
        rooms: Optional[RoomRegistry] = None,
    ):
        self.db = db
        self.clock = clock
        self.presence = presence or PresenceTracker(db, clock)
        self.rooms = rooms or RoomRegistry(db, clock)

    def append(
        self,
        room: Room,
        sender: User,
        message_type: str,
        content: str,
        duration_seconds: int = 0,
        event_kind: EventKind = EventKind.NONE,
        update_preview: bool = True,
    ) -> Message:
        """Insert one message and, unless suppressed, refresh the room preview. Not committed."""
        sent_at = self.clock()
        message = Message(
            id=str(uuid.uuid4()),
            room_id=room.id,
            sender_id=sender.id,
            sender_name=sender.name,
            type=message_type,
            event_kind=event_kind,
            content=content,
            duration_seconds=duration_seconds,
            sent_at=sent_at,
        )
        self.db.add(message)
        if update_preview:
            room.last_message = room_preview(message_type, message.transcript)
            room.last_updated_at = sent_at
        self.db.flush()
        return message

    def _writable_room(self, user: User, room_id: str) -> Room:
        room = self.rooms.require_participant(user, room_id, "message.send")
        self.rooms.ensure_can_write(room, user)
        return room

    def send_text(self, user: User, room_id: str, text) -> Message:
        room = self._writable_room(user, room_id)
        text = str(text or "").strip()
        if not text:
            raise ValidationError("empty-message", "Message text is required.")
        message = self.append(room, user, MESSAGE_TYPE_TEXT, text)
        self.db.commit()
        return message

    def send_audio(self, user: User, room_id: str, audio_url, duration_seconds=None) -> Message:
        room = self._writable_room(user, room_id)
        audio_url = str(audio_url or "").strip()
        if not audio_url:
            raise ValidationError("audio-url-required", "audioUrl is required.")
        try:
            duration = float(duration_seconds or 1)
        except (TypeError, ValueError):
            duration = 1.0
        if not math.isfinite(duration):
            duration = 1.0
        message = self.append(
            room, user, MESSAGE_TYPE_AUDIO, audio_url,
            duration_seconds=max(1, math.floor(duration)),
        )
        self.db.commit()
        return message

    def send_image(self, user: User, room_id: str, image_url) -> Message:
        room = self._writable_room(user, room_id)
        image_url = str(image_url or "").strip()
        if not image_url:
            raise ValidationError("image-url-required", "imageUrl is required.")
        message = self.append(room, user, MESSAGE_TYPE_IMAGE, image_url)
        self.db.commit()
        return message

    def list_and_mark_delivered(self, user: User, room_id: str) -> List[Message]:
        """
        Full history of the room, oldest first.

        Fetching is the read receipt: the other side's messages get delivered_at
        and read_at stamped, each only if it was still null.
        """
        room = self.rooms.require_participant(user, room_id, "message.read")
        now = self.clock()
        self.presence.refresh(room.id, user.id, True)

        from_other = self.db.query(Message).filter(
            Message.room_id == room.id,
            Message.sender_id != user.id,
        )
        from_other.filter(Message.delivered_at.is_(None)).update(
            {Message.delivered_at: now}, synchronize_session=False
        )
        from_other.filter(Message.read_at.is_(None)).update(
            {Message.read_at: now}, synchronize_session=False
        )
        self.db.commit()

        return (
            self.db.query(Message)
            .filter(Message.room_id == room.id)
            .order_by(Message.sent_at.asc())
            .all()
        )
