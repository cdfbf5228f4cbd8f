"""
Room Registry
Owns the patient/doctor chat room: deterministic identity, create-or-reopen,
close, and the participant / closed-room write rules.
"""

from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, and_
from sqlalchemy.orm import Session

from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import AuthorizationError, NotFoundError, ValidationError
from sihha.core.logging import log_audit
from sihha.database import upsert
from sihha.models.message import Message
from sihha.models.room import Room, CLOSED_ROOM_PREVIEW
from sihha.models.user import User, ROLE_DOCTOR
from sihha.services.access_control import authorize


def build_room_id(first_id: str, second_id: str) -> str:
    """Room id for an unordered pair of user ids."""
    low, high = sorted([first_id, second_id])
    return f"{low}_{high}"


def serialize_room(room: Optional[Room], unread_count: int = 0) -> Optional[Dict]:
    if room is None:
        return None
    return {
        "id": room.id,
        "patientId": room.patient_id,
        "patientName": room.patient_name,
        "doctorId": room.doctor_id,
        "doctorName": room.doctor_name,
        "participantIds": room.participant_ids,
        "patientPhotoUrl": room.patient.photo_url if room.patient else "",
        "doctorPhotoUrl": room.doctor.photo_url if room.doctor else "",
        "lastMessage": room.last_message,
        "unreadCount": int(unread_count or 0),
        "createdAt": to_iso(room.created_at),
        "lastUpdatedAt": to_iso(room.last_updated_at),
        "isClosed": bool(room.is_closed),
    }


class RoomRegistry:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def find(self, room_id: str) -> Optional[Room]:
        return self.db.get(Room, room_id, populate_existing=True)

    def require_participant(self, user: User, room_id: str, operation: str = "room.read") -> Room:
        authorize(user, operation)
        room = self.find(room_id)
        if room is None:
            raise NotFoundError("room-not-found", "Room not found.")
        if not room.has_participant(user.id):
            raise AuthorizationError("forbidden", "No access to this room.")
        return room

    @staticmethod
    def ensure_can_write(room: Room, user: User) -> None:
        """Patients cannot write into a closed room; the doctor still can."""
        if room.is_closed and room.patient_id == user.id:
            raise AuthorizationError("room-closed", "Room is closed. Please request a new consultation.")

    def ensure_room(self, patient: User, doctor: User, actor: Optional[User] = None) -> Room:
        """
        Create the pair's room, or reopen it if it was closed. Not committed.

        The insert is ON CONFLICT DO NOTHING on the derived id, so a caller that
        loses a creation race just reads back the winner's identical row.
        """
        room_id = build_room_id(patient.id, doctor.id)
        now = self.clock()
        result = upsert(
            self.db,
            Room,
            {
                "id": room_id,
                "patient_id": patient.id,
                "patient_name": patient.name,
                "doctor_id": doctor.id,
                "doctor_name": doctor.name,
                "last_message": "",
                "is_closed": False,
                "created_at": now,
                "last_updated_at": now,
            },
            index_elements=["id"],
            update_fields=[],
        )
        room = self.find(room_id)
        actor_id = (actor or patient).id
        if result.rowcount == 1:
            log_audit("room.created", actor_id, {"room_id": room_id, "doctor_id": doctor.id})
        elif room.is_closed:
            room.is_closed = False
            room.last_updated_at = now
            self.db.flush()
            log_audit("room.reopened", actor_id, {"room_id": room_id, "doctor_id": doctor.id})
        return room

    def create_or_get_room(self, patient: User, doctor_id: str) -> Room:
        authorize(patient, "room.create_or_get")
        doctor_id = str(doctor_id or "").strip()
        if not doctor_id:
            raise ValidationError("doctor-required", "doctorId is required.")
        doctor = self.db.get(User, doctor_id)
        if doctor is None or doctor.role != ROLE_DOCTOR:
            raise NotFoundError("doctor-not-found", "Doctor not found.")

        room = self.ensure_room(patient, doctor)
        self.db.commit()
        return self.find(room.id)

    def get_room_for_pair(self, patient: User, doctor_id: str) -> Optional[Room]:
        authorize(patient, "room.with_doctor")
        doctor_id = str(doctor_id or "").strip()
        if not doctor_id:
            raise ValidationError("doctor-required", "doctorId is required.")
        return self.find(build_room_id(patient.id, doctor_id))

    def close_room(self, doctor: User, room_id: str) -> Room:
        authorize(doctor, "room.close")
        room = self.find(room_id)
        if room is None:
            raise NotFoundError("room-not-found", "Room not found.")
        if room.doctor_id != doctor.id:
            raise AuthorizationError("forbidden", "Only the doctor can close this room.")

        room.is_closed = True
        room.last_message = CLOSED_ROOM_PREVIEW
        room.last_updated_at = self.clock()
        self.db.commit()
        log_audit("room.closed", doctor.id, {"room_id": room.id})
        return self.find(room.id)

    def list_rooms(self, user: User) -> List[Tuple[Room, int]]:
        """Rooms of the user, most recently active first, with unread counts."""
        unread = (
            self.db.query(Message.room_id, func.count(Message.id).label("unread"))
            .filter(and_(Message.sender_id != user.id, Message.read_at.is_(None)))
            .group_by(Message.room_id)
            .subquery()
        )
        field = Room.doctor_id if user.role == ROLE_DOCTOR else Room.patient_id
        rows = (
            self.db.query(Room, func.coalesce(unread.c.unread, 0))
            .outerjoin(unread, unread.c.room_id == Room.id)
            .filter(field == user.id)
            .order_by(Room.last_updated_at.desc())
            .all()
        )
        return [(room, count) for room, count in rows]
