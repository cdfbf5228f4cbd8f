"""
Presence Tracker
Per-room and global last-activity timestamps.

Room presence only gates live-session negotiation. Global presence feeds the
admin dashboard's "online now" and daily visitor counts.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from sihha.config import settings
from sihha.core.clock import Clock, utcnow
from sihha.database import upsert
from sihha.models.presence import RoomPresence, AppPresence, UserDailyActivity
from sihha.models.room import Room


class PresenceTracker:
    def __init__(self, db: Session, clock: Clock = utcnow, live_window_seconds: Optional[int] = None):
        self.db = db
        self.clock = clock
        if live_window_seconds is None:
            live_window_seconds = settings.LIVE_ONLINE_WINDOW_SECONDS
        self.live_window = timedelta(seconds=live_window_seconds)

    def refresh(self, room_id: str, user_id: str, is_active: bool = True) -> datetime:
        """Record that the user is (or is no longer) looking at the room. Not committed."""
        now = self.clock()
        upsert(
            self.db,
            RoomPresence,
            {"room_id": room_id, "user_id": user_id, "last_seen_at": now, "is_active": is_active},
            index_elements=["room_id", "user_id"],
        )
        return now

    def get(self, room_id: str, user_id: str) -> Optional[RoomPresence]:
        return self.db.get(RoomPresence, (room_id, user_id), populate_existing=True)

    def is_fresh(self, presence: Optional[RoomPresence]) -> bool:
        # Inclusive window: a row seen exactly `window` ago still counts.
        if presence is None or not presence.is_active or presence.last_seen_at is None:
            return False
        return self.clock() - presence.last_seen_at <= self.live_window

    def is_peer_online(self, room: Room, user_id: str) -> bool:
        return self.is_fresh(self.get(room.id, room.other_participant_id(user_id)))

    def touch_user_activity(self, user_id: str) -> None:
        """Bump global presence and today's activity row. Not committed."""
        now = self.clock()
        upsert(
            self.db,
            AppPresence,
            {"user_id": user_id, "last_seen_at": now},
            index_elements=["user_id"],
        )
        upsert(
            self.db,
            UserDailyActivity,
            {
                "user_id": user_id,
                "activity_date": now.date().isoformat(),
                "first_seen_at": now,
                "last_seen_at": now,
            },
            index_elements=["user_id", "activity_date"],
            update_fields=["last_seen_at"],
        )

    def heartbeat(self, room: Room, user_id: str, is_active: bool = True) -> datetime:
        """Client-driven presence ping for an open (or just closed) chat screen."""
        now = self.refresh(room.id, user_id, is_active)
        self.db.commit()
        return now
