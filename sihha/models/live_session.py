from sqlalchemy import Column, String, DateTime, ForeignKey

from sihha.database import Base

LIVE_STATUS_IDLE = "idle"
LIVE_STATUS_PENDING = "pending"
LIVE_STATUS_ACTIVE = "active"


class LiveSession(Base):
    """Live voice negotiation state, one row per room, overwritten in place"""
    __tablename__ = "live_sessions"

    room_id = Column(String, ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True)
    status = Column(String, nullable=False, default=LIVE_STATUS_IDLE, index=True)
    requested_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    requested_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
