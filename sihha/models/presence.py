from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index

from sihha.database import Base


class RoomPresence(Base):
    """Last activity of a user inside one room; gates live negotiation only"""
    __tablename__ = "room_presence"

    room_id = Column(String, ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    last_seen_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_presence_room", "room_id", "last_seen_at"),
    )


class AppPresence(Base):
    """Global last activity of a user, refreshed on every authenticated call"""
    __tablename__ = "app_presence"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    last_seen_at = Column(DateTime, nullable=False, index=True)


class UserDailyActivity(Base):
    __tablename__ = "user_daily_activity"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    activity_date = Column(String, primary_key=True, index=True)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False)
