import enum
from typing import Optional

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, Enum as SQLEnum

from sihha.core.clock import utcnow
from sihha.database import Base

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_IMAGE = "image"
MESSAGE_TYPE_LIVE = "live"

MESSAGE_TYPES = (MESSAGE_TYPE_TEXT, MESSAGE_TYPE_AUDIO, MESSAGE_TYPE_IMAGE, MESSAGE_TYPE_LIVE)


class EventKind(str, enum.Enum):
    """Live-session lifecycle event carried by a live message"""
    NONE = "none"
    REQUEST = "request"
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    STOP = "stop"
    SIGNAL = "signal"

    @property
    def marker(self) -> Optional[str]:
        if self is EventKind.NONE:
            return None
        return f"[LIVE_{self.name}]"

    def render(self, content: str) -> str:
        """Transcript line in the bracketed form older clients parse."""
        if self.marker is None:
            return content
        return f"{self.marker} {content}".strip()

    @classmethod
    def for_client_payload(cls, raw: str) -> "EventKind":
        """
        Kind for a payload a participant posts into the live transcript.

        A payload that already carries its own bracket tag is kept verbatim
        (NONE); a bare one is a signal. Lifecycle kinds are never returned:
        only the negotiator's transitions write those.
        """
        return cls.NONE if raw.startswith("[") else cls.SIGNAL


class Message(Base):
    """
    Chat message. Immutable after insert except delivered_at/read_at, which
    are stamped once by the reader.
    """
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    room_id = Column(String, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_name = Column(String, nullable=False)

    type = Column(String, nullable=False)
    event_kind = Column(
        SQLEnum(EventKind, name="message_event_kind", values_callable=lambda e: [k.value for k in e]),
        nullable=False,
        default=EventKind.NONE,
    )
    content = Column(Text, nullable=False)
    duration_seconds = Column(Integer, nullable=False, default=0)

    delivered_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_messages_room_sent", "room_id", "sent_at"),
    )

    @property
    def transcript(self) -> str:
        kind = self.event_kind or EventKind.NONE
        return kind.render(self.content or "")
