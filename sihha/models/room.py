from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from sihha.core.clock import utcnow
from sihha.database import Base

CLOSED_ROOM_PREVIEW = "[consultation closed]"


class Room(Base):
    """One-to-one chat room between a patient and a doctor.

    The id is derived from the sorted participant ids, so the table can never
    hold two rooms for the same pair.
    """
    __tablename__ = "rooms"

    id = Column(String, primary_key=True)
    patient_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_name = Column(String, nullable=False)
    doctor_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_name = Column(String, nullable=False)

    last_message = Column(String, nullable=False, default="")
    is_closed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_updated_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("User", foreign_keys=[doctor_id])

    @property
    def participant_ids(self):
        return [self.patient_id, self.doctor_id]

    def other_participant_id(self, user_id: str) -> str:
        return self.doctor_id if user_id == self.patient_id else self.patient_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.patient_id, self.doctor_id)
