from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from sihha.core.clock import utcnow
from sihha.database import Base


class PatientMedicalRecord(Base):
    """Patient-level background shared by every doctor who treats the patient"""
    __tablename__ = "patient_medical_records"

    patient_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    allergies = Column(Text, nullable=False, default="")
    chronic_diseases = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class MedicalRecordEntry(Base):
    """
    One doctor's notes for one consultation room.

    At most one entry per (room, doctor). secret_notes are private to the
    doctor who wrote them.
    """
    __tablename__ = "medical_record_entries"

    id = Column(String, primary_key=True)
    patient_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = Column(String, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    diagnosis = Column(Text, nullable=False, default="")
    prescribed_medications = Column(Text, nullable=False, default="")
    secret_notes = Column(Text, nullable=False, default="")
    prescription_pdf_url = Column(String, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    doctor = relationship("User", foreign_keys=[doctor_id])

    __table_args__ = (
        UniqueConstraint("room_id", "doctor_id", name="uq_medical_record_entries_room_doctor"),
    )
