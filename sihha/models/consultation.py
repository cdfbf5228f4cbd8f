from sqlalchemy import Column, String, DateTime, Text, Integer, Float, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from sihha.core.clock import utcnow
from sihha.database import Base

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"

SUBJECT_SELF = "self"
SUBJECT_OTHER = "other"

GENDERS = ("male", "female")
SPOKEN_LANGUAGES = ("ar", "fr", "bilingual")

CHAD_STATE_CODES = frozenset({
    "barh_el_gazel",
    "batha",
    "borkou",
    "chari_baguirmi",
    "ennedi_est",
    "ennedi_ouest",
    "guera",
    "hadjer_lamis",
    "kanem",
    "lac",
    "logone_occidental",
    "logone_oriental",
    "mandoul",
    "mayo_kebbi_est",
    "mayo_kebbi_ouest",
    "moyen_chari",
    "n_djamena",
    "ouaddai",
    "salamat",
    "sila",
    "tandjile",
    "tibesti",
    "wadi_fira",
})

_PENDING_CLAUSE = text("status = 'pending'")


class ConsultationRequest(Base):
    """Patient asking a specific doctor to open a consultation"""
    __tablename__ = "consultation_requests"

    id = Column(String, primary_key=True)
    patient_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    target_doctor_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    subject_type = Column(String, nullable=False)
    subject_name = Column(String, nullable=False)
    age_years = Column(Integer, nullable=False)
    gender = Column(String, nullable=False)
    weight_kg = Column(Float, nullable=False)
    state_code = Column(String, nullable=False)
    spoken_language = Column(String, nullable=False)
    symptoms = Column(Text, nullable=False)

    status = Column(String, nullable=False, default=STATUS_PENDING)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    responded_at = Column(DateTime, nullable=True)
    responded_by_doctor_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    transferred_by_doctor_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    linked_room_id = Column(String, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True)

    patient = relationship("User", foreign_keys=[patient_id])
    target_doctor = relationship("User", foreign_keys=[target_doctor_id])
    responded_by_doctor = relationship("User", foreign_keys=[responded_by_doctor_id])
    transferred_by_doctor = relationship("User", foreign_keys=[transferred_by_doctor_id])

    __table_args__ = (
        Index("idx_consult_req_target_status", "target_doctor_id", "status", "updated_at"),
        Index("idx_consult_req_patient_status", "patient_id", "status", "updated_at"),
        # One pending request per patient/doctor pair. Accepted rows can only
        # come from a pending row, so this also serializes concurrent creates.
        Index(
            "uq_consult_req_pending_pair",
            "patient_id",
            "target_doctor_id",
            unique=True,
            sqlite_where=_PENDING_CLAUSE,
            postgresql_where=_PENDING_CLAUSE,
        ),
    )
