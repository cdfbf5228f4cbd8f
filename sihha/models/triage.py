from sqlalchemy import Column, String, Text, Integer, Float, Boolean, DateTime, JSON, ForeignKey

from sihha.core.clock import utcnow
from sihha.database import Base


class TriageAuditLog(Base):
    """One row per triage attempt, including rejected input and AI fallbacks"""
    __tablename__ = "triage_audit_logs"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    age_years = Column(Integer, nullable=False, default=0)
    sex = Column(String, nullable=False, default="")
    weight_kg = Column(Float, nullable=False, default=0)
    pregnant = Column(Boolean, nullable=False, default=False)
    symptoms = Column(Text, nullable=False, default="")
    duration_text = Column(String, nullable=False, default="")
    language = Column(String, nullable=False, default="ar")

    risk_level = Column(String, nullable=True)
    suggested_specialty = Column(String, nullable=True)
    red_flags = Column(JSON, nullable=False, default=list)
    follow_up_questions = Column(JSON, nullable=False, default=list)
    self_care = Column(JSON, nullable=False, default=list)
    seek_urgent_care_if = Column(JSON, nullable=False, default=list)
    summary_for_doctor = Column(Text, nullable=False, default="")

    model_name = Column(String, nullable=False)
    moderation_flagged = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, index=True)
    error_code = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
