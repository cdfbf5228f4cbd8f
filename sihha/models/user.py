from sqlalchemy import Column, String, Boolean, DateTime, Integer

from sihha.core.clock import utcnow
from sihha.database import Base

ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, index=True)

    photo_url = Column(String, nullable=False, default="")
    specialty = Column(String, nullable=False, default="")
    hospital_name = Column(String, nullable=False, default="")
    experience_years = Column(Integer, nullable=False, default=0)
    study_years = Column(Integer, nullable=False, default=0)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_disabled = Column(Boolean, nullable=False, default=False)
    disabled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT
