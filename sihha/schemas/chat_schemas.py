"""
Request bodies for the chat API.

Fields are loosely typed on purpose where the services validate them and
answer with a field-specific error code; the mobile client sends camelCase.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Auth / users

class SignupBody(CamelModel):
    name: Any = None
    phone_number: Any = None
    password: Any = None
    role: Any = None


class SigninBody(CamelModel):
    phone_number: Any = None
    password: Any = None


class ChangePasswordBody(CamelModel):
    current_password: Any = None
    new_password: Any = None


class DoctorProfileBody(CamelModel):
    specialty: Any = None
    hospital_name: Any = None
    experience_years: Any = None
    study_years: Any = None


# Rooms / messages

class CreateRoomBody(CamelModel):
    doctor_id: Any = None


class PresenceBody(CamelModel):
    is_active: bool = True


class TextMessageBody(CamelModel):
    text: Any = None


class AudioMessageBody(CamelModel):
    audio_url: Any = None
    duration_seconds: Any = None


class ImageMessageBody(CamelModel):
    image_url: Any = None


class LiveSignalBody(CamelModel):
    content: Any = None


# Consultation requests

class ConsultationRequestBody(CamelModel):
    doctor_id: Any = None
    subject_type: Any = None
    subject_name: Any = None
    age_years: Any = None
    gender: Any = None
    weight_kg: Any = None
    state_code: Any = None
    spoken_language: Any = None
    symptoms: Any = None


class ConsultationEditBody(CamelModel):
    subject_type: Any = None
    subject_name: Any = None
    age_years: Any = None
    gender: Any = None
    weight_kg: Any = None
    state_code: Any = None
    spoken_language: Any = None
    symptoms: Any = None


class TransferBody(CamelModel):
    doctor_id: Any = None


# Admin

class AdminCreateUserBody(CamelModel):
    name: Any = None
    phone_number: Any = None
    password: Any = None
    role: Any = None
    specialty: Any = None
    hospital_name: Any = None
    experience_years: Any = None
    study_years: Any = None


class UserStatusBody(CamelModel):
    disabled: bool = False


class ResetPasswordBody(CamelModel):
    new_password: Any = None


# Triage

class TriageBody(CamelModel):
    age: Any = None
    sex: Any = None
    weight_kg: Any = None
    pregnant: Optional[Any] = None
    symptoms: Any = None
    duration: Any = None
    language: Optional[str] = None


# Medical records

class MedicalRecordBody(CamelModel):
    """Only the fields a client actually sends are applied."""
    allergies: Any = None
    chronic_diseases: Any = None
    diagnosis: Any = None
    prescribed_medications: Any = None
    secret_notes: Any = None
    prescription_pdf_url: Any = None
