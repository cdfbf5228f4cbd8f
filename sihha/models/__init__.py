from sihha.models.user import User
from sihha.models.room import Room
from sihha.models.consultation import ConsultationRequest
from sihha.models.live_session import LiveSession
from sihha.models.presence import RoomPresence, AppPresence, UserDailyActivity
from sihha.models.message import Message, EventKind
from sihha.models.triage import TriageAuditLog
from sihha.models.medical_record import PatientMedicalRecord, MedicalRecordEntry

__all__ = [
    "User",
    "Room",
    "ConsultationRequest",
    "LiveSession",
    "RoomPresence",
    "AppPresence",
    "UserDailyActivity",
    "Message",
    "EventKind",
    "TriageAuditLog",
    "PatientMedicalRecord",
    "MedicalRecordEntry",
]
