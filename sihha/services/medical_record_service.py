"""
Medical Record Service
Per-patient record assembled from the patient's shared background
(allergies, chronic diseases) and one entry per (room, doctor) holding that
doctor's diagnosis, prescriptions and private notes.

Any room participant may read the record of the room's patient; only the
room's doctor may write it.
"""

import re
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import AuthorizationError, ValidationError
from sihha.core.logging import log_audit
from sihha.database import upsert
from sihha.models.medical_record import MedicalRecordEntry, PatientMedicalRecord
from sihha.models.room import Room
from sihha.models.user import User, ROLE_DOCTOR
from sihha.services.access_control import authorize
from sihha.services.room_registry import RoomRegistry

# field -> (public key, max length)
PROFILE_FIELDS = {
    "allergies": ("allergies", 3000),
    "chronic_diseases": ("chronicDiseases", 3000),
}
ENTRY_FIELDS = {
    "diagnosis": ("diagnosis", 4000),
    "prescribed_medications": ("prescribedMedications", 4000),
    "secret_notes": ("secretNotes", 4000),
    "prescription_pdf_url": ("prescriptionPdfUrl", 2000),
}

_PDF_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _text(value) -> str:
    return str(value if value is not None else "").strip()


def unique_non_empty(values) -> List[str]:
    seen = set()
    result = []
    for raw in values:
        value = _text(raw)
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def normalize_update(fields: Dict[str, Any]) -> Dict[str, str]:
    """
    Trim and validate the fields present in an update.

    Absent fields are left out of the result so the stored values survive;
    a field sent as null is cleared.
    """
    known = {**PROFILE_FIELDS, **ENTRY_FIELDS}
    present = {name: _text(value) for name, value in (fields or {}).items() if name in known}
    if not present:
        raise ValidationError("medical-record-empty-update", "At least one field is required.")

    for name, (key, max_length) in known.items():
        if name in present and len(present[name]) > max_length:
            raise ValidationError("medical-record-invalid-field", f"{key} is too long.")

    pdf_url = present.get("prescription_pdf_url")
    if pdf_url and not _PDF_URL_RE.match(pdf_url):
        raise ValidationError("medical-record-invalid-pdf-url", "prescriptionPdfUrl must be a valid URL.")
    return present


def serialize_entry(entry: MedicalRecordEntry, include_secret_notes: bool) -> Dict:
    return {
        "id": entry.id,
        "patientId": entry.patient_id,
        "roomId": entry.room_id,
        "doctorId": entry.doctor_id,
        "doctorName": entry.doctor.name if entry.doctor else "",
        "diagnosis": entry.diagnosis or "",
        "prescribedMedications": entry.prescribed_medications or "",
        "secretNotes": (entry.secret_notes or "") if include_secret_notes else "",
        "prescriptionPdfUrl": entry.prescription_pdf_url or "",
        "createdAt": to_iso(entry.created_at),
        "updatedAt": to_iso(entry.updated_at),
    }


def serialize_history_room(room: Room) -> Dict:
    return {
        "roomId": room.id,
        "doctorId": room.doctor_id,
        "doctorName": room.doctor_name,
        "startedAt": to_iso(room.created_at),
        "lastUpdatedAt": to_iso(room.last_updated_at),
        "isClosed": bool(room.is_closed),
    }


class MedicalRecordService:
    def __init__(self, db: Session, clock: Clock = utcnow, rooms: Optional[RoomRegistry] = None):
        self.db = db
        self.clock = clock
        self.rooms = rooms or RoomRegistry(db, clock)

    def get_record(self, user: User, room_id: str) -> Dict:
        room = self.rooms.require_participant(user, room_id, "medical_record.read")
        return self.build_record(room.patient_id, user)

    def update_record(self, user: User, room_id: str, fields: Dict[str, Any]) -> Dict:
        """
        Write the patient background and this doctor's entry for the room.

        The patient row is always touched; the entry only when one of its
        fields is present. Both writes are single upserts keyed on the
        patient id and on (room, doctor).
        """
        room = self.rooms.require_participant(user, room_id, "medical_record.read")
        authorize(user, "medical_record.update")
        if room.doctor_id != user.id:
            raise AuthorizationError("forbidden", "Only the room doctor can update medical record.")

        present = normalize_update(fields)
        now = self.clock()

        profile_values = {name: present.get(name, "") for name in PROFILE_FIELDS}
        upsert(
            self.db,
            PatientMedicalRecord,
            {"patient_id": room.patient_id, **profile_values, "created_at": now, "updated_at": now},
            index_elements=["patient_id"],
            update_fields=[name for name in PROFILE_FIELDS if name in present] + ["updated_at"],
        )

        entry_updates = [name for name in ENTRY_FIELDS if name in present]
        if entry_updates:
            entry_values = {name: present.get(name, "") for name in ENTRY_FIELDS}
            upsert(
                self.db,
                MedicalRecordEntry,
                {
                    "id": str(uuid.uuid4()),
                    "patient_id": room.patient_id,
                    "room_id": room.id,
                    "doctor_id": user.id,
                    **entry_values,
                    "created_at": now,
                    "updated_at": now,
                },
                index_elements=["room_id", "doctor_id"],
                update_fields=entry_updates + ["updated_at"],
            )
        self.db.commit()

        log_audit("medical_record.updated", user.id, {"room_id": room.id, "fields": sorted(present)})
        return self.build_record(room.patient_id, user)

    def build_record(self, patient_id: str, viewer: User) -> Dict:
        """Record of one patient as seen by viewer; secret notes only reach their author."""
        profile = (
            self.db.query(PatientMedicalRecord)
            .populate_existing()
            .filter(PatientMedicalRecord.patient_id == patient_id)
            .first()
        )
        entries = (
            self.db.query(MedicalRecordEntry)
            .populate_existing()
            .filter(MedicalRecordEntry.patient_id == patient_id)
            .order_by(MedicalRecordEntry.updated_at.desc())
            .all()
        )
        history = (
            self.db.query(Room)
            .filter(Room.patient_id == patient_id)
            .order_by(Room.last_updated_at.desc())
            .all()
        )

        def can_see_secret(entry: MedicalRecordEntry) -> bool:
            return viewer.role == ROLE_DOCTOR and entry.doctor_id == viewer.id

        latest_pdf = next((_text(e.prescription_pdf_url) for e in entries if _text(e.prescription_pdf_url)), None)
        if profile is not None:
            updated_at = profile.updated_at
        elif entries:
            updated_at = entries[0].updated_at
        else:
            updated_at = None

        return {
            "patientId": patient_id,
            "allergies": profile.allergies if profile else "",
            "chronicDiseases": profile.chronic_diseases if profile else "",
            "consultationHistory": [serialize_history_room(room) for room in history],
            "previousDiagnoses": unique_non_empty(e.diagnosis for e in entries),
            "prescribedMedications": unique_non_empty(e.prescribed_medications for e in entries),
            "latestPrescriptionPdfUrl": latest_pdf,
            "updatedAt": to_iso(updated_at),
            "entries": [serialize_entry(e, can_see_secret(e)) for e in entries],
        }
