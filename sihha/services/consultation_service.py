"""
Consultation Request Workflow
A patient asks one doctor to open a consultation. The target doctor accepts
(which creates or reopens the pair's room), rejects, edits the intake, or
hands the request to another doctor while it is still pending.

    pending -> accepted      (terminal)
    pending -> rejected      (terminal)
    pending -> pending       (transfer: target doctor changes)
"""

import math
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from sihha.core.logging import log_audit
from sihha.models.consultation import (
    ConsultationRequest,
    STATUS_PENDING,
    STATUS_ACCEPTED,
    STATUS_REJECTED,
    SUBJECT_SELF,
    SUBJECT_OTHER,
    GENDERS,
    SPOKEN_LANGUAGES,
    CHAD_STATE_CODES,
)
from sihha.models.room import Room
from sihha.models.user import User, ROLE_DOCTOR
from sihha.services.access_control import authorize
from sihha.services.room_registry import RoomRegistry, build_room_id

INTAKE_FIELDS = (
    "subject_type",
    "subject_name",
    "age_years",
    "gender",
    "weight_kg",
    "state_code",
    "spoken_language",
    "symptoms",
)


def _text(value) -> str:
    return str(value if value is not None else "").strip()


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_consultation_payload(payload: Dict[str, Any], patient_name: str) -> Dict[str, Any]:
    """
    Validate a consultation intake and return it in stored form.

    Raises ValidationError with a field-specific code on the first bad field.
    """
    doctor_id = _text(payload.get("doctor_id"))
    subject_type = _text(payload.get("subject_type"))
    gender = _text(payload.get("gender"))
    state_code = _text(payload.get("state_code")).lower()
    spoken_language = _text(payload.get("spoken_language")).lower()
    symptoms = _text(payload.get("symptoms"))
    age = _number(payload.get("age_years"))
    weight = _number(payload.get("weight_kg"))

    if not doctor_id:
        raise ValidationError("doctor-required", "doctorId is required.")
    if subject_type not in (SUBJECT_SELF, SUBJECT_OTHER):
        raise ValidationError("consultation-subject-type-invalid", "subjectType must be self or other.")

    subject_name = _text(patient_name) if subject_type == SUBJECT_SELF else _text(payload.get("subject_name"))
    if len(subject_name) < 2:
        raise ValidationError("consultation-subject-name-required", "Subject name is required.")
    if age is None or not age.is_integer() or age < 0 or age > 120:
        raise ValidationError("consultation-age-invalid", "ageYears must be an integer between 0 and 120.")
    if gender not in GENDERS:
        raise ValidationError("consultation-gender-invalid", "gender must be male or female.")
    if weight is None or weight < 1 or weight > 400:
        raise ValidationError("consultation-weight-invalid", "weightKg must be between 1 and 400.")
    if state_code not in CHAD_STATE_CODES:
        raise ValidationError("consultation-state-invalid", "stateCode is invalid.")
    if spoken_language not in SPOKEN_LANGUAGES:
        raise ValidationError("consultation-language-invalid", "spokenLanguage must be ar, fr, or bilingual.")
    if len(symptoms) < 5 or len(symptoms) > 2000:
        raise ValidationError("consultation-symptoms-invalid", "symptoms must be between 5 and 2000 characters.")

    return {
        "doctor_id": doctor_id,
        "subject_type": subject_type,
        "subject_name": subject_name,
        "age_years": int(age),
        "gender": gender,
        "weight_kg": weight,
        "state_code": state_code,
        "spoken_language": spoken_language,
        "symptoms": symptoms,
    }


def serialize_request(request: Optional[ConsultationRequest]) -> Optional[Dict]:
    if request is None:
        return None
    return {
        "id": request.id,
        "patientId": request.patient_id,
        "targetDoctorId": request.target_doctor_id,
        "subjectType": request.subject_type,
        "subjectName": request.subject_name,
        "ageYears": int(request.age_years or 0),
        "gender": request.gender,
        "weightKg": float(request.weight_kg or 0),
        "stateCode": request.state_code,
        "spokenLanguage": request.spoken_language,
        "symptoms": request.symptoms,
        "status": request.status,
        "createdAt": to_iso(request.created_at),
        "updatedAt": to_iso(request.updated_at),
        "respondedAt": to_iso(request.responded_at),
        "respondedByDoctorId": request.responded_by_doctor_id,
        "transferredByDoctorId": request.transferred_by_doctor_id,
        "linkedRoomId": request.linked_room_id,
        "patientName": request.patient.name if request.patient else "",
        "patientPhotoUrl": request.patient.photo_url if request.patient else "",
        "targetDoctorName": request.target_doctor.name if request.target_doctor else "",
        "targetDoctorPhotoUrl": request.target_doctor.photo_url if request.target_doctor else "",
        "respondedByDoctorName": request.responded_by_doctor.name if request.responded_by_doctor else None,
        "transferredByDoctorName": request.transferred_by_doctor.name if request.transferred_by_doctor else None,
    }


class ConsultationService:
    def __init__(self, db: Session, clock: Clock = utcnow, rooms: Optional[RoomRegistry] = None):
        self.db = db
        self.clock = clock
        self.rooms = rooms or RoomRegistry(db, clock)

    def _find_doctor(self, doctor_id: str) -> User:
        doctor = self.db.get(User, doctor_id)
        if doctor is None or doctor.role != ROLE_DOCTOR:
            raise NotFoundError("doctor-not-found", "Doctor not found.")
        return doctor

    def _pair_query(self, patient_id: str, doctor_id: str, *statuses: str):
        return self.db.query(ConsultationRequest).filter(
            ConsultationRequest.patient_id == patient_id,
            ConsultationRequest.target_doctor_id == doctor_id,
            ConsultationRequest.status.in_(statuses),
        )

    def _targeted_request(self, doctor: User, request_id: str, operation: str) -> ConsultationRequest:
        authorize(doctor, operation)
        request = self.db.get(ConsultationRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundError("consultation-request-not-found", "Consultation request not found.")
        if request.target_doctor_id != doctor.id:
            raise AuthorizationError("forbidden", "No access to this consultation request.")
        return request

    @staticmethod
    def _require_pending(request: ConsultationRequest) -> None:
        if request.status != STATUS_PENDING:
            raise ConflictError("consultation-request-not-pending", "Consultation request is not pending.")

    def create(self, patient: User, payload: Dict[str, Any]) -> ConsultationRequest:
        authorize(patient, "consultation.create")
        normalized = normalize_consultation_payload(payload, patient.name)
        doctor = self._find_doctor(normalized["doctor_id"])

        existing_room = self.rooms.find(build_room_id(patient.id, doctor.id))
        if existing_room is not None and not existing_room.is_closed:
            raise ConflictError("consultation-room-exists", "A consultation room already exists for this doctor.")
        if self._pair_query(patient.id, doctor.id, STATUS_PENDING).first() is not None:
            raise ConflictError("consultation-request-pending", "A pending request already exists for this doctor.")
        if self._pair_query(patient.id, doctor.id, STATUS_PENDING, STATUS_ACCEPTED).first() is not None:
            raise ConflictError("consultation-request-exists", "An existing consultation with this doctor already exists.")

        now = self.clock()
        request = ConsultationRequest(
            id=str(uuid.uuid4()),
            patient_id=patient.id,
            target_doctor_id=doctor.id,
            subject_type=normalized["subject_type"],
            subject_name=normalized["subject_name"],
            age_years=normalized["age_years"],
            gender=normalized["gender"],
            weight_kg=normalized["weight_kg"],
            state_code=normalized["state_code"],
            spoken_language=normalized["spoken_language"],
            symptoms=normalized["symptoms"],
            status=STATUS_PENDING,
            created_at=now,
            updated_at=now,
        )
        self.db.add(request)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("consultation-request-pending", "A pending request already exists for this doctor.")

        log_audit("consultation.created", patient.id, {"request_id": request.id, "doctor_id": doctor.id})
        return request

    def accept(self, doctor: User, request_id: str) -> Tuple[ConsultationRequest, Room]:
        request = self._targeted_request(doctor, request_id, "consultation.accept")
        self._require_pending(request)

        patient = self.db.get(User, request.patient_id)
        if patient is None:
            raise NotFoundError("consultation-user-not-found", "Related user not found.")

        now = self.clock()
        room = self.rooms.ensure_room(patient, doctor, actor=doctor)
        request.status = STATUS_ACCEPTED
        request.linked_room_id = room.id
        request.responded_at = now
        request.responded_by_doctor_id = doctor.id
        request.updated_at = now
        # Accepting always leaves the room open, even if it was closed after
        # ensure_room ran.
        room.is_closed = False
        room.last_updated_at = now
        self.db.commit()

        log_audit("consultation.accepted", doctor.id, {"request_id": request.id, "room_id": room.id})
        return request, self.rooms.find(room.id)

    def reject(self, doctor: User, request_id: str) -> ConsultationRequest:
        request = self._targeted_request(doctor, request_id, "consultation.reject")
        self._require_pending(request)

        now = self.clock()
        request.status = STATUS_REJECTED
        request.responded_at = now
        request.responded_by_doctor_id = doctor.id
        request.updated_at = now
        self.db.commit()

        log_audit("consultation.rejected", doctor.id, {"request_id": request.id})
        return request

    def transfer(self, doctor: User, request_id: str, new_doctor_id) -> ConsultationRequest:
        request = self._targeted_request(doctor, request_id, "consultation.transfer")
        self._require_pending(request)

        new_doctor_id = _text(new_doctor_id)
        if not new_doctor_id:
            raise ValidationError("doctor-required", "doctorId is required.")
        if new_doctor_id == doctor.id:
            raise ValidationError("consultation-transfer-same-doctor", "Cannot transfer to the same doctor.")
        self._find_doctor(new_doctor_id)

        clash = self._pair_query(request.patient_id, new_doctor_id, STATUS_PENDING).filter(
            ConsultationRequest.id != request.id
        ).first()
        if clash is not None:
            raise ConflictError("consultation-request-pending", "A pending request already exists for this doctor.")

        request.target_doctor_id = new_doctor_id
        request.transferred_by_doctor_id = doctor.id
        request.updated_at = self.clock()
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("consultation-request-pending", "A pending request already exists for this doctor.")

        log_audit(
            "consultation.transferred",
            doctor.id,
            {"request_id": request.id, "to_doctor_id": new_doctor_id},
        )
        return request

    def edit(self, doctor: User, request_id: str, fields: Dict[str, Any]) -> ConsultationRequest:
        request = self._targeted_request(doctor, request_id, "consultation.edit")
        if request.status == STATUS_REJECTED:
            raise ConflictError("consultation-request-rejected", "Cannot update a rejected request.")

        merged = {name: getattr(request, name) for name in INTAKE_FIELDS}
        merged.update({k: v for k, v in fields.items() if k in INTAKE_FIELDS and v is not None})
        merged["doctor_id"] = request.target_doctor_id
        patient_name = request.patient.name if request.patient else ""
        normalized = normalize_consultation_payload(merged, patient_name)

        for name in INTAKE_FIELDS:
            setattr(request, name, normalized[name])
        request.updated_at = self.clock()
        self.db.commit()

        log_audit("consultation.edited", doctor.id, {"request_id": request.id})
        return request

    def list_for_patient(self, patient: User) -> List[ConsultationRequest]:
        authorize(patient, "consultation.list_mine")
        return (
            self.db.query(ConsultationRequest)
            .filter(ConsultationRequest.patient_id == patient.id)
            .order_by(ConsultationRequest.updated_at.desc())
            .all()
        )

    def inbox_for_doctor(self, doctor: User) -> List[ConsultationRequest]:
        authorize(doctor, "consultation.inbox")
        return (
            self.db.query(ConsultationRequest)
            .filter(
                ConsultationRequest.target_doctor_id == doctor.id,
                ConsultationRequest.status == STATUS_PENDING,
            )
            .order_by(ConsultationRequest.updated_at.desc())
            .all()
        )

    def get_for_room(self, user: User, room_id: str) -> Optional[ConsultationRequest]:
        """The request linked to the room, else the latest one for the same pair."""
        room = self.rooms.require_participant(user, room_id, "consultation.read_for_room")
        linked = (
            self.db.query(ConsultationRequest)
            .filter(ConsultationRequest.linked_room_id == room.id)
            .order_by(ConsultationRequest.updated_at.desc())
            .first()
        )
        if linked is not None:
            return linked
        return (
            self.db.query(ConsultationRequest)
            .filter(
                ConsultationRequest.patient_id == room.patient_id,
                ConsultationRequest.target_doctor_id == room.doctor_id,
            )
            .order_by(ConsultationRequest.updated_at.desc())
            .first()
        )
