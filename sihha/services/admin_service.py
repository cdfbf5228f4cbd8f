"""
Admin dashboard and user management.

Every count excludes the built-in admin account. Day / month / year windows
are UTC calendar boundaries.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, case, or_
from sqlalchemy.orm import Session

from sihha.config import settings
from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import AuthorizationError, NotFoundError, ValidationError
from sihha.core.logging import log_audit
from sihha.models.consultation import ConsultationRequest
from sihha.models.live_session import LiveSession
from sihha.models.medical_record import MedicalRecordEntry, PatientMedicalRecord
from sihha.models.message import Message
from sihha.models.presence import AppPresence, RoomPresence, UserDailyActivity
from sihha.models.room import Room
from sihha.models.triage import TriageAuditLog
from sihha.models.user import User, ROLE_DOCTOR, ROLE_PATIENT
from sihha.services.user_service import UserService, serialize_user
from sihha.utils.security import get_password_hash

CURRENT_VISITORS_LIMIT = 100


def utc_boundaries(now: datetime) -> Dict[str, datetime]:
    day = datetime(now.year, now.month, now.day)
    return {
        "day": day,
        "month": datetime(now.year, now.month, 1),
        "year": datetime(now.year, 1, 1),
    }


class AdminService:
    def __init__(self, db: Session, clock: Clock = utcnow, online_window_seconds: Optional[int] = None):
        self.db = db
        self.clock = clock
        if online_window_seconds is None:
            online_window_seconds = settings.APP_ONLINE_WINDOW_SECONDS
        self.online_window = timedelta(seconds=online_window_seconds)

    def _not_admin(self):
        return User.phone_number != settings.ADMIN_PHONE_NUMBER

    def _get_user(self, user_id) -> User:
        user_id = str(user_id or "").strip()
        if not user_id:
            raise ValidationError("user-id-required", "userId is required.")
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("user-not-found", "User not found.")
        return user

    def _last_seen(self, user_id: str):
        presence = self.db.get(AppPresence, user_id)
        return presence.last_seen_at if presence else None

    def list_users(self) -> List[Dict]:
        rows = (
            self.db.query(User, AppPresence.last_seen_at)
            .outerjoin(AppPresence, AppPresence.user_id == User.id)
            .order_by(User.created_at.desc())
            .all()
        )
        return [serialize_user(user, last_seen) for user, last_seen in rows]

    def _visitors_since(self, first_date: str, exact: bool = False) -> int:
        date_filter = (
            UserDailyActivity.activity_date == first_date
            if exact
            else UserDailyActivity.activity_date >= first_date
        )
        return (
            self.db.query(func.count(func.distinct(UserDailyActivity.user_id)))
            .join(User, User.id == UserDailyActivity.user_id)
            .filter(date_filter, self._not_admin())
            .scalar()
        ) or 0

    def _doctor_stats(self, bounds: Dict[str, datetime]) -> List[Dict]:
        def patients_since(start):
            return func.count(func.distinct(case((Room.created_at >= start, Room.patient_id))))

        def rooms_since(start):
            return func.coalesce(func.sum(case((Room.created_at >= start, 1), else_=0)), 0)

        rows = (
            self.db.query(
                User,
                patients_since(bounds["day"]).label("patients_today"),
                patients_since(bounds["month"]).label("patients_month"),
                patients_since(bounds["year"]).label("patients_year"),
                rooms_since(bounds["day"]).label("consultations_today"),
                rooms_since(bounds["month"]).label("consultations_month"),
                rooms_since(bounds["year"]).label("consultations_year"),
            )
            .outerjoin(Room, Room.doctor_id == User.id)
            .filter(User.role == ROLE_DOCTOR, self._not_admin())
            .group_by(User.id)
            .all()
        )
        doctors = [
            {
                "id": user.id,
                "name": user.name,
                "phoneNumber": user.phone_number,
                "photoUrl": user.photo_url or "",
                "specialty": user.specialty or "",
                "hospitalName": user.hospital_name or "",
                "isDisabled": bool(user.is_disabled),
                "patientsToday": int(p_day or 0),
                "patientsMonth": int(p_month or 0),
                "patientsYear": int(p_year or 0),
                "consultationsToday": int(c_day or 0),
                "consultationsMonth": int(c_month or 0),
                "consultationsYear": int(c_year or 0),
                "_created_at": user.created_at,
            }
            for user, p_day, p_month, p_year, c_day, c_month, c_year in rows
        ]
        doctors.sort(
            key=lambda d: (d["patientsYear"], d["patientsMonth"], d["patientsToday"], d["_created_at"]),
            reverse=True,
        )
        for doctor in doctors:
            del doctor["_created_at"]
        return doctors

    def dashboard(self) -> Dict:
        now = self.clock()
        bounds = utc_boundaries(now)
        online_since = now - self.online_window

        totals = (
            self.db.query(
                func.count(User.id),
                func.coalesce(func.sum(case((User.role == ROLE_DOCTOR, 1), else_=0)), 0),
                func.coalesce(func.sum(case((User.role == ROLE_PATIENT, 1), else_=0)), 0),
                func.coalesce(func.sum(case((User.is_disabled.is_(True), 1), else_=0)), 0),
            )
            .filter(self._not_admin())
            .one()
        )

        current_online = (
            self.db.query(func.count(AppPresence.user_id))
            .join(User, User.id == AppPresence.user_id)
            .filter(AppPresence.last_seen_at >= online_since, self._not_admin(), User.is_disabled.is_(False))
            .scalar()
        ) or 0

        visitor_rows = (
            self.db.query(User, AppPresence.last_seen_at)
            .join(AppPresence, AppPresence.user_id == User.id)
            .filter(AppPresence.last_seen_at >= online_since, self._not_admin())
            .order_by(AppPresence.last_seen_at.desc())
            .limit(CURRENT_VISITORS_LIMIT)
            .all()
        )

        return {
            "summary": {
                "totalUsers": int(totals[0] or 0),
                "doctorsCount": int(totals[1] or 0),
                "patientsCount": int(totals[2] or 0),
                "disabledUsersCount": int(totals[3] or 0),
            },
            "visitors": {
                "today": self._visitors_since(bounds["day"].date().isoformat(), exact=True),
                "month": self._visitors_since(bounds["month"].date().isoformat()),
                "year": self._visitors_since(bounds["year"].date().isoformat()),
                "currentOnline": int(current_online),
            },
            "doctors": self._doctor_stats(bounds),
            "currentVisitors": [
                {
                    "id": user.id,
                    "name": user.name,
                    "phoneNumber": user.phone_number,
                    "role": user.role,
                    "photoUrl": user.photo_url or "",
                    "isDisabled": bool(user.is_disabled),
                    "lastSeenAt": to_iso(last_seen),
                }
                for user, last_seen in visitor_rows
            ],
        }

    def create_user(self, admin: User, payload: Dict) -> User:
        user = UserService(self.db, self.clock).create_user(
            payload.get("name"),
            payload.get("phone_number"),
            payload.get("password"),
            payload.get("role"),
            min_password_length=4,
            profile=payload,
        )
        log_audit("admin.user_created", admin.id, {"target_user_id": user.id, "role": user.role})
        return user

    def set_disabled(self, admin: User, user_id, disabled: bool) -> Dict:
        user = self._get_user(user_id)
        if user.is_admin or user.phone_number == settings.ADMIN_PHONE_NUMBER:
            raise AuthorizationError("cannot-disable-admin", "Admin account cannot be disabled.")
        if user.id == admin.id:
            raise AuthorizationError("cannot-disable-self", "You cannot disable your own account.")

        user.is_disabled = bool(disabled)
        user.disabled_at = self.clock() if disabled else None
        self.db.commit()
        log_audit("admin.user_status", admin.id, {"target_user_id": user.id, "disabled": bool(disabled)})
        return serialize_user(user, self._last_seen(user.id))

    def reset_password(self, admin: User, user_id, new_password) -> None:
        new_password = str(new_password or "")
        if not str(user_id or "").strip():
            raise ValidationError("user-id-required", "userId is required.")
        if len(new_password) < 4:
            raise ValidationError("weak-password", "Password must be at least 4 characters.")
        user = self._get_user(user_id)
        user.password_hash = get_password_hash(new_password)
        self.db.commit()
        log_audit("admin.password_reset", admin.id, {"target_user_id": user.id})

    def delete_user(self, admin: User, user_id) -> None:
        """Delete a user and everything hanging off them: rooms, messages, presence, requests, records."""
        user_id = str(user_id or "").strip()
        if not user_id:
            raise ValidationError("user-id-required", "userId is required.")
        if user_id == admin.id:
            raise AuthorizationError("cannot-delete-self", "Admin cannot delete own account.")
        user = self._get_user(user_id)
        if user.is_admin or user.phone_number == settings.ADMIN_PHONE_NUMBER:
            raise AuthorizationError("cannot-delete-admin", "Cannot delete the main admin account.")

        room_ids = [
            room_id
            for (room_id,) in self.db.query(Room.id).filter(
                or_(Room.patient_id == user_id, Room.doctor_id == user_id)
            )
        ]
        q = self.db.query
        q(Message).filter(or_(Message.sender_id == user_id, Message.room_id.in_(room_ids))).delete(
            synchronize_session=False
        )
        q(RoomPresence).filter(or_(RoomPresence.user_id == user_id, RoomPresence.room_id.in_(room_ids))).delete(
            synchronize_session=False
        )
        q(LiveSession).filter(LiveSession.room_id.in_(room_ids)).delete(synchronize_session=False)
        q(MedicalRecordEntry).filter(
            or_(
                MedicalRecordEntry.patient_id == user_id,
                MedicalRecordEntry.doctor_id == user_id,
                MedicalRecordEntry.room_id.in_(room_ids),
            )
        ).delete(synchronize_session=False)
        q(PatientMedicalRecord).filter(PatientMedicalRecord.patient_id == user_id).delete(synchronize_session=False)
        q(ConsultationRequest).filter(
            or_(ConsultationRequest.patient_id == user_id, ConsultationRequest.target_doctor_id == user_id)
        ).delete(synchronize_session=False)
        q(ConsultationRequest).filter(ConsultationRequest.responded_by_doctor_id == user_id).update(
            {ConsultationRequest.responded_by_doctor_id: None}, synchronize_session=False
        )
        q(ConsultationRequest).filter(ConsultationRequest.transferred_by_doctor_id == user_id).update(
            {ConsultationRequest.transferred_by_doctor_id: None}, synchronize_session=False
        )
        q(Room).filter(Room.id.in_(room_ids)).delete(synchronize_session=False)
        q(AppPresence).filter(AppPresence.user_id == user_id).delete(synchronize_session=False)
        q(UserDailyActivity).filter(UserDailyActivity.user_id == user_id).delete(synchronize_session=False)
        q(TriageAuditLog).filter(TriageAuditLog.user_id == user_id).update(
            {TriageAuditLog.user_id: None}, synchronize_session=False
        )
        q(User).filter(User.id == user_id).delete(synchronize_session=False)
        self.db.commit()

        log_audit("admin.user_deleted", admin.id, {"target_user_id": user_id, "rooms": len(room_ids)})
