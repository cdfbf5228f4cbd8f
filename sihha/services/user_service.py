"""
Account service: signup, signin, password changes, doctor profiles and the
built-in admin account.
"""

import math
import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sihha.config import settings
from sihha.core.clock import Clock, utcnow, to_iso
from sihha.core.error_handling import (
    AuthorizationError,
    ConflictError,
    UnauthenticatedError,
    ValidationError,
)
from sihha.core.logging import log_audit, log_info
from sihha.models.user import User, ROLE_DOCTOR, ROLE_PATIENT
from sihha.services.access_control import authorize
from sihha.utils.security import (
    create_access_token,
    get_password_hash,
    to_display_phone,
    verify_password,
)

ADMIN_USER_ID = "admin-root"


def serialize_user(user: Optional[User], last_seen_at=None) -> Optional[Dict]:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "phoneNumber": user.phone_number,
        "role": user.role,
        "createdAt": to_iso(user.created_at),
        "photoUrl": user.photo_url or "",
        "specialty": user.specialty or "",
        "hospitalName": user.hospital_name or "",
        "experienceYears": user.experience_years or 0,
        "studyYears": user.study_years or 0,
        "isDisabled": bool(user.is_disabled),
        "disabledAt": to_iso(user.disabled_at),
        "lastSeenAt": to_iso(last_seen_at),
        "isAdmin": bool(user.is_admin),
    }


def _whole_years(value) -> Optional[int]:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return math.floor(number)


class UserService:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def find_by_phone(self, display_phone: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone_number == display_phone).first()

    def create_user(
        self,
        name,
        phone_number,
        password,
        role,
        min_password_length: int = 6,
        profile: Optional[Dict] = None,
    ) -> User:
        name = str(name or "").strip()
        password = str(password or "")
        role = ROLE_DOCTOR if role == ROLE_DOCTOR else ROLE_PATIENT
        display_phone = to_display_phone(phone_number)

        if len(name) < 3:
            raise ValidationError("invalid-name", "Name must be at least 3 characters.")
        if len(password) < min_password_length:
            raise ValidationError(
                "weak-password", f"Password must be at least {min_password_length} characters."
            )
        if display_phone == settings.ADMIN_PHONE_NUMBER:
            raise ConflictError("reserved-phone", "This phone number is reserved for admin.")
        if self.find_by_phone(display_phone) is not None:
            raise ConflictError("phone-already-in-use", "Phone number already used.")

        profile = profile or {}
        is_doctor = role == ROLE_DOCTOR
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            phone_number=display_phone,
            password_hash=get_password_hash(password),
            role=role,
            specialty=str(profile.get("specialty") or "").strip() if is_doctor else "",
            hospital_name=str(profile.get("hospital_name") or "").strip() if is_doctor else "",
            experience_years=max(0, _whole_years(profile.get("experience_years")) or 0) if is_doctor else 0,
            study_years=max(0, _whole_years(profile.get("study_years")) or 0) if is_doctor else 0,
            created_at=self.clock(),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("phone-already-in-use", "Phone number already used.")
        return user

    def signup(self, name, phone_number, password, role) -> Tuple[str, User]:
        user = self.create_user(name, phone_number, password, role)
        log_audit("auth.signup", user.id, {"role": user.role})
        return create_access_token(user.id, user.role), user

    def signin(self, phone_number, password) -> Tuple[str, User]:
        user = self.find_by_phone(to_display_phone(phone_number))
        if user is None:
            raise UnauthenticatedError("invalid-credential", "Invalid credentials.")
        if user.is_disabled:
            raise AuthorizationError("account-disabled", "This account has been disabled.")
        if not verify_password(str(password or ""), user.password_hash):
            raise UnauthenticatedError("invalid-credential", "Invalid credentials.")
        return create_access_token(user.id, user.role), user

    def change_password(self, user: User, current_password, new_password) -> None:
        new_password = str(new_password or "")
        if len(new_password) < 8:
            raise ValidationError("weak-password", "New password must be at least 8 characters.")
        if not verify_password(str(current_password or ""), user.password_hash):
            raise ValidationError("wrong-password", "Current password is incorrect.")
        user.password_hash = get_password_hash(new_password)
        self.db.commit()
        log_audit("auth.password_changed", user.id, {})

    def list_doctors(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.role == ROLE_DOCTOR, User.is_disabled.is_(False))
            .order_by(User.created_at.desc())
            .all()
        )

    def update_doctor_profile(self, user: User, specialty, hospital_name, experience_years, study_years) -> User:
        authorize(user, "doctor_profile.update")
        specialty = str(specialty or "").strip()
        hospital_name = str(hospital_name or "").strip()
        experience = _whole_years(experience_years)
        study = _whole_years(study_years)

        if not specialty or not hospital_name:
            raise ValidationError(
                "doctor-profile-required-fields", "Specialty and hospital name are required."
            )
        if experience is None or study is None or experience < 0 or study < 0:
            raise ValidationError("doctor-profile-invalid-years", "Years must be zero or positive.")

        user.specialty = specialty
        user.hospital_name = hospital_name
        user.experience_years = experience
        user.study_years = study
        self.db.commit()
        return user

    def ensure_admin_account(self) -> User:
        """Create the built-in admin on first start; re-enable and rename it otherwise."""
        admin = self.find_by_phone(settings.ADMIN_PHONE_NUMBER)
        if admin is None:
            admin = User(
                id=ADMIN_USER_ID,
                name=settings.ADMIN_DEFAULT_NAME,
                phone_number=settings.ADMIN_PHONE_NUMBER,
                password_hash=get_password_hash(settings.ADMIN_DEFAULT_PASSWORD),
                role=ROLE_PATIENT,
                is_admin=True,
                created_at=self.clock(),
            )
            self.db.add(admin)
            log_info("Created built-in admin account", logger_name="startup")
        else:
            admin.name = settings.ADMIN_DEFAULT_NAME
            admin.is_admin = True
            admin.is_disabled = False
            admin.disabled_at = None
        self.db.commit()
        return admin
