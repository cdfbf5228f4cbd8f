"""
Role Access Control
Single policy table for which roles may invoke which chat operations.

Participant / ownership checks (is this user in the room, is this doctor the
target of the request) depend on the entity and stay in the services; this
module only answers "may a user with this role call this operation at all".
"""

from typing import Dict, FrozenSet, Tuple

from sihha.core.error_handling import AuthorizationError
from sihha.models.user import User, ROLE_PATIENT, ROLE_DOCTOR

PATIENT_ONLY = frozenset({ROLE_PATIENT})
DOCTOR_ONLY = frozenset({ROLE_DOCTOR})
ANY_ROLE = frozenset({ROLE_PATIENT, ROLE_DOCTOR})

# operation -> (allowed roles, message shown when denied)
OPERATION_ROLES: Dict[str, Tuple[FrozenSet[str], str]] = {
    "room.create_or_get": (PATIENT_ONLY, "Only patients can start consultations."),
    "room.with_doctor": (PATIENT_ONLY, "Only patients can access this endpoint."),
    "room.read": (ANY_ROLE, "No access to this room."),
    "room.presence": (ANY_ROLE, "No access to this room."),
    "room.close": (DOCTOR_ONLY, "Only the doctor can close this room."),

    "message.read": (ANY_ROLE, "No access to this room."),
    "message.send": (ANY_ROLE, "No access to this room."),

    "live.status": (ANY_ROLE, "No access to this room."),
    "live.negotiate": (ANY_ROLE, "No access to this room."),
    "live.join": (ANY_ROLE, "No access to this room."),
    "live.signal": (ANY_ROLE, "No access to this room."),

    "consultation.create": (PATIENT_ONLY, "Only patients can create consultation requests."),
    "consultation.list_mine": (PATIENT_ONLY, "Only patients can access this endpoint."),
    "consultation.inbox": (DOCTOR_ONLY, "Only doctors can access this endpoint."),
    "consultation.accept": (DOCTOR_ONLY, "Only doctors can accept consultation requests."),
    "consultation.reject": (DOCTOR_ONLY, "Only doctors can reject consultation requests."),
    "consultation.transfer": (DOCTOR_ONLY, "Only doctors can transfer consultation requests."),
    "consultation.edit": (DOCTOR_ONLY, "Only doctors can update consultation requests."),
    "consultation.read_for_room": (ANY_ROLE, "No access to this room."),

    "medical_record.read": (ANY_ROLE, "No access to this room."),
    "medical_record.update": (DOCTOR_ONLY, "Only the room doctor can update medical record."),

    "doctor_profile.update": (DOCTOR_ONLY, "Only doctors can update this profile."),
}


def authorize(user: User, operation: str) -> User:
    """
    Raise AuthorizationError unless the user's role may call the operation.

    Unknown operations are denied.
    """
    allowed, message = OPERATION_ROLES.get(operation, (frozenset(), "Operation not permitted."))
    if user is None or user.role not in allowed:
        raise AuthorizationError("forbidden", message)
    return user
