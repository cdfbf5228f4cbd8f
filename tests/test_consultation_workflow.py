"""
Tests for the consultation request workflow: create, accept, reject, transfer, edit
"""

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import intake
from sihha.core.error_handling import AuthorizationError, ConflictError, NotFoundError, ValidationError
from sihha.models.consultation import (
    ConsultationRequest,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from sihha.models.room import Room
from sihha.services.consultation_service import (
    ConsultationService,
    normalize_consultation_payload,
    serialize_request,
)
from sihha.services.room_registry import RoomRegistry, build_room_id


@pytest.fixture
def service(db, clock):
    return ConsultationService(db, clock)


class TestNormalization:
    def test_self_subject_uses_patient_name(self):
        normalized = normalize_consultation_payload(
            intake("doc-1", subject_name="Ignored", state_code="N_DJAMENA", spoken_language="FR"),
            "Amina Patient",
        )
        assert normalized["subject_name"] == "Amina Patient"
        assert normalized["state_code"] == "n_djamena"
        assert normalized["spoken_language"] == "fr"
        assert normalized["age_years"] == 34

    def test_other_subject_requires_name(self):
        with pytest.raises(ValidationError) as exc:
            normalize_consultation_payload(intake("doc-1", subject_type="other", subject_name=" x "), "Amina")
        assert exc.value.code == "consultation-subject-name-required"

    @pytest.mark.parametrize(
        "overrides, code",
        [
            ({"doctor_id": ""}, "doctor-required"),
            ({"subject_type": "family"}, "consultation-subject-type-invalid"),
            ({"age_years": 12.5}, "consultation-age-invalid"),
            ({"age_years": 121}, "consultation-age-invalid"),
            ({"age_years": "abc"}, "consultation-age-invalid"),
            ({"gender": "other"}, "consultation-gender-invalid"),
            ({"weight_kg": 0.5}, "consultation-weight-invalid"),
            ({"weight_kg": 401}, "consultation-weight-invalid"),
            ({"state_code": "paris"}, "consultation-state-invalid"),
            ({"spoken_language": "en"}, "consultation-language-invalid"),
            ({"symptoms": "pain"}, "consultation-symptoms-invalid"),
            ({"symptoms": "x" * 2001}, "consultation-symptoms-invalid"),
        ],
    )
    def test_field_specific_codes(self, overrides, code):
        with pytest.raises(ValidationError) as exc:
            normalize_consultation_payload(intake("doc-1", **overrides), "Amina Patient")
        assert exc.value.code == code

    def test_numeric_strings_are_accepted(self):
        normalized = normalize_consultation_payload(intake("doc-1", age_years="7", weight_kg="22.4"), "Amina")
        assert normalized["age_years"] == 7
        assert normalized["weight_kg"] == 22.4


class TestCreate:
    def test_creates_pending_request(self, service, patient, doctor, clock):
        request = service.create(patient, intake(doctor.id))

        assert request.status == STATUS_PENDING
        assert request.target_doctor_id == doctor.id
        assert request.subject_name == patient.name
        assert request.created_at == request.updated_at == clock()
        assert [r.id for r in service.inbox_for_doctor(doctor)] == [request.id]

    def test_only_patients_create(self, service, doctor, other_doctor):
        with pytest.raises(AuthorizationError):
            service.create(doctor, intake(other_doctor.id))

    def test_unknown_doctor(self, service, patient):
        with pytest.raises(NotFoundError) as exc:
            service.create(patient, intake("no-such-doctor"))
        assert exc.value.code == "doctor-not-found"

    def test_second_pending_request_is_refused(self, service, patient, doctor, db):
        service.create(patient, intake(doctor.id))
        with pytest.raises(ConflictError) as exc:
            service.create(patient, intake(doctor.id, symptoms="Still feverish today"))
        assert exc.value.code == "consultation-request-pending"
        assert db.query(ConsultationRequest).count() == 1

    def test_open_room_blocks_new_request(self, service, patient, doctor, db, clock):
        RoomRegistry(db, clock).create_or_get_room(patient, doctor.id)
        with pytest.raises(ConflictError) as exc:
            service.create(patient, intake(doctor.id))
        assert exc.value.code == "consultation-room-exists"

    def test_accepted_request_blocks_new_request_after_close(self, service, patient, doctor, db, clock):
        request = service.create(patient, intake(doctor.id))
        _, room = service.accept(doctor, request.id)
        RoomRegistry(db, clock).close_room(doctor, room.id)

        with pytest.raises(ConflictError) as exc:
            service.create(patient, intake(doctor.id))
        assert exc.value.code == "consultation-request-exists"

    def test_rejected_request_allows_a_new_one(self, service, patient, doctor):
        first = service.create(patient, intake(doctor.id))
        service.reject(doctor, first.id)
        second = service.create(patient, intake(doctor.id))
        assert second.id != first.id
        assert second.status == STATUS_PENDING

    def test_pending_pair_index_rejects_duplicates(self, db, patient, doctor, clock):
        """The storage layer refuses a second pending row even without the pre-check."""
        def row(request_id, status):
            return ConsultationRequest(
                id=request_id,
                patient_id=patient.id,
                target_doctor_id=doctor.id,
                subject_type="self",
                subject_name=patient.name,
                age_years=30,
                gender="female",
                weight_kg=60,
                state_code="kanem",
                spoken_language="ar",
                symptoms="Headache since morning",
                status=status,
                created_at=clock(),
                updated_at=clock(),
            )

        db.add_all([row("r-1", STATUS_REJECTED), row("r-2", STATUS_REJECTED), row("r-3", STATUS_PENDING)])
        db.commit()

        db.add(row("r-4", STATUS_PENDING))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


class TestAcceptReject:
    def test_accept_creates_room_and_links_it(self, service, patient, doctor, db, clock):
        request = service.create(patient, intake(doctor.id))
        clock.advance(45)

        accepted, room = service.accept(doctor, request.id)

        assert accepted.status == STATUS_ACCEPTED
        assert accepted.linked_room_id == room.id == build_room_id(patient.id, doctor.id)
        assert accepted.responded_by_doctor_id == doctor.id
        assert accepted.responded_at == accepted.updated_at == clock()
        assert room.is_closed is False
        assert service.inbox_for_doctor(doctor) == []

    def test_accept_twice_is_a_conflict(self, service, patient, doctor):
        request = service.create(patient, intake(doctor.id))
        service.accept(doctor, request.id)
        with pytest.raises(ConflictError) as exc:
            service.accept(doctor, request.id)
        assert exc.value.code == "consultation-request-not-pending"
        with pytest.raises(ConflictError):
            service.reject(doctor, request.id)

    def test_only_target_doctor_responds(self, service, patient, doctor, other_doctor):
        request = service.create(patient, intake(doctor.id))
        with pytest.raises(AuthorizationError):
            service.accept(other_doctor, request.id)
        with pytest.raises(AuthorizationError):
            service.reject(patient, request.id)
        with pytest.raises(NotFoundError) as exc:
            service.accept(doctor, "missing")
        assert exc.value.code == "consultation-request-not-found"

    def test_reject_has_no_room_side_effect(self, service, patient, doctor, db):
        request = service.create(patient, intake(doctor.id))
        rejected = service.reject(doctor, request.id)

        assert rejected.status == STATUS_REJECTED
        assert rejected.responded_by_doctor_id == doctor.id
        assert rejected.linked_room_id is None
        assert db.query(Room).count() == 0


class TestTransfer:
    def test_transfer_moves_pending_request(self, service, patient, doctor, other_doctor):
        request = service.create(patient, intake(doctor.id))
        moved = service.transfer(doctor, request.id, other_doctor.id)

        assert moved.status == STATUS_PENDING
        assert moved.target_doctor_id == other_doctor.id
        assert moved.transferred_by_doctor_id == doctor.id
        assert service.inbox_for_doctor(doctor) == []
        assert [r.id for r in service.inbox_for_doctor(other_doctor)] == [request.id]
        # only the new target can act on it now
        with pytest.raises(AuthorizationError):
            service.accept(doctor, request.id)

    def test_transfer_validation(self, service, patient, doctor, make_user):
        request = service.create(patient, intake(doctor.id))

        with pytest.raises(ValidationError) as exc:
            service.transfer(doctor, request.id, "")
        assert exc.value.code == "doctor-required"
        with pytest.raises(ValidationError) as exc:
            service.transfer(doctor, request.id, doctor.id)
        assert exc.value.code == "consultation-transfer-same-doctor"
        with pytest.raises(NotFoundError):
            service.transfer(doctor, request.id, make_user("patient").id)

    def test_transfer_onto_existing_pending_pair_conflicts(self, service, patient, doctor, other_doctor):
        first = service.create(patient, intake(doctor.id))
        service.create(patient, intake(other_doctor.id))

        with pytest.raises(ConflictError) as exc:
            service.transfer(doctor, first.id, other_doctor.id)
        assert exc.value.code == "consultation-request-pending"

    def test_transfer_then_accept_reopens_closed_room(self, service, patient, doctor, other_doctor, db, clock):
        """A closed room with doctor D is reopened when a request transferred to D is accepted."""
        rooms = RoomRegistry(db, clock)
        original = service.create(patient, intake(doctor.id))
        _, room = service.accept(doctor, original.id)
        rooms.close_room(doctor, room.id)
        clock.advance(3600)

        routed = service.create(patient, intake(other_doctor.id, symptoms="Back pain after a fall"))
        service.transfer(other_doctor, routed.id, doctor.id)
        accepted, reopened = service.accept(doctor, routed.id)

        assert reopened.id == room.id
        assert reopened.is_closed is False
        assert accepted.linked_room_id == room.id
        assert db.query(Room).count() == 1

        linked = service.get_for_room(patient, room.id)
        assert linked.id == routed.id


class TestEditAndQueries:
    def test_edit_merges_fields_and_renormalizes(self, service, patient, doctor, clock):
        request = service.create(patient, intake(doctor.id))
        clock.advance(5)

        edited = service.edit(doctor, request.id, {"age_years": 35, "symptoms": "  Fever, cough and fatigue  ", "gender": None})

        assert edited.age_years == 35
        assert edited.symptoms == "Fever, cough and fatigue"
        assert edited.gender == "female"
        assert edited.updated_at == clock()

    def test_edit_validates_and_refuses_rejected(self, service, patient, doctor):
        request = service.create(patient, intake(doctor.id))
        with pytest.raises(ValidationError) as exc:
            service.edit(doctor, request.id, {"weight_kg": 999})
        assert exc.value.code == "consultation-weight-invalid"

        service.reject(doctor, request.id)
        with pytest.raises(ConflictError) as exc:
            service.edit(doctor, request.id, {"age_years": 20})
        assert exc.value.code == "consultation-request-rejected"

    def test_edit_allowed_on_accepted_request(self, service, patient, doctor):
        request = service.create(patient, intake(doctor.id))
        service.accept(doctor, request.id)
        edited = service.edit(doctor, request.id, {"spoken_language": "bilingual"})
        assert edited.spoken_language == "bilingual"
        assert edited.status == STATUS_ACCEPTED

    def test_patient_list_is_newest_first(self, service, patient, doctor, other_doctor, clock):
        first = service.create(patient, intake(doctor.id))
        clock.advance(10)
        second = service.create(patient, intake(other_doctor.id))

        assert [r.id for r in service.list_for_patient(patient)] == [second.id, first.id]
        with pytest.raises(AuthorizationError):
            service.list_for_patient(doctor)
        with pytest.raises(AuthorizationError):
            service.inbox_for_doctor(patient)

    def test_room_without_linked_request_falls_back_to_pair(self, service, patient, doctor, db, clock):
        room = RoomRegistry(db, clock).create_or_get_room(patient, doctor.id)
        assert service.get_for_room(patient, room.id) is None

    def test_serialized_request_carries_names(self, service, patient, doctor):
        request = service.create(patient, intake(doctor.id))
        data = serialize_request(request)

        assert data["patientName"] == "Amina Patient"
        assert data["targetDoctorName"] == "Dr Youssouf"
        assert data["status"] == "pending"
        assert data["respondedByDoctorName"] is None
