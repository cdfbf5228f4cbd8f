"""
Tests for room identity, create-or-reopen and closing
"""

from unittest.mock import patch

import pytest

from conftest import intake
from sihha.core.error_handling import AuthorizationError, NotFoundError, ValidationError
from sihha.models.room import Room, CLOSED_ROOM_PREVIEW
from sihha.services.consultation_service import ConsultationService
from sihha.services.message_ledger import MessageLedger
from sihha.services.room_registry import RoomRegistry, build_room_id, serialize_room


class TestRoomIdentity:
    def test_room_id_ignores_argument_order(self):
        assert build_room_id("b-user", "a-user") == build_room_id("a-user", "b-user")
        assert build_room_id("b-user", "a-user") == "a-user_b-user"

    def test_create_or_get_is_idempotent(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        first = rooms.create_or_get_room(patient, doctor.id)
        clock.advance(30)
        second = rooms.create_or_get_room(patient, doctor.id)

        assert first.id == second.id == build_room_id(patient.id, doctor.id)
        assert db.query(Room).count() == 1
        assert second.created_at == first.created_at
        assert second.patient_name == "Amina Patient"
        assert second.doctor_name == "Dr Youssouf"

    def test_audit_names_the_user_who_opened_the_room(self, db, clock, patient, doctor):
        with patch("sihha.services.room_registry.log_audit") as audit:
            RoomRegistry(db, clock).create_or_get_room(patient, doctor.id)
        assert audit.call_args.args[:2] == ("room.created", patient.id)

    def test_reopen_by_accept_is_audited_as_the_doctor(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)
        rooms.close_room(doctor, room.id)
        consultations = ConsultationService(db, clock)
        request = consultations.create(patient, intake(doctor.id))

        with patch("sihha.services.room_registry.log_audit") as audit:
            consultations.accept(doctor, request.id)
        assert audit.call_args.args[:2] == ("room.reopened", doctor.id)

    def test_only_patients_open_rooms(self, db, clock, doctor, other_doctor):
        with pytest.raises(AuthorizationError):
            RoomRegistry(db, clock).create_or_get_room(doctor, other_doctor.id)

    def test_doctor_id_is_required_and_must_be_a_doctor(self, db, clock, patient, make_user):
        rooms = RoomRegistry(db, clock)
        with pytest.raises(ValidationError) as exc:
            rooms.create_or_get_room(patient, "  ")
        assert exc.value.code == "doctor-required"

        another_patient = make_user("patient")
        with pytest.raises(NotFoundError) as exc:
            rooms.create_or_get_room(patient, another_patient.id)
        assert exc.value.code == "doctor-not-found"

    def test_room_for_pair_is_none_before_creation(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        assert rooms.get_room_for_pair(patient, doctor.id) is None
        rooms.create_or_get_room(patient, doctor.id)
        assert rooms.get_room_for_pair(patient, doctor.id).doctor_id == doctor.id


class TestCloseAndReopen:
    def test_doctor_closes_room(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)
        clock.advance(60)

        closed = rooms.close_room(doctor, room.id)

        assert closed.is_closed is True
        assert closed.last_message == CLOSED_ROOM_PREVIEW
        assert closed.last_updated_at == clock()

    def test_patient_and_foreign_doctor_cannot_close(self, db, clock, patient, doctor, other_doctor):
        rooms = RoomRegistry(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)

        with pytest.raises(AuthorizationError):
            rooms.close_room(patient, room.id)
        with pytest.raises(AuthorizationError):
            rooms.close_room(other_doctor, room.id)
        with pytest.raises(NotFoundError):
            rooms.close_room(doctor, "missing-room")

    def test_create_or_get_reopens_closed_room(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)
        rooms.close_room(doctor, room.id)
        clock.advance(120)

        reopened = rooms.create_or_get_room(patient, doctor.id)

        assert reopened.id == room.id
        assert reopened.is_closed is False
        assert reopened.last_updated_at == clock()
        assert db.query(Room).count() == 1

    def test_closed_room_blocks_patient_but_not_doctor(self, db, clock, patient, doctor):
        rooms = RoomRegistry(db, clock)
        ledger = MessageLedger(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)
        rooms.close_room(doctor, room.id)

        with pytest.raises(AuthorizationError) as exc:
            ledger.send_text(patient, room.id, "hello?")
        assert exc.value.code == "room-closed"

        message = ledger.send_text(doctor, room.id, "Follow-up notes")
        assert message.content == "Follow-up notes"


class TestListing:
    def test_non_participant_is_refused(self, db, clock, patient, doctor, other_doctor):
        rooms = RoomRegistry(db, clock)
        room = rooms.create_or_get_room(patient, doctor.id)

        with pytest.raises(AuthorizationError):
            rooms.require_participant(other_doctor, room.id)
        with pytest.raises(NotFoundError) as exc:
            rooms.require_participant(patient, "nope")
        assert exc.value.code == "room-not-found"

    def test_rooms_ordered_by_activity_with_unread_counts(self, db, clock, patient, doctor, other_doctor):
        rooms = RoomRegistry(db, clock)
        ledger = MessageLedger(db, clock)
        first = rooms.create_or_get_room(patient, doctor.id)
        clock.advance(10)
        second = rooms.create_or_get_room(patient, other_doctor.id)
        clock.advance(10)
        ledger.send_text(patient, first.id, "one")
        clock.advance(1)
        ledger.send_text(patient, first.id, "two")

        patient_rooms = rooms.list_rooms(patient)
        assert [room.id for room, _ in patient_rooms] == [first.id, second.id]
        assert [unread for _, unread in patient_rooms] == [0, 0]

        doctor_rooms = rooms.list_rooms(doctor)
        assert [(room.id, unread) for room, unread in doctor_rooms] == [(first.id, 2)]

        ledger.list_and_mark_delivered(doctor, first.id)
        assert rooms.list_rooms(doctor)[0][1] == 0

    def test_serialized_room_shape(self, db, clock, patient, doctor):
        room = RoomRegistry(db, clock).create_or_get_room(patient, doctor.id)
        data = serialize_room(room, 3)

        assert data["participantIds"] == [patient.id, doctor.id]
        assert data["unreadCount"] == 3
        assert data["isClosed"] is False
        assert data["createdAt"] == clock().isoformat()
