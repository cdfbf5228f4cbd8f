"""
Tests for message appends, room previews and read receipts
"""

import pytest

from sihha.core.error_handling import AuthorizationError, ValidationError
from sihha.models.message import EventKind, Message, MESSAGE_TYPE_LIVE
from sihha.services.message_ledger import MessageLedger, room_preview, serialize_message
from sihha.services.presence_tracker import PresenceTracker
from sihha.services.room_registry import RoomRegistry


@pytest.fixture
def room(db, clock, patient, doctor):
    return RoomRegistry(db, clock).create_or_get_room(patient, doctor.id)


@pytest.fixture
def ledger(db, clock):
    return MessageLedger(db, clock)


class TestAppend:
    def test_text_updates_preview_and_activity(self, ledger, room, patient, clock):
        clock.advance(30)
        message = ledger.send_text(patient, room.id, "  Bonjour docteur  ")

        assert message.content == "Bonjour docteur"
        assert message.sender_name == patient.name
        assert message.delivered_at is None and message.read_at is None
        assert room.last_message == "Bonjour docteur"
        assert room.last_updated_at == clock()

    def test_empty_text_is_rejected(self, ledger, room, patient):
        with pytest.raises(ValidationError) as exc:
            ledger.send_text(patient, room.id, "   ")
        assert exc.value.code == "empty-message"

    def test_audio_duration_is_floored_with_minimum_one(self, ledger, room, patient, clock):
        assert ledger.send_audio(patient, room.id, "https://cdn.test/a.m4a", 12.9).duration_seconds == 12
        clock.advance(1)
        assert ledger.send_audio(patient, room.id, "https://cdn.test/b.m4a", 0.2).duration_seconds == 1
        clock.advance(1)
        assert ledger.send_audio(patient, room.id, "https://cdn.test/c.m4a", "bad").duration_seconds == 1
        assert room.last_message == "Voice message"

        with pytest.raises(ValidationError) as exc:
            ledger.send_audio(patient, room.id, "", 3)
        assert exc.value.code == "audio-url-required"

    def test_image_preview(self, ledger, room, doctor):
        ledger.send_image(doctor, room.id, "https://cdn.test/x-ray.png")
        assert room.last_message == "Image"

        with pytest.raises(ValidationError) as exc:
            ledger.send_image(doctor, room.id, None)
        assert exc.value.code == "image-url-required"

    def test_outsider_cannot_write(self, ledger, room, other_doctor):
        with pytest.raises(AuthorizationError):
            ledger.send_text(other_doctor, room.id, "hi")

    def test_live_event_renders_marker(self, ledger, room, patient, db):
        message = ledger.append(room, patient, MESSAGE_TYPE_LIVE, patient.name, event_kind=EventKind.REQUEST)
        db.commit()

        assert message.content == "Amina Patient"
        assert message.transcript == "[LIVE_REQUEST] Amina Patient"
        assert room.last_message == "[LIVE] [LIVE_REQUEST] Amina Patient"
        assert serialize_message(message)["content"] == "[LIVE_REQUEST] Amina Patient"
        assert serialize_message(message)["eventKind"] == "request"

    def test_append_without_preview_keeps_room_untouched(self, ledger, room, patient, clock):
        before = (room.last_message, room.last_updated_at)
        clock.advance(5)
        ledger.append(room, patient, MESSAGE_TYPE_LIVE, "sdp-offer", event_kind=EventKind.SIGNAL, update_preview=False)
        assert (room.last_message, room.last_updated_at) == before

    def test_preview_texts(self):
        assert room_preview("text", "hello") == "hello"
        assert room_preview("audio", "https://x") == "Voice message"
        assert room_preview("image", "https://x") == "Image"
        assert room_preview("live", "") == "[LIVE] Live update"


class TestReadReceipts:
    def test_listing_stamps_only_the_other_sides_messages(self, ledger, room, patient, doctor, clock):
        ledger.send_text(patient, room.id, "first")
        clock.advance(1)
        ledger.send_text(doctor, room.id, "reply")
        clock.advance(1)
        ledger.send_text(patient, room.id, "second")
        clock.advance(10)
        read_at = clock()

        history = ledger.list_and_mark_delivered(doctor, room.id)

        assert [m.content for m in history] == ["first", "reply", "second"]
        by_content = {m.content: m for m in history}
        assert by_content["first"].read_at == read_at
        assert by_content["first"].delivered_at == read_at
        assert by_content["second"].read_at == read_at
        assert by_content["reply"].read_at is None

    def test_receipts_are_set_once(self, ledger, room, patient, doctor, clock, db):
        ledger.send_text(patient, room.id, "first")
        clock.advance(5)
        ledger.list_and_mark_delivered(doctor, room.id)
        first_read = clock()
        clock.advance(60)

        ledger.list_and_mark_delivered(doctor, room.id)

        message = db.query(Message).one()
        db.refresh(message)
        assert message.read_at == first_read
        assert message.delivered_at == first_read

    def test_listing_refreshes_reader_presence(self, ledger, room, doctor, db, clock):
        ledger.list_and_mark_delivered(doctor, room.id)
        presence = PresenceTracker(db, clock).get(room.id, doctor.id)
        assert presence.last_seen_at == clock()
        assert presence.is_active is True
