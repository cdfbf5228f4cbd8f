"""
Tests for AI symptom triage: input validation, result normalization,
moderation and fallbacks. The OpenAI client is mocked.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from sihha.core.error_handling import DependencyUnavailableError, ValidationError
from sihha.models.triage import TriageAuditLog
from sihha.services.triage_service import (
    DEFAULT_FOLLOW_UP_QUESTIONS,
    DEFAULT_SELF_CARE,
    DEFAULT_URGENT_CARE_TRIGGERS,
    TriageService,
    normalize_specialty,
    normalize_triage_payload,
    normalize_triage_result,
    parse_json_object,
)


def triage_body(**overrides):
    body = {
        "age": 4,
        "sex": "female",
        "weight_kg": 16.2,
        "pregnant": False,
        "symptoms": "Fever and stiff neck since last night",
        "duration": "1 day",
        "language": "fr",
    }
    body.update(overrides)
    return body


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_client(content=None, flagged=False):
    client = MagicMock()
    client.moderations.create = AsyncMock(return_value=SimpleNamespace(results=[SimpleNamespace(flagged=flagged)]))
    client.chat.completions.create = AsyncMock(return_value=completion(content))
    return client


class TestInputNormalization:
    def test_valid_input(self):
        normalized = normalize_triage_payload(
            triage_body(age="30", sex=" MALE ", weight_kg=70.1234, pregnant="no", language="xx")
        )
        assert normalized == {
            "age": 30,
            "sex": "male",
            "weight_kg": 70.12,
            "pregnant": False,
            "symptoms": "Fever and stiff neck since last night",
            "duration": "1 day",
            "language": "ar",
        }

    @pytest.mark.parametrize(
        "overrides, code",
        [
            ({"age": 2.5}, "triage-invalid-age"),
            ({"age": -1}, "triage-invalid-age"),
            ({"age": None}, "triage-invalid-age"),
            ({"sex": "x"}, "triage-invalid-sex"),
            ({"weight_kg": 0}, "triage-invalid-weight"),
            ({"weight_kg": 401}, "triage-invalid-weight"),
            ({"sex": "male", "pregnant": "true"}, "triage-invalid-pregnancy"),
            ({"symptoms": "ok"}, "triage-invalid-symptoms"),
            ({"symptoms": "a" * 3001}, "triage-invalid-symptoms"),
            ({"duration": "  "}, "triage-invalid-duration"),
            ({"duration": "d" * 121}, "triage-invalid-duration"),
        ],
    )
    def test_invalid_fields(self, overrides, code):
        with pytest.raises(ValidationError) as exc:
            normalize_triage_payload(triage_body(**overrides))
        assert exc.value.code == code


class TestResultNormalization:
    def test_lists_are_cleaned_and_padded(self):
        triage_input = normalize_triage_payload(triage_body())
        result = normalize_triage_result(
            {
                "risk_level": "HIGH",
                "red_flags": ["Fever", "Fever", " ", "Stiff neck"],
                "follow_up_questions": ["Has the child vomited?"],
                "suggested_specialty": "pediatre",
                "self_care": [],
                "seek_urgent_care_if": ["Seizure"],
                "summary_for_doctor": "",
            },
            triage_input,
        )

        assert result["risk_level"] == "high"
        assert result["red_flags"] == ["Fever", "Stiff neck"]
        assert result["follow_up_questions"] == [
            "Has the child vomited?",
            DEFAULT_FOLLOW_UP_QUESTIONS["fr"][0],
            DEFAULT_FOLLOW_UP_QUESTIONS["fr"][1],
        ]
        assert result["suggested_specialty"] == "pediatrics"
        assert result["self_care"] == DEFAULT_SELF_CARE["fr"]
        assert result["seek_urgent_care_if"] == ["Seizure"] + DEFAULT_URGENT_CARE_TRIGGERS["fr"]
        assert result["summary_for_doctor"].startswith("Patient feminin, 4 ans")

    def test_unknown_risk_defaults_to_medium(self):
        result = normalize_triage_result({"risk_level": "catastrophic"}, normalize_triage_payload(triage_body()))
        assert result["risk_level"] == "medium"
        assert result["suggested_specialty"] == "general_practice"

    def test_list_caps(self):
        triage_input = normalize_triage_payload(triage_body())
        result = normalize_triage_result(
            {"red_flags": [f"flag {i} " + "x" * 400 for i in range(20)]}, triage_input
        )
        assert len(result["red_flags"]) == 12
        assert all(len(flag) == 280 for flag in result["red_flags"])

    @pytest.mark.parametrize(
        "raw, risk, expected",
        [
            ("general_medicine", "low", "general_practice"),
            ("obgyn", "medium", "gynecology"),
            ("ER", "high", "emergency"),
            ("dermatology", "low", "general_practice"),
            ("pediatrics", "emergency", "emergency"),
        ],
    )
    def test_specialty_mapping(self, raw, risk, expected):
        assert normalize_specialty(raw, risk) == expected

    def test_json_is_extracted_from_prose_and_fences(self):
        assert parse_json_object('```json\n{"risk_level": "low"}\n```') == {"risk_level": "low"}
        assert parse_json_object('Here you go: {"a": 1} thanks') == {"a": 1}
        with pytest.raises(ValueError):
            parse_json_object("")
        with pytest.raises(ValueError):
            parse_json_object("no json here")


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_invalid_input_is_audited_and_raised(self, db, clock, patient):
        service = TriageService(db, mock_client(), clock)
        with pytest.raises(ValidationError):
            await service.analyze(patient.id, triage_body(sex="male", pregnant=True))

        entry = db.query(TriageAuditLog).one()
        assert entry.status == "invalid_input"
        assert entry.error_code == "triage-invalid-pregnancy"

    @pytest.mark.asyncio
    async def test_missing_client_is_unavailable(self, db, clock, patient):
        service = TriageService(db, None, clock)
        with pytest.raises(DependencyUnavailableError) as exc:
            await service.analyze(patient.id, triage_body())
        assert exc.value.code == "triage-openai-not-configured"
        assert db.query(TriageAuditLog).one().status == "unavailable"

    @pytest.mark.asyncio
    async def test_successful_analysis(self, db, clock, patient):
        content = "```json\n" + json.dumps(
            {
                "risk_level": "emergency",
                "red_flags": ["Stiff neck with fever"],
                "follow_up_questions": ["A", "B", "C"],
                "suggested_specialty": "pediatrics",
                "self_care": ["Keep hydrated"],
                "seek_urgent_care_if": [],
                "summary_for_doctor": "4 y/o girl, fever + neck stiffness.",
            }
        ) + "\n```"
        client = mock_client(content)
        service = TriageService(db, client, clock, model="gpt-test", enable_moderation=True)

        result = await service.analyze(patient.id, triage_body())

        assert result["risk_level"] == "emergency"
        assert result["suggested_specialty"] == "emergency"
        assert result["summary_for_doctor"] == "4 y/o girl, fever + neck stiffness."

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["response_format"]["json_schema"]["name"] == "triage_result"
        user_payload = json.loads(kwargs["messages"][1]["content"])
        assert user_payload["country"] == "TD"
        assert user_payload["locale"] == "fr"
        client.moderations.create.assert_called_once()

        entry = db.query(TriageAuditLog).one()
        assert entry.status == "success"
        assert entry.user_id == patient.id
        assert entry.model_name == "gpt-test"
        assert entry.red_flags == ["Stiff neck with fever"]
        assert entry.created_at == clock()

    @pytest.mark.asyncio
    async def test_flagged_content_short_circuits(self, db, clock, patient):
        client = mock_client(flagged=True)
        service = TriageService(db, client, clock, enable_moderation=True)

        result = await service.analyze(patient.id, triage_body(language="ar"))

        assert result["risk_level"] == "emergency"
        assert result["suggested_specialty"] == "emergency"
        client.chat.completions.create.assert_not_called()
        entry = db.query(TriageAuditLog).one()
        assert entry.status == "moderation_flagged"
        assert entry.moderation_flagged is True

    @pytest.mark.asyncio
    async def test_moderation_can_be_disabled(self, db, clock, patient):
        client = mock_client('{"risk_level": "low"}', flagged=True)
        result = await TriageService(db, client, clock, enable_moderation=False).analyze(patient.id, triage_body())
        assert result["risk_level"] == "low"
        client.moderations.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back_to_high_risk(self, db, clock, patient):
        client = mock_client()
        client.chat.completions.create.side_effect = RuntimeError("upstream timeout " + "x" * 1000)
        service = TriageService(db, client, clock, enable_moderation=False)

        result = await service.analyze(patient.id, triage_body())

        assert result["risk_level"] == "high"
        assert result["suggested_specialty"] == "general_practice"
        entry = db.query(TriageAuditLog).one()
        assert entry.status == "fallback_ai_error"
        assert entry.error_code == "triage-fallback"
        assert len(entry.error_message) == 500

    @pytest.mark.asyncio
    async def test_unparseable_output_falls_back(self, db, clock, patient):
        service = TriageService(db, mock_client("I cannot help with that."), clock, enable_moderation=False)
        result = await service.analyze(patient.id, triage_body())
        assert result["risk_level"] == "high"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_break_triage(self, clock):
        db = MagicMock()
        db.commit.side_effect = SQLAlchemyError("disk full")
        service = TriageService(db, mock_client('{"risk_level": "low"}'), clock, enable_moderation=False)

        result = await service.analyze("user-1", triage_body())

        assert result["risk_level"] == "low"
        db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_model_call_does_not_block_the_event_loop(self, db, clock, patient):
        order = []

        async def slow_completion(**kwargs):
            order.append("model-start")
            await asyncio.sleep(0.05)
            order.append("model-end")
            return completion('{"risk_level": "low"}')

        async def other_request():
            await asyncio.sleep(0.01)
            order.append("other")

        client = mock_client()
        client.chat.completions.create.side_effect = slow_completion
        service = TriageService(db, client, clock, enable_moderation=False)

        result, _ = await asyncio.gather(service.analyze(patient.id, triage_body()), other_request())

        assert result["risk_level"] == "low"
        assert order == ["model-start", "other", "model-end"]
