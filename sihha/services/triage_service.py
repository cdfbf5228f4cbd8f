"""
AI Symptom Triage Service
Non-diagnostic risk triage of free-text symptoms with the OpenAI API.

The model output is never trusted as-is: every result is normalized (risk
enum, bounded de-duplicated lists, default follow-up questions and urgent
care triggers), moderation-flagged input short-circuits to an emergency
result, and any AI failure degrades to a conservative "high" risk result.
Every attempt, including rejected input, is written to the triage audit log.
"""

import json
import math
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sihha.config import settings
from sihha.core.clock import Clock, utcnow
from sihha.core.error_handling import DependencyUnavailableError, ValidationError
from sihha.core.logging import log_error, log_warning
from sihha.models.triage import TriageAuditLog

RISK_LEVELS = ("low", "medium", "high", "emergency")
SPECIALTIES = ("general_practice", "pediatrics", "gynecology", "emergency")
MAX_LIST_ITEMS = 12
MAX_ITEM_LENGTH = 280
MAX_SUMMARY_LENGTH = 4000
MODERATION_MODEL = "omni-moderation-latest"

SPECIALTY_SYNONYMS = {
    "general": "general_practice",
    "general_medicine": "general_practice",
    "generalist": "general_practice",
    "medecin_generaliste": "general_practice",
    "pediatric": "pediatrics",
    "pediatrician": "pediatrics",
    "pediatre": "pediatrics",
    "children": "pediatrics",
    "gynaecology": "gynecology",
    "gynecologue": "gynecology",
    "obgyn": "gynecology",
    "obstetrics": "gynecology",
    "urgent": "emergency",
    "urgences": "emergency",
    "er": "emergency",
}

TRIAGE_RESPONSE_SCHEMA = {
    "name": "triage_result",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "risk_level": {"type": "string", "enum": list(RISK_LEVELS)},
            "red_flags": {"type": "array", "items": {"type": "string"}},
            "follow_up_questions": {"type": "array", "items": {"type": "string"}},
            "suggested_specialty": {"type": "string", "enum": list(SPECIALTIES)},
            "self_care": {"type": "array", "items": {"type": "string"}},
            "seek_urgent_care_if": {"type": "array", "items": {"type": "string"}},
            "summary_for_doctor": {"type": "string"},
        },
        "required": [
            "risk_level",
            "red_flags",
            "follow_up_questions",
            "suggested_specialty",
            "self_care",
            "seek_urgent_care_if",
            "summary_for_doctor",
        ],
    },
}

SYSTEM_PROMPT = """
أنت مساعد فرز طبي (Triage) غير تشخيصي.
- لا تقدّم تشخيصًا نهائيًا.
- لا تقدّم أي جرعات دوائية أو وصفات دوائية.
- ركّز فقط على: مستوى الخطورة، مؤشرات الإنذار، أسئلة متابعة، نصائح سلامة عامة.
- إذا وجدت مؤشرات خطر، ارفع مستوى الخطورة واذكر ضرورة التوجه للطوارئ فورًا.
- استخدم لغة المستخدم (ar أو fr).
- يجب أن تكون suggested_specialty واحدة من: general_practice, pediatrics, gynecology, emergency.
- أعد JSON فقط حسب المخطط المطلوب.
""".strip()

DEFAULT_FOLLOW_UP_QUESTIONS = {
    "fr": [
        "Y a-t-il une douleur thoracique importante ?",
        "Avez-vous une mesure de saturation en oxygene (SpO2) ?",
        "Les symptomes s aggravent-ils rapidement ?",
    ],
    "ar": [
        "هل يوجد ألم صدر شديد؟",
        "هل قياس الأكسجين (SpO2) متاح؟",
        "هل الأعراض تتفاقم بسرعة؟",
    ],
}

DEFAULT_SELF_CARE = {
    "fr": [
        "Hydratez-vous regulierement.",
        "Surveillez la temperature et l evolution des symptomes.",
    ],
    "ar": [
        "اشرب سوائل بانتظام.",
        "راقب الحرارة وتطور الأعراض.",
    ],
}

DEFAULT_URGENT_CARE_TRIGGERS = {
    "fr": [
        "Aggravation de la difficulte respiratoire.",
        "Perte de connaissance, confusion, ou douleur thoracique severe.",
        "Si les symptomes deviennent severes ou s aggravent, rendez-vous immediatement aux urgences.",
    ],
    "ar": [
        "تفاقم ضيق النفس.",
        "إغماء أو تشوش شديد أو ألم صدر قوي.",
        "إذا كانت الأعراض شديدة أو متفاقمة توجه للطوارئ فورًا.",
    ],
}


def parse_bool(value, fallback: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("1", "true", "yes", "on"):
            return True
        if normalized in ("0", "false", "no", "off"):
            return False
    return fallback


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_triage_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    age = _number(body.get("age"))
    sex = str(body.get("sex") or "").strip().lower()
    weight = _number(body.get("weight_kg"))
    pregnant = parse_bool(body.get("pregnant"), False)
    symptoms = str(body.get("symptoms") or "").strip()
    duration = str(body.get("duration") or "").strip()
    language = "fr" if str(body.get("language") or "").strip().lower() == "fr" else "ar"

    if age is None or not age.is_integer() or age < 0 or age > 120:
        raise ValidationError("triage-invalid-age", "age must be an integer between 0 and 120.")
    if sex not in ("male", "female"):
        raise ValidationError("triage-invalid-sex", "sex must be male or female.")
    if weight is None or weight < 1 or weight > 400:
        raise ValidationError("triage-invalid-weight", "weightKg must be between 1 and 400.")
    if sex == "male" and pregnant:
        raise ValidationError("triage-invalid-pregnancy", "pregnant cannot be true for male sex.")
    if len(symptoms) < 5 or len(symptoms) > 3000:
        raise ValidationError("triage-invalid-symptoms", "symptoms must be between 5 and 3000 characters.")
    if len(duration) < 1 or len(duration) > 120:
        raise ValidationError("triage-invalid-duration", "duration must be between 1 and 120 characters.")

    return {
        "age": int(age),
        "sex": sex,
        "weight_kg": round(weight, 2),
        "pregnant": pregnant,
        "symptoms": symptoms,
        "duration": duration,
        "language": language,
    }


def normalize_string_list(value, max_items: int = MAX_LIST_ITEMS) -> List[str]:
    if not isinstance(value, list):
        return []
    result: List[str] = []
    for item in value:
        text = str(item if item is not None else "").strip()[:MAX_ITEM_LENGTH]
        if not text or text in result:
            continue
        result.append(text)
        if len(result) >= max_items:
            break
    return result


def normalize_specialty(raw_value, risk_level: str) -> str:
    if risk_level == "emergency":
        return "emergency"
    value = str(raw_value or "").strip().lower()
    if value in SPECIALTIES:
        return value
    return SPECIALTY_SYNONYMS.get(value, "general_practice")


def _default_summary(triage_input: Dict[str, Any], risk_level: str, specialty: str) -> str:
    if triage_input["language"] == "fr":
        sex = "feminin" if triage_input["sex"] == "female" else "masculin"
        return (
            f"Patient {sex}, {triage_input['age']} ans, {triage_input['weight_kg']} kg, "
            f"symptomes: {triage_input['symptoms']}, duree: {triage_input['duration']}, "
            f"niveau de risque: {risk_level}, specialite suggeree: {specialty}."
        )
    sex = "أنثى" if triage_input["sex"] == "female" else "ذكر"
    return (
        f"مريض {sex}، العمر {triage_input['age']} سنة، الوزن {triage_input['weight_kg']} كغ، "
        f"الأعراض: {triage_input['symptoms']}، المدة: {triage_input['duration']}، "
        f"مستوى الخطورة: {risk_level}، التخصص المقترح: {specialty}."
    )


def normalize_triage_result(raw: Dict[str, Any], triage_input: Dict[str, Any]) -> Dict[str, Any]:
    raw = raw if isinstance(raw, dict) else {}
    language = triage_input["language"]

    risk_level = str(raw.get("risk_level") or "").strip().lower()
    if risk_level not in RISK_LEVELS:
        risk_level = "medium"

    follow_up = normalize_string_list(raw.get("follow_up_questions"))
    for question in DEFAULT_FOLLOW_UP_QUESTIONS[language]:
        if len(follow_up) >= 3:
            break
        if question not in follow_up:
            follow_up.append(question)

    self_care = normalize_string_list(raw.get("self_care")) or list(DEFAULT_SELF_CARE[language])

    urgent = normalize_string_list(raw.get("seek_urgent_care_if"))
    for trigger in DEFAULT_URGENT_CARE_TRIGGERS[language]:
        if trigger not in urgent:
            urgent.append(trigger)

    specialty = normalize_specialty(raw.get("suggested_specialty"), risk_level)
    summary = str(raw.get("summary_for_doctor") or "").strip()[:MAX_SUMMARY_LENGTH]

    return {
        "risk_level": risk_level,
        "red_flags": normalize_string_list(raw.get("red_flags")),
        "follow_up_questions": follow_up[:MAX_LIST_ITEMS],
        "suggested_specialty": specialty,
        "self_care": self_care[:MAX_LIST_ITEMS],
        "seek_urgent_care_if": urgent[:MAX_LIST_ITEMS],
        "summary_for_doctor": summary or _default_summary(triage_input, risk_level, specialty),
    }


def moderation_fallback(triage_input: Dict[str, Any]) -> Dict[str, Any]:
    language = triage_input["language"]
    if language == "fr":
        red_flag = "Contenu sensible detecte"
        summary = "Demande de triage marquee comme contenu sensible. Prioriser evaluation humaine immediate."
    else:
        red_flag = "تم رصد محتوى حساس"
        summary = "تم تعليم طلب الفرز كمحتوى حساس. يوصى بتقييم بشري فوري."
    return {
        "risk_level": "emergency",
        "red_flags": [red_flag],
        "follow_up_questions": list(DEFAULT_FOLLOW_UP_QUESTIONS[language]),
        "suggested_specialty": "emergency",
        "self_care": list(DEFAULT_SELF_CARE[language]),
        "seek_urgent_care_if": list(DEFAULT_URGENT_CARE_TRIGGERS[language]),
        "summary_for_doctor": summary,
    }


def ai_unavailable_fallback(triage_input: Dict[str, Any]) -> Dict[str, Any]:
    language = triage_input["language"]
    if language == "fr":
        red_flag = "Analyse IA temporairement indisponible"
        summary = "Analyse IA indisponible (erreur technique). Prioriser evaluation clinique humaine."
    else:
        red_flag = "خدمة التحليل الذكي غير متاحة مؤقتًا"
        summary = "تعذر تنفيذ تحليل الذكاء الاصطناعي بسبب خطأ تقني. يُنصح بتقييم طبي بشري مباشر."
    return {
        "risk_level": "high",
        "red_flags": [red_flag],
        "follow_up_questions": list(DEFAULT_FOLLOW_UP_QUESTIONS[language]),
        "suggested_specialty": "general_practice",
        "self_care": list(DEFAULT_SELF_CARE[language]),
        "seek_urgent_care_if": list(DEFAULT_URGENT_CARE_TRIGGERS[language]),
        "summary_for_doctor": summary,
    }


def parse_json_object(raw_text: Optional[str]) -> Dict[str, Any]:
    """Parse model output, tolerating code fences or prose around the JSON object."""
    text = (raw_text or "").strip()
    if not text:
        raise ValueError("triage-empty-output")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        first, last = text.find("{"), text.rfind("}")
        if first == -1 or last <= first:
            raise ValueError("triage-invalid-json-output")
        return json.loads(text[first:last + 1])


class TriageService:
    def __init__(
        self,
        db: Session,
        client=None,
        clock: Clock = utcnow,
        model: Optional[str] = None,
        enable_moderation: Optional[bool] = None,
    ):
        self.db = db
        self.client = client
        self.clock = clock
        self.model = model or settings.OPENAI_TRIAGE_MODEL
        self.enable_moderation = (
            settings.TRIAGE_ENABLE_MODERATION if enable_moderation is None else enable_moderation
        )

    def _audit(
        self,
        user_id: Optional[str],
        triage_input: Dict[str, Any],
        result: Optional[Dict[str, Any]],
        status: str,
        moderation_flagged: bool = False,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        result = result or {}
        entry = TriageAuditLog(
            id=str(uuid.uuid4()),
            user_id=user_id,
            age_years=int(min(max(_number(triage_input.get("age")) or 0, 0), 999)),
            sex=str(triage_input.get("sex") or ""),
            weight_kg=min(max(_number(triage_input.get("weight_kg")) or 0, 0), 9999),
            pregnant=parse_bool(triage_input.get("pregnant"), False),
            symptoms=str(triage_input.get("symptoms") or ""),
            duration_text=str(triage_input.get("duration") or ""),
            language=str(triage_input.get("language") or "ar"),
            risk_level=result.get("risk_level"),
            suggested_specialty=result.get("suggested_specialty"),
            red_flags=result.get("red_flags", []),
            follow_up_questions=result.get("follow_up_questions", []),
            self_care=result.get("self_care", []),
            seek_urgent_care_if=result.get("seek_urgent_care_if", []),
            summary_for_doctor=result.get("summary_for_doctor", ""),
            model_name=self.model,
            moderation_flagged=moderation_flagged,
            status=status,
            error_code=error_code,
            error_message=error_message,
            created_at=self.clock(),
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(f"Triage audit log write failed: {type(e).__name__}", logger_name="triage")

    async def _is_flagged(self, triage_input: Dict[str, Any]) -> bool:
        if not self.enable_moderation:
            return False
        try:
            moderation = await self.client.moderations.create(
                model=MODERATION_MODEL,
                input=f"{triage_input['symptoms']}\n{triage_input['duration']}",
            )
        except Exception as e:
            log_warning(f"Triage moderation failed: {type(e).__name__}", logger_name="triage")
            return False
        return any(getattr(item, "flagged", False) for item in (moderation.results or []))

    async def _ask_model(self, triage_input: Dict[str, Any]) -> Dict[str, Any]:
        user_payload = {
            "age": triage_input["age"],
            "sex": triage_input["sex"],
            "weightKg": triage_input["weight_kg"],
            "pregnant": triage_input["pregnant"],
            "symptoms": triage_input["symptoms"],
            "duration": triage_input["duration"],
            "locale": triage_input["language"],
            "country": "TD",
        }
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(user_payload, ensure_ascii=False)},
            ],
            response_format={"type": "json_schema", "json_schema": TRIAGE_RESPONSE_SCHEMA},
            temperature=0.2,
        )
        return parse_json_object(response.choices[0].message.content)

    async def analyze(self, user_id: Optional[str], body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            triage_input = normalize_triage_payload(body)
        except ValidationError as e:
            self._audit(user_id, body, None, "invalid_input", error_code=e.code, error_message=e.message)
            raise

        if self.client is None:
            self._audit(
                user_id, triage_input, None, "unavailable",
                error_code="triage-openai-not-configured",
                error_message="OpenAI API key is missing.",
            )
            raise DependencyUnavailableError(
                "triage-openai-not-configured", "Triage AI is not configured on backend."
            )

        if await self._is_flagged(triage_input):
            result = moderation_fallback(triage_input)
            self._audit(
                user_id, triage_input, result, "moderation_flagged",
                moderation_flagged=True,
                error_code="triage-content-flagged",
                error_message="Content flagged by moderation.",
            )
            return result

        try:
            result = normalize_triage_result(await self._ask_model(triage_input), triage_input)
        except Exception as e:
            log_warning(f"Triage AI call failed, using fallback: {type(e).__name__}", logger_name="triage")
            result = normalize_triage_result(ai_unavailable_fallback(triage_input), triage_input)
            self._audit(
                user_id, triage_input, result, "fallback_ai_error",
                error_code="triage-fallback",
                error_message=str(e)[:500],
            )
            return result

        self._audit(user_id, triage_input, result, "success")
        return result
