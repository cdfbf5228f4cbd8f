from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sihha.config import get_openai_client
from sihha.core.clock import Clock
from sihha.database import get_db
from sihha.dependencies import get_clock, get_current_user
from sihha.models.user import User
from sihha.schemas.chat_schemas import TriageBody
from sihha.services.triage_service import TriageService

router = APIRouter(prefix="/api/triage", tags=["triage"])


def get_triage_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> TriageService:
    return TriageService(db, get_openai_client(), clock)


@router.post("/analyze")
async def analyze_symptoms(
    body: TriageBody,
    current_user: User = Depends(get_current_user),
    service: TriageService = Depends(get_triage_service),
):
    """
    Non-diagnostic symptom triage.

    Returns a normalized result even when the AI call fails; only invalid
    input and a missing OpenAI configuration are errors.
    """
    return {"result": await service.analyze(current_user.id, body.model_dump())}
