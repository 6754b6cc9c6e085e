"""Deep-research intent scoring endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from deep_research.api.dependencies import get_app_settings
from deep_research.api.v1.schemas.research import IntentScoreRequest
from deep_research.config import Settings
from deep_research.intake.scoring import build_chat_context, score_intent
from deep_research.models.schemas import IntentScore

router = APIRouter(prefix="/intent", tags=["intent"])


@router.post("/score", response_model=IntentScore)
async def score(request: IntentScoreRequest, settings: Settings = Depends(get_app_settings)) -> IntentScore:
    """Score a chat message for deep research intent. Malformed queries score 0."""
    context = build_chat_context(request.messages) if request.messages else None
    return score_intent(request.query, context, estimates=settings.STUDY_TYPE_ESTIMATES)
