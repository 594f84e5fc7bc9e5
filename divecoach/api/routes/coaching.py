"""
Coaching endpoints backed by Claude.

Chat answers a diver's question with their recent dives as context. The
EQ plan endpoint asks the model for a mouthfill and cadence plan and hands
it back together with the CLEAR DIVE checklist.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException, status
from pydantic import BaseModel, Field

from ...core.coaching.coach import (
    CLEAR_DIVE_CHECKLIST,
    COACHING_PHILOSOPHY,
    MEDICAL_DISCLAIMER,
    CoachResponseError,
    UserLevel,
    detect_user_level,
)
from ...core.identity import normalize_user_id
from ...infrastructure.anthropic.client import LanguageModelError, RateLimitExceeded
from ...infrastructure.snowflake.repositories.dive_logs import DiveLogFilter
from ..dependencies import AuthenticatedKey, DiveCoachDep, DiveLogRepositoryDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ChatTurn(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str = Field(max_length=4000)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000, description="Diver's question")
    history: list[ChatTurn] = Field(default_factory=list, max_length=20)
    personal_best: Optional[float] = Field(None, ge=0, le=300)
    is_instructor: bool = False


class ExtractedDiveItem(BaseModel):
    discipline: Optional[str]
    depth: Optional[float]
    target_depth: Optional[float]
    reached_depth: Optional[float]
    total_time: Optional[str]
    issues: list[str]


class ChatResponse(BaseModel):
    reply: str
    user_level: str
    safety_alert: Optional[str] = None
    extracted_dive: Optional[ExtractedDiveItem] = None
    medical_disclaimer: str = MEDICAL_DISCLAIMER


class EQPlanRequest(BaseModel):
    target_depth: float = Field(gt=0, le=300)
    max_reverse_pack: Optional[float] = Field(None, gt=0, le=300)
    experience: UserLevel = UserLevel.BEGINNER


class EQPlanItem(BaseModel):
    mouthfill_depth: Optional[float]
    volume_recommendation: Optional[str]
    cadence_bands: list
    total_eq_count: Optional[int]
    theoretical_max_depth: Optional[float]
    safety_margin: Optional[float]
    notes: Optional[str]
    needs_flexibility_training: bool
    warnings: list[str]


class EQPlanResponse(BaseModel):
    target_depth: float
    eq_plan: EQPlanItem
    clear_dive_checklist: list[str]
    philosophy: dict[str, str]


def _model_failure(e: Exception) -> HTTPException:
    if isinstance(e, RateLimitExceeded):
        return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="The coaching model failed to answer. Please try again.",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/chat",
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
    summary="Chat with the coach",
    description="Coaching reply that takes the diver's recent logs into account when X-User-Id is sent",
)
async def chat(
    request: ChatRequest,
    api_key: AuthenticatedKey,
    coach: DiveCoachDep,
    repository: DiveLogRepositoryDep,
    settings: SettingsDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> ChatResponse:
    recent_logs = []
    if x_user_id and x_user_id.strip():
        recent_logs = repository.list_for_user(DiveLogFilter(
            user_id=normalize_user_id(x_user_id),
            limit=settings.history_limit,
        ))

    level = detect_user_level(request.personal_best, request.is_instructor)

    try:
        reply = await coach.chat(
            message=request.message,
            recent_logs=recent_logs,
            user_level=level,
            history=[turn.model_dump() for turn in request.history],
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LanguageModelError as e:
        logger.error("Coaching chat failed", extra={"error": str(e)})
        raise _model_failure(e)

    extracted = None
    if reply.extracted is not None:
        extracted = ExtractedDiveItem(
            discipline=reply.extracted.discipline.value if reply.extracted.discipline else None,
            depth=reply.extracted.depth,
            target_depth=reply.extracted.target_depth,
            reached_depth=reply.extracted.reached_depth,
            total_time=reply.extracted.total_time,
            issues=reply.extracted.issues,
        )

    return ChatResponse(
        reply=reply.message,
        user_level=level.value,
        safety_alert=reply.safety_alert,
        extracted_dive=extracted,
    )


@router.post(
    "/eq-plan",
    response_model=EQPlanResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate an equalization plan",
)
async def eq_plan(
    request: EQPlanRequest,
    api_key: AuthenticatedKey,
    coach: DiveCoachDep,
) -> EQPlanResponse:
    try:
        plan = await coach.generate_eq_plan(
            target_depth=request.target_depth,
            max_reverse_pack=request.max_reverse_pack,
            experience=request.experience,
        )
    except CoachResponseError as e:
        logger.error("EQ plan reply unusable", extra={"error": str(e)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except LanguageModelError as e:
        logger.error("EQ plan generation failed", extra={"error": str(e)})
        raise _model_failure(e)

    return EQPlanResponse(
        target_depth=plan.target_depth,
        eq_plan=EQPlanItem(
            mouthfill_depth=plan.mouthfill_depth,
            volume_recommendation=plan.volume_recommendation,
            cadence_bands=plan.cadence_bands,
            total_eq_count=plan.total_eq_count,
            theoretical_max_depth=plan.theoretical_max_depth,
            safety_margin=plan.safety_margin,
            notes=plan.notes,
            needs_flexibility_training=plan.needs_flexibility_training,
            warnings=plan.warnings,
        ),
        clear_dive_checklist=list(CLEAR_DIVE_CHECKLIST),
        philosophy=COACHING_PHILOSOPHY,
    )
