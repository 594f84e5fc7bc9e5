"""
Stateless diagnostic endpoints.

These run the E.N.C.L.O.S.E. engine and issue triage on data sent in the
request. Triage can also fold in a stored log when the caller names one.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, status
from pydantic import BaseModel, Field

from ...core.diagnostics.enclose import (
    coaching_advice,
    diagnose_with_enclose,
    summarize_assessments,
)
from ...core.diagnostics.models import (
    DescentStyle,
    Discipline,
    DivePerformanceData,
    EncloseAssessment,
    EqFailureType,
    MouthfillSize,
    NeckPosition,
    SqueezeType,
)
from ...core.diagnostics.triage import triage_issue
from ...core.identity import normalize_user_id
from ...infrastructure.snowflake.repositories.dive_logs import DiveLogNotFoundError
from ..dependencies import AuthenticatedKey, DiveLogRepositoryDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class EncloseRequest(BaseModel):
    """One dive and whatever went wrong on it."""
    target_depth_m: float = Field(ge=0, le=300, description="Planned depth")
    reached_depth_m: float = Field(ge=0, le=300, description="Depth actually reached")
    dive_time_seconds: float = Field(ge=0, description="Total dive time")
    discipline: Discipline = Discipline.CWT

    eq_failure_depth: Optional[float] = Field(None, ge=0, le=300)
    eq_failure_type: Optional[EqFailureType] = None
    contractions_start_time: Optional[float] = Field(
        None, ge=0, description="Seconds into the dive when contractions began"
    )
    leg_burn_depth: Optional[float] = Field(None, ge=0, le=300)
    narcosis_depth: Optional[float] = Field(None, ge=0, le=300)
    narcosis_symptoms: list[str] = Field(default_factory=list)
    o2_symptoms: list[str] = Field(default_factory=list)
    squeeze_type: Optional[SqueezeType] = None
    equipment_issues: list[str] = Field(default_factory=list)

    mouthfill_depth: Optional[float] = Field(None, ge=0, le=300)
    mouthfill_size: Optional[MouthfillSize] = None
    mouthfill_lost: bool = False
    neck_position: Optional[NeckPosition] = None
    descent_style: Optional[DescentStyle] = None


class AssessmentItem(BaseModel):
    category: str = Field(description="E.N.C.L.O.S.E. letter (E2 for equipment)")
    category_name: str
    priority: str
    diagnosis: str
    root_causes: list[str]
    recommendations: list[str]
    training_drills: list[str]
    next_steps: list[str]
    safety_flags: list[str]


class AssessmentSummaryItem(BaseModel):
    critical_issues: int
    high_priority_issues: int
    total_issues: int
    safe_to_continue: bool


class EncloseResponse(BaseModel):
    assessments: list[AssessmentItem]
    summary: AssessmentSummaryItem
    coaching_advice: list[str]


class TriageRequest(BaseModel):
    description: str = Field(
        min_length=1,
        max_length=2000,
        description="The diver's own words about what went wrong",
    )
    dive_log_id: Optional[UUID] = Field(
        None, description="Stored log to score with CLEAR DIVE (needs X-User-Id)"
    )


class IssueMatchItem(BaseModel):
    category: str
    name: str
    confidence: float
    matched_triggers: list[str]


class TriageResponse(BaseModel):
    primary_category: Optional[str]
    primary_issue: str
    confidence: float
    matches: list[IssueMatchItem]
    clear_dive_score: Optional[int] = Field(None, description="0-5, only with a dive log")
    next_steps: list[str]
    diagnostic_questions: list[str]
    recommendations: list[str]


def build_enclose_response(assessments: list[EncloseAssessment]) -> EncloseResponse:
    """Shape engine output for the API. Shared with the dive log routes."""
    summary = summarize_assessments(assessments)
    return EncloseResponse(
        assessments=[
            AssessmentItem(
                category=a.category.value,
                category_name=a.category.display_name,
                priority=a.priority.value,
                diagnosis=a.diagnosis,
                root_causes=a.root_causes,
                recommendations=a.recommendations,
                training_drills=a.training_drills,
                next_steps=a.next_steps,
                safety_flags=a.safety_flags,
            )
            for a in assessments
        ],
        summary=AssessmentSummaryItem(
            critical_issues=summary.critical_issues,
            high_priority_issues=summary.high_priority_issues,
            total_issues=summary.total_issues,
            safe_to_continue=summary.safe_to_continue,
        ),
        coaching_advice=coaching_advice(assessments),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/enclose",
    response_model=EncloseResponse,
    status_code=status.HTTP_200_OK,
    summary="Run E.N.C.L.O.S.E. diagnostics",
    description="Diagnose reported dive incidents into prioritized root causes and drills",
)
async def run_enclose(
    request: EncloseRequest,
    api_key: AuthenticatedKey,
) -> EncloseResponse:
    data = DivePerformanceData(**request.model_dump())
    assessments = diagnose_with_enclose(data)

    logger.info(
        "E.N.C.L.O.S.E. diagnosis complete",
        extra={
            "categories": [a.category.value for a in assessments],
            "reached_depth": data.reached_depth_m,
        }
    )

    return build_enclose_response(assessments)


@router.post(
    "/triage",
    response_model=TriageResponse,
    status_code=status.HTTP_200_OK,
    summary="Triage a free-text issue",
    description="Match a diver's description to E.N.C.L.O.S.E. categories and follow-up questions",
)
async def run_triage(
    request: TriageRequest,
    api_key: AuthenticatedKey,
    repository: DiveLogRepositoryDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> TriageResponse:
    dive_log = None

    if request.dive_log_id is not None:
        if not x_user_id or not x_user_id.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="X-User-Id header is required when dive_log_id is given",
            )
        try:
            dive_log = repository.get(request.dive_log_id, normalize_user_id(x_user_id))
        except DiveLogNotFoundError:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Dive log not found",
            )

    try:
        report = triage_issue(request.description, dive_log)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return TriageResponse(
        primary_category=report.primary_category.value if report.primary_category else None,
        primary_issue=report.primary_issue,
        confidence=report.confidence,
        matches=[
            IssueMatchItem(
                category=m.category.value,
                name=m.name,
                confidence=m.confidence,
                matched_triggers=list(m.matched_triggers),
            )
            for m in report.matches
        ],
        clear_dive_score=report.clear_dive_score,
        next_steps=report.next_steps,
        diagnostic_questions=report.diagnostic_questions,
        recommendations=report.recommendations,
    )
