"""
Pattern analysis endpoint.

Runs the depth-bucket pattern analysis over a diver's stored logs for a
recent window. Everything here is computed from the logs alone; no model
is involved.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.analysis.patterns import InsufficientDataError, PatternReport, analyze_patterns
from ...infrastructure.snowflake.repositories.dive_logs import DiveLogFilter
from ..dependencies import AuthenticatedKey, DiveLogRepositoryDep, SettingsDep, UserIdDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class PatternRequest(BaseModel):
    timeframe_days: Optional[int] = Field(None, ge=1, le=365, description="Look-back window")
    min_dives: Optional[int] = Field(None, ge=1, le=50)


class DepthBucketItem(BaseModel):
    bucket_m: int
    label: str
    dive_count: int
    issue_count: int
    issue_rate: float
    category_counts: dict[str, int]
    dominant_category: Optional[str]


class DisciplineProgressionItem(BaseModel):
    discipline: str
    average_depth: int
    max_depth: float
    count: int
    trend_m: float


class SafetyIncidentItem(BaseModel):
    log_id: str
    date: date
    reasons: list[str]


class TrainingPlanItem(BaseModel):
    phase: str
    duration_weeks: int
    focus_areas: list[str]


class PatternResponse(BaseModel):
    timeframe_days: int
    total_dives: int
    first_date: date
    last_date: date
    disciplines: list[str]
    depth_buckets: list[DepthBucketItem]
    plateau_buckets: list[int] = Field(description="Buckets where issues keep recurring")
    progression: list[DisciplineProgressionItem]
    safety_incidents: list[SafetyIncidentItem]
    category_totals: dict[str, int]
    overall_trend: str
    consistency: Optional[float] = Field(description="Share of targets reached")
    risk_level: str
    training_plan: TrainingPlanItem


def _to_response(report: PatternReport) -> PatternResponse:
    return PatternResponse(
        timeframe_days=report.timeframe_days,
        total_dives=report.total_dives,
        first_date=report.first_date,
        last_date=report.last_date,
        disciplines=[d.value for d in report.disciplines],
        depth_buckets=[
            DepthBucketItem(
                bucket_m=c.bucket_m,
                label=c.label,
                dive_count=c.dive_count,
                issue_count=c.issue_count,
                issue_rate=round(c.issue_rate, 2),
                category_counts={k.value: v for k, v in c.category_counts.items()},
                dominant_category=c.dominant_category.value if c.dominant_category else None,
            )
            for c in report.clusters
        ],
        plateau_buckets=[c.bucket_m for c in report.plateaus],
        progression=[
            DisciplineProgressionItem(
                discipline=p.discipline.value,
                average_depth=p.average_depth,
                max_depth=p.max_depth,
                count=p.count,
                trend_m=p.trend_m,
            )
            for p in report.progression.values()
        ],
        safety_incidents=[
            SafetyIncidentItem(log_id=str(i.log_id), date=i.date, reasons=list(i.reasons))
            for i in report.safety_incidents
        ],
        category_totals={k.value: v for k, v in report.category_totals.items()},
        overall_trend=report.overall_trend.value,
        consistency=report.consistency,
        risk_level=report.risk_level.value,
        training_plan=TrainingPlanItem(
            phase=report.training_plan.phase.value,
            duration_weeks=report.training_plan.duration_weeks,
            focus_areas=list(report.training_plan.focus_areas),
        ),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/patterns",
    response_model=PatternResponse,
    status_code=status.HTTP_200_OK,
    summary="Analyze dive patterns",
    description="Depth-bucket issue clustering, progression and risk over recent dives",
)
async def analyze_dive_patterns(
    request: PatternRequest,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
    settings: SettingsDep,
) -> PatternResponse:
    timeframe = request.timeframe_days or settings.pattern_timeframe_days
    min_dives = request.min_dives or settings.min_dives_for_patterns
    today = date.today()

    logs = repository.list_all_for_user(DiveLogFilter(
        user_id=user_id,
        date_from=today - timedelta(days=timeframe),
    ))

    try:
        report = analyze_patterns(logs, timeframe_days=timeframe, min_dives=min_dives, as_of=today)
    except InsufficientDataError as e:
        logger.info(
            "Not enough dives for pattern analysis",
            extra={"user_id": str(user_id), "dives": len(logs)}
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(
        "Pattern analysis complete",
        extra={
            "user_id": str(user_id),
            "dives": report.total_dives,
            "plateaus": [c.bucket_m for c in report.plateaus],
            "risk_level": report.risk_level.value,
        }
    )

    return _to_response(report)
