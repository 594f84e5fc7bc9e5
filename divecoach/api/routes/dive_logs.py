"""
Dive log API endpoints.

CRUD for a diver's logs, plus the two per-log analyses: the technical
audit (stored, so the dive card can show it later) and an E.N.C.L.O.S.E.
diagnosis built from what the diver wrote down.

Every route is scoped to the diver named in X-User-Id. Asking for
someone else's log is indistinguishable from asking for a missing one.
"""

import logging
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from ...core.analysis.validation import validate_dive_data
from ...core.diagnostics.audit import audit_dive_log
from ...core.diagnostics.enclose import diagnose_with_enclose
from ...core.diagnostics.mapping import parse_time_to_seconds, performance_data_from_log
from ...core.diagnostics.models import AttemptType, Discipline, DiveLog, ExitStatus
from ...infrastructure.snowflake.repositories.dive_logs import (
    MAX_PAGE_SIZE,
    DiveLogFilter,
    DiveLogNotFoundError,
)
from ..dependencies import AuthenticatedKey, DiveLogRepositoryDep, UserIdDep
from .diagnostics import EncloseResponse, build_enclose_response

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class DiveLogRequest(BaseModel):
    """A dive as the diver logs it. Only the date is required."""
    date: date
    discipline: Optional[Discipline] = None
    location: Optional[str] = Field(None, max_length=200)
    target_depth: Optional[float] = Field(None, ge=0)
    reached_depth: Optional[float] = Field(None, ge=0)
    total_time_seconds: Optional[int] = Field(None, ge=0)
    total_time: Optional[str] = Field(
        None, description="Dive time as written (\"2:35\"); used when total_time_seconds is absent"
    )
    bottom_time_seconds: Optional[int] = Field(None, ge=0)
    descent_seconds: Optional[int] = Field(None, ge=0)
    ascent_seconds: Optional[int] = Field(None, ge=0)
    mouthfill_depth: Optional[float] = Field(None, ge=0)
    issue_depth: Optional[float] = Field(None, ge=0)
    issue_comment: Optional[str] = Field(None, max_length=2000)
    squeeze: bool = False
    ear_squeeze: bool = False
    lung_squeeze: bool = False
    narcosis_level: Optional[int] = Field(None, ge=0, le=5)
    recovery_quality: Optional[int] = Field(None, ge=1, le=5)
    exit_status: Optional[ExitStatus] = None
    attempt_type: Optional[AttemptType] = None
    surface_protocol: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=5000)

    def resolved_total_seconds(self) -> Optional[int]:
        if self.total_time_seconds is not None:
            return self.total_time_seconds
        if self.total_time:
            return parse_time_to_seconds(self.total_time) or None
        return None


class DiveLogResponse(BaseModel):
    id: UUID
    user_id: UUID
    date: date
    discipline: Optional[Discipline]
    location: Optional[str]
    target_depth: Optional[float]
    reached_depth: Optional[float]
    total_time_seconds: Optional[int]
    bottom_time_seconds: Optional[int]
    descent_seconds: Optional[int]
    ascent_seconds: Optional[int]
    mouthfill_depth: Optional[float]
    issue_depth: Optional[float]
    issue_comment: Optional[str]
    squeeze: bool
    ear_squeeze: bool
    lung_squeeze: bool
    narcosis_level: Optional[int]
    recovery_quality: Optional[int]
    exit_status: Optional[ExitStatus]
    attempt_type: Optional[AttemptType]
    surface_protocol: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class DiveLogListResponse(BaseModel):
    items: list[DiveLogResponse]
    count: int = Field(description="Items in this page")
    limit: int
    offset: int


class CategoryEvaluationItem(BaseModel):
    category: str
    title: str
    severity: int = Field(description="0 (none) to 3 (severe)")
    reasons: list[str]
    drills: list[str]


class AuditScoresItem(BaseModel):
    safety: int
    technique: int
    efficiency: int
    readiness: int
    final: int


class DerivedMetricsItem(BaseModel):
    total_seconds: Optional[int]
    bottom_seconds: int
    descent_seconds: Optional[int]
    ascent_seconds: Optional[int]
    descent_speed_mps: Optional[float]
    ascent_speed_mps: Optional[float]
    vdi_sec_per_meter: Optional[float]
    freefall_start_m: Optional[float]


class AuditResponse(BaseModel):
    log_id: UUID
    version: str
    audited_at: datetime
    evaluations: list[CategoryEvaluationItem]
    scores: AuditScoresItem
    derived: DerivedMetricsItem
    flags: list[str]
    completeness_score: int = Field(description="Percent of key fields filled in")
    risk_score: int = Field(description="0-100")
    is_personal_best: bool
    previous_best_depth: float
    summary: str
    suggestions: list[str]
    action_items: list[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _check_dive_numbers(request: DiveLogRequest) -> None:
    validation = validate_dive_data(
        target_depth=request.target_depth,
        reached_depth=request.reached_depth,
        total_time=request.resolved_total_seconds(),
        discipline=request.discipline.value if request.discipline else None,
    )
    if not validation.is_valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"errors": validation.errors},
        )


def _fields_from_request(request: DiveLogRequest) -> dict:
    fields = request.model_dump(exclude={"total_time", "total_time_seconds"})
    fields["total_time_seconds"] = request.resolved_total_seconds()
    return fields


def _to_response(log: DiveLog) -> DiveLogResponse:
    return DiveLogResponse(
        id=log.id,
        user_id=log.user_id,
        date=log.date,
        discipline=log.discipline,
        location=log.location,
        target_depth=log.target_depth,
        reached_depth=log.reached_depth,
        total_time_seconds=log.total_time_seconds,
        bottom_time_seconds=log.bottom_time_seconds,
        descent_seconds=log.descent_seconds,
        ascent_seconds=log.ascent_seconds,
        mouthfill_depth=log.mouthfill_depth,
        issue_depth=log.issue_depth,
        issue_comment=log.issue_comment,
        squeeze=log.squeeze,
        ear_squeeze=log.ear_squeeze,
        lung_squeeze=log.lung_squeeze,
        narcosis_level=log.narcosis_level,
        recovery_quality=log.recovery_quality,
        exit_status=log.exit_status,
        attempt_type=log.attempt_type,
        surface_protocol=log.surface_protocol,
        notes=log.notes,
        created_at=log.created_at,
        updated_at=log.updated_at,
    )


def _load_log(repository, log_id: UUID, user_id: UUID) -> DiveLog:
    try:
        return repository.get(log_id, user_id)
    except DiveLogNotFoundError:
        logger.info(
            "Dive log not found",
            extra={"log_id": str(log_id), "user_id": str(user_id)}
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Dive log not found",
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=DiveLogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a dive log",
)
async def create_dive_log(
    request: DiveLogRequest,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> DiveLogResponse:
    _check_dive_numbers(request)

    log = DiveLog(user_id=user_id, **_fields_from_request(request))
    repository.save(log)

    return _to_response(log)


@router.get(
    "",
    response_model=DiveLogListResponse,
    status_code=status.HTTP_200_OK,
    summary="List dive logs",
    description="The diver's logs, newest dive first, with optional filters",
)
async def list_dive_logs(
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    discipline: Optional[Discipline] = None,
    location: Optional[str] = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> DiveLogListResponse:
    logs = repository.list_for_user(DiveLogFilter(
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        discipline=discipline,
        location=location,
        limit=limit,
        offset=offset,
    ))

    return DiveLogListResponse(
        items=[_to_response(log) for log in logs],
        count=len(logs),
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{log_id}",
    response_model=DiveLogResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a dive log",
)
async def get_dive_log(
    log_id: UUID,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> DiveLogResponse:
    return _to_response(_load_log(repository, log_id, user_id))


@router.put(
    "/{log_id}",
    response_model=DiveLogResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace a dive log",
    description="Replaces every editable field. Identity and creation time are kept.",
)
async def update_dive_log(
    log_id: UUID,
    request: DiveLogRequest,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> DiveLogResponse:
    existing = _load_log(repository, log_id, user_id)
    _check_dive_numbers(request)

    log = DiveLog(
        id=existing.id,
        user_id=existing.user_id,
        created_at=existing.created_at,
        **_fields_from_request(request),
    )
    log.touch()
    repository.save(log)

    return _to_response(log)


@router.delete(
    "/{log_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a dive log",
)
async def delete_dive_log(
    log_id: UUID,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> Response:
    try:
        repository.delete(log_id, user_id)
    except DiveLogNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Dive log not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{log_id}/audit",
    response_model=AuditResponse,
    status_code=status.HTTP_200_OK,
    summary="Audit a dive log",
    description="Score the dive, derive speeds and flag risks. The result is stored.",
)
async def audit_log(
    log_id: UUID,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> AuditResponse:
    log = _load_log(repository, log_id, user_id)

    # Personal best is judged against every dive logged before this one
    history = repository.list_all_for_user(DiveLogFilter(
        user_id=user_id,
        date_to=log.date,
    ))

    audit = audit_dive_log(log, history)
    payload = repository.save_audit(audit, user_id)

    logger.info(
        "Dive log audited",
        extra={
            "log_id": str(log_id),
            "final_score": audit.scores.final,
            "risk_score": audit.risk_score,
            "flags": audit.flags,
        }
    )

    return AuditResponse.model_validate(payload)


@router.get(
    "/{log_id}/audit",
    response_model=AuditResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the stored audit of a dive log",
)
async def get_log_audit(
    log_id: UUID,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> AuditResponse:
    payload = repository.get_audit(log_id, user_id)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No audit for this dive log. Call POST /{log_id}/audit first.",
        )
    return AuditResponse.model_validate(payload)


@router.post(
    "/{log_id}/diagnose",
    response_model=EncloseResponse,
    status_code=status.HTTP_200_OK,
    summary="Diagnose a dive log",
    description="Run E.N.C.L.O.S.E. on the incidents recorded in a stored log",
)
async def diagnose_log(
    log_id: UUID,
    api_key: AuthenticatedKey,
    user_id: UserIdDep,
    repository: DiveLogRepositoryDep,
) -> EncloseResponse:
    log = _load_log(repository, log_id, user_id)
    assessments = diagnose_with_enclose(performance_data_from_log(log))
    return build_enclose_response(assessments)
