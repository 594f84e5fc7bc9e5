"""
Technical audit of a single dive log.

Where the E.N.C.L.O.S.E. engine diagnoses a reported incident, the audit
looks at the log as a whole. It derives descent/ascent timing and speeds,
grades each category on a 0-3 severity scale, and rolls everything up into
the 0-5 scores shown on the dive card, with a 0-100 risk score beside them.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from .enclose import format_depth, round_half_up
from .models import AttemptType, Discipline, DiveLog, EncloseCategory, ExitStatus


AUDIT_VERSION = "enclose_audit_v1"

MAX_SEVERITY = 3
DESCENT_SHARE_OF_TRAVEL = 0.52

# Speed windows in m/s
GOOD_DESCENT_SPEED = (0.9, 1.3)
GOOD_ASCENT_SPEED = (0.6, 0.9)
FAST_DESCENT_SPEED = 1.4
FAST_ASCENT_SPEED = 1.0
SLOW_ASCENT_ADVICE_SPEED = 0.9
SLOW_DESCENT_SPEED = 0.8

VERY_LONG_DIVE_SECONDS = 480
NARCOSIS_DEPTH_M = 35
SLOW_DESCENT_DEPTH_M = 40
RISK_REFERENCE_DEPTH_M = 120

CATEGORY_TITLES = {
    EncloseCategory.EQUALIZATION: "Equalization",
    EncloseCategory.NARCOSIS: "Narcosis",
    EncloseCategory.CO2: "CO2/Contractions",
    EncloseCategory.LEG_BURN: "Leg/Finning",
    EncloseCategory.O2: "O2/Recovery",
    EncloseCategory.SQUEEZE: "Squeeze Risk",
    EncloseCategory.EQUIPMENT: "Equipment",
}

_READINESS_BY_ATTEMPT = {
    AttemptType.TRAINING: 4,
    AttemptType.PB: 3,
    AttemptType.COMP: 5,
}

_EQ_WORDS = re.compile(r"\beq\b|equali[sz]")
_LEG_WORDS = re.compile(r"\blegs?\b|\bfins?\b|\bfinning\b")
_CONTRACTION_WORDS = re.compile(r"contraction|urge")
_EQUIPMENT_WORDS = re.compile(r"mask|equipment|gear")


@dataclass
class CategoryEvaluation:
    """Severity of one E.N.C.L.O.S.E. category for the audited dive."""
    category: EncloseCategory
    title: str
    severity: int = 0
    reasons: list[str] = field(default_factory=list)
    drills: list[str] = field(default_factory=list)

    def raise_to(self, severity: int, reason: str, drills: list[str]) -> None:
        """Record a finding; severity only ever goes up."""
        self.severity = max(self.severity, min(severity, MAX_SEVERITY))
        self.reasons.append(reason)
        self.drills.extend(drills)


@dataclass(frozen=True)
class DiveTimes:
    total: Optional[int]
    bottom: int
    descent: Optional[int]
    ascent: Optional[int]


@dataclass(frozen=True)
class DiveSpeeds:
    descent_mps: Optional[float]
    ascent_mps: Optional[float]


@dataclass
class DerivedMetrics:
    total_seconds: Optional[int] = None
    bottom_seconds: int = 0
    descent_seconds: Optional[int] = None
    ascent_seconds: Optional[int] = None
    descent_speed_mps: Optional[float] = None
    ascent_speed_mps: Optional[float] = None
    vdi_sec_per_meter: Optional[float] = None
    freefall_start_m: Optional[float] = None


@dataclass
class AuditScores:
    """All scores are 0-5."""
    safety: int = 0
    technique: int = 0
    efficiency: int = 0
    readiness: int = 0
    final: int = 0


@dataclass
class DiveLogAudit:
    log_id: UUID
    evaluations: list[CategoryEvaluation]
    scores: AuditScores
    derived: DerivedMetrics
    flags: list[str] = field(default_factory=list)
    completeness_score: int = 0
    risk_score: int = 0
    is_personal_best: bool = False
    previous_best_depth: float = 0.0
    summary: str = ""
    suggestions: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    version: str = AUDIT_VERSION
    audited_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def flagged_categories(self) -> list[EncloseCategory]:
        return [e.category for e in self.evaluations if e.severity > 0]


# ---------------------------------------------------------------------------
# Derived Metrics
# ---------------------------------------------------------------------------

def derive_times(log: DiveLog) -> DiveTimes:
    """
    Fill in descent and ascent time when only the total is known.

    Travel time (total minus bottom time) is split 52/48, since the descent
    is usually a little slower than the ascent on a line dive.
    """
    total = log.total_time_seconds
    bottom = log.bottom_time_seconds or 0
    descent = log.descent_seconds
    ascent = log.ascent_seconds

    if total and not descent and not ascent:
        travel = max(total - bottom, 0)
        descent = round_half_up(travel * DESCENT_SHARE_OF_TRAVEL)
        ascent = max(travel - descent, 0)

    return DiveTimes(total=total, bottom=bottom, descent=descent, ascent=ascent)


def derive_speeds(
    depth: Optional[float],
    descent: Optional[int],
    ascent: Optional[int],
) -> DiveSpeeds:
    """Average vertical speeds in m/s, rounded to 3 decimals."""
    if not depth:
        return DiveSpeeds(descent_mps=None, ascent_mps=None)
    return DiveSpeeds(
        descent_mps=round(depth / descent, 3) if descent and descent > 0 else None,
        ascent_mps=round(depth / ascent, 3) if ascent and ascent > 0 else None,
    )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

def audit_dive_log(log: DiveLog, history: Optional[list[DiveLog]] = None) -> DiveLogAudit:
    """
    Audit one dive against the diver's recent history.

    `history` is the diver's logs. Only dives logged before this one count,
    ordered by dive date and then creation time, so neither the audited log
    nor a later dive on the same day can be a previous best.
    """
    logged_at = (log.date, log.created_at)
    history = [
        h for h in (history or [])
        if h.id != log.id and (h.date, h.created_at) < logged_at
    ]

    times = derive_times(log)
    speeds = derive_speeds(log.reached_depth, times.descent, times.ascent)
    depth = log.reached_depth or 0.0

    derived = DerivedMetrics(
        total_seconds=times.total,
        bottom_seconds=times.bottom,
        descent_seconds=times.descent,
        ascent_seconds=times.ascent,
        descent_speed_mps=speeds.descent_mps,
        ascent_speed_mps=speeds.ascent_mps,
        vdi_sec_per_meter=(
            round(times.total / depth, 3) if times.total and depth else None
        ),
        freefall_start_m=log.mouthfill_depth,
    )

    evaluations = _evaluate_categories(log, speeds)
    scores = _score(log, evaluations, speeds, times)

    previous_best = max((h.reached_depth or 0.0 for h in history), default=0.0)
    is_pb = depth > previous_best

    flags = _reasonability_flags(log, times, speeds)
    if is_pb:
        flags.append("personal_best")

    return DiveLogAudit(
        log_id=log.id,
        evaluations=evaluations,
        scores=scores,
        derived=derived,
        flags=flags,
        completeness_score=_completeness(log),
        risk_score=_risk_score(log, flags),
        is_personal_best=is_pb,
        previous_best_depth=previous_best,
        summary=_summary(log, scores, evaluations),
        suggestions=_suggestions(log, speeds),
        action_items=_action_items(evaluations),
    )


def _evaluate_categories(log: DiveLog, speeds: DiveSpeeds) -> list[CategoryEvaluation]:
    evaluations = {
        category: CategoryEvaluation(category=category, title=title)
        for category, title in CATEGORY_TITLES.items()
    }
    comment = (log.issue_comment or "").lower()
    depth = log.reached_depth or 0.0
    narcosis = log.narcosis_level or 0

    eq = evaluations[EncloseCategory.EQUALIZATION]
    if log.ear_squeeze:
        eq.raise_to(3, "Ear squeeze reported", ["Dry EQ practice", "Valsalva to Frenzel transition"])
    if log.issue_depth and _EQ_WORDS.search(comment):
        eq.raise_to(
            2,
            f"EQ issue at {format_depth(log.issue_depth)}m",
            ["Mouthfill depth progression"],
        )

    if depth > NARCOSIS_DEPTH_M and narcosis >= 2:
        evaluations[EncloseCategory.NARCOSIS].raise_to(
            3 if narcosis >= 3 else 2,
            f"Narcosis level {narcosis} at {format_depth(depth)}m",
            ["CO2/O2 recalibration", "Depth progression halt"],
        )

    co2 = evaluations[EncloseCategory.CO2]
    if _CONTRACTION_WORDS.search(comment):
        co2.raise_to(2, "Early contractions/urge to breathe",
                     ["CO2 tables (2x/week max)", "Visualization training"])
    if log.exit_status == ExitStatus.EARLY_TURN:
        co2.raise_to(1, "Early turn on ascent", ["Static hangs", "Streamlining practice"])

    legs = evaluations[EncloseCategory.LEG_BURN]
    if _LEG_WORDS.search(comment):
        legs.raise_to(2, "Reported leg/finning issues",
                      ["Finning technique drills", "Glute strengthening"])
    if speeds.descent_mps and speeds.descent_mps < SLOW_DESCENT_SPEED and depth > SLOW_DESCENT_DEPTH_M:
        legs.raise_to(1, "Slow descent suggests finning inefficiency",
                      ["Kick stroke cycle adjustment"])

    o2 = evaluations[EncloseCategory.O2]
    if log.lung_squeeze or log.exit_status in (ExitStatus.LMC, ExitStatus.BLACKOUT):
        o2.raise_to(3, "Severe O2 depletion signs",
                    ["O2 Protocol: 2.5min ON/1min OFF", "Recovery breathing"])
    if log.recovery_quality is not None and log.recovery_quality <= 2:
        o2.raise_to(2, "Poor recovery quality",
                    ["Extended surface intervals", "Breathing protocols"])

    squeeze = evaluations[EncloseCategory.SQUEEZE]
    if log.lung_squeeze:
        squeeze.raise_to(3, "Lung squeeze detected",
                         ["Thoracic squeeze prevention", "NPD practice"])
    if log.ear_squeeze:
        squeeze.raise_to(2, "Ear squeeze detected", ["Dry EQ drills", "Flexibility training"])

    if _EQUIPMENT_WORDS.search(comment):
        evaluations[EncloseCategory.EQUIPMENT].raise_to(
            1, "Equipment issues reported",
            ["Equipment fitting check", "Streamlining review"],
        )

    return list(evaluations.values())


def _score(
    log: DiveLog,
    evaluations: list[CategoryEvaluation],
    speeds: DiveSpeeds,
    times: DiveTimes,
) -> AuditScores:
    total_severity = sum(e.severity for e in evaluations)
    max_severity = MAX_SEVERITY * len(evaluations)
    safety = max(0, 5 - round_half_up(total_severity / max_severity * 5))

    technique = 3
    if speeds.descent_mps and speeds.ascent_mps:
        good = (
            GOOD_DESCENT_SPEED[0] <= speeds.descent_mps <= GOOD_DESCENT_SPEED[1]
            and GOOD_ASCENT_SPEED[0] <= speeds.ascent_mps <= GOOD_ASCENT_SPEED[1]
        )
        technique = 5 if good else 3

    depth = log.reached_depth or 0.0
    if depth > 0 and times.total:
        efficiency = min(5, round_half_up(depth / times.total * 30))
    else:
        efficiency = 3

    readiness = _READINESS_BY_ATTEMPT.get(log.attempt_type, 3)

    final = round_half_up(
        safety * 0.4 + technique * 0.3 + efficiency * 0.2 + readiness * 0.1
    )

    return AuditScores(
        safety=safety,
        technique=technique,
        efficiency=efficiency,
        readiness=readiness,
        final=final,
    )


def _reasonability_flags(log: DiveLog, times: DiveTimes, speeds: DiveSpeeds) -> list[str]:
    flags = []
    if (log.reached_depth or 0) <= 0:
        flags.append("depth_missing_or_zero")
    if times.total and times.total > VERY_LONG_DIVE_SECONDS:
        flags.append("very_long_total_time")
    if speeds.descent_mps and speeds.descent_mps > FAST_DESCENT_SPEED:
        flags.append("descent_too_fast")
    if speeds.ascent_mps and speeds.ascent_mps > FAST_ASCENT_SPEED:
        flags.append("ascent_too_fast")
    if log.ear_squeeze:
        flags.append("ear_squeeze_reported")
    if log.lung_squeeze:
        flags.append("lung_squeeze_reported")
    if log.exit_status == ExitStatus.LMC:
        flags.append("lmc_reported")
    if log.exit_status == ExitStatus.BLACKOUT:
        flags.append("blackout_reported")
    if (log.narcosis_level or 0) >= 3:
        flags.append("narcosis_concern")
    if log.recovery_quality is not None and log.recovery_quality <= 2:
        flags.append("poor_recovery")
    return flags


def _completeness(log: DiveLog) -> int:
    """Percentage of the key log fields that were filled in."""
    required = [
        log.date,
        log.discipline,
        log.location,
        log.reached_depth,
        log.total_time_seconds,
    ]
    present = sum(1 for value in required if value not in (None, ""))
    return round_half_up(present / len(required) * 100)


def _risk_score(log: DiveLog, flags: list[str]) -> int:
    """0-100 risk: depth exposure, speed and physiology terms."""
    depth_risk = min(max((log.reached_depth or 0) / RISK_REFERENCE_DEPTH_M * 40, 0), 40)

    speed_risk = 0
    if "ascent_too_fast" in flags:
        speed_risk += 15
    if "descent_too_fast" in flags:
        speed_risk += 10

    physio_risk = 0
    if log.lung_squeeze:
        physio_risk += 25
    if log.ear_squeeze:
        physio_risk += 10
    if (log.narcosis_level or 0) >= 3:
        physio_risk += 10

    return round_half_up(min(max(depth_risk + speed_risk + physio_risk, 0), 100))


def _summary(
    log: DiveLog,
    scores: AuditScores,
    evaluations: list[CategoryEvaluation],
) -> str:
    discipline = log.discipline.value if log.discipline else "freedive"
    location = log.location or "unknown location"
    depth = format_depth(log.reached_depth or 0)
    key_areas = ", ".join(e.title for e in evaluations if e.severity > 0) or "No major issues"
    return (
        f"E.N.C.L.O.S.E. Analysis: {discipline} to {depth}m at {location}. "
        f"Overall score: {scores.final}/5. "
        f"Key areas: {key_areas}"
    )


def _suggestions(log: DiveLog, speeds: DiveSpeeds) -> list[str]:
    suggestions = []
    if speeds.ascent_mps and speeds.ascent_mps > SLOW_ASCENT_ADVICE_SPEED:
        suggestions.append("Slow your ascent to ~0.6-0.8 m/s.")
    if log.lung_squeeze:
        suggestions.append("Suspend deep attempts; return gradually after medical clearance.")
    if log.recovery_quality is not None and log.recovery_quality <= 2:
        suggestions.append("Add longer surface recovery and post-dive breathing protocol.")
    if log.mouthfill_depth is None and log.discipline == Discipline.CWT:
        suggestions.append("Record mouthfill depth to track equalization margin.")
    return suggestions or ["No immediate issues detected."]


def _action_items(evaluations: list[CategoryEvaluation]) -> list[str]:
    items = [
        f"{e.title}: {e.drills[0]}"
        for e in evaluations
        if e.severity > 0 and e.drills
    ]
    return items or ["Continue current training approach - no immediate concerns detected"]
