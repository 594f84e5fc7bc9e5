"""
Pattern analysis across a diver's recent logs.

The core idea is depth-bucket clustering: divers tend to hit the same wall at
the same depth band, so issues are grouped into 10m buckets and any bucket
where problems keep recurring is reported as a plateau. Around that sit the
simpler aggregates a coach looks at in a weekly review: progression per
discipline, safety incidents, and how consistently targets are hit.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from ..diagnostics.enclose import round_half_up
from ..diagnostics.models import Discipline, DiveLog, EncloseCategory, ExitStatus
from ..diagnostics.triage import match_issue


BUCKET_SIZE_M = 10
MAX_BUCKET_M = 100

PLATEAU_MIN_ISSUES = 2
PLATEAU_MIN_ISSUE_RATE = 0.5

DEFAULT_MIN_DIVES = 3
DEFAULT_TIMEFRAME_DAYS = 30

# Mean depth change between the two halves of the period
TREND_THRESHOLD_M = 1.0

MODERATE_INCIDENT_RATE = 0.1
HIGH_INCIDENT_RATE = 0.25

_EQ_WORDS = re.compile(r"\beq\b|equali[sz]")
_INCIDENT_WORDS = ("squeeze", "blackout", "lmc")


class InsufficientDataError(Exception):
    """Not enough dives in the period to say anything meaningful."""
    pass


class Trend(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskLevel(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class TrainingPhase(Enum):
    RECOVERY = "recovery"
    TECHNIQUE = "technique"
    PROGRESSION = "progression"


@dataclass
class DepthBucketCluster:
    """Dives and issues that fell in one 10m depth band."""
    bucket_m: int
    dive_count: int = 0
    issue_count: int = 0
    category_counts: Counter = field(default_factory=Counter)

    @property
    def issue_rate(self) -> float:
        if not self.dive_count:
            return 0.0
        return self.issue_count / self.dive_count

    @property
    def dominant_category(self) -> Optional[EncloseCategory]:
        """Most frequent category; ties go to the earlier E.N.C.L.O.S.E. letter."""
        if not self.category_counts:
            return None
        order = list(EncloseCategory)
        return min(
            self.category_counts,
            key=lambda c: (-self.category_counts[c], order.index(c)),
        )

    @property
    def label(self) -> str:
        if self.bucket_m >= MAX_BUCKET_M:
            return f"{MAX_BUCKET_M}m+"
        return f"{self.bucket_m}-{self.bucket_m + BUCKET_SIZE_M - 1}m"


@dataclass(frozen=True)
class DisciplineProgression:
    discipline: Discipline
    average_depth: int
    max_depth: float
    count: int
    trend_m: float  # Last dive minus first dive, chronologically


@dataclass(frozen=True)
class SafetyIncident:
    log_id: UUID
    date: date
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class TrainingPlan:
    phase: TrainingPhase
    duration_weeks: int
    focus_areas: tuple[str, ...]


@dataclass
class PatternReport:
    """Everything the weekly review needs, computed from stored logs only."""
    timeframe_days: int
    total_dives: int
    first_date: date
    last_date: date
    disciplines: list[Discipline]
    clusters: list[DepthBucketCluster]
    plateaus: list[DepthBucketCluster]
    progression: dict[Discipline, DisciplineProgression]
    safety_incidents: list[SafetyIncident]
    category_totals: dict[EncloseCategory, int]
    overall_trend: Trend
    consistency: Optional[float]
    risk_level: RiskLevel
    training_plan: TrainingPlan


# ---------------------------------------------------------------------------
# Depth Buckets
# ---------------------------------------------------------------------------

def depth_bucket(depth: Optional[float]) -> Optional[int]:
    """
    Floor a depth to its 10m bucket, capped at 100m.

    Missing or non-positive depths have no bucket.
    """
    if depth is None or depth <= 0:
        return None
    return min(int(depth // BUCKET_SIZE_M) * BUCKET_SIZE_M, MAX_BUCKET_M)


def issue_categories(log: DiveLog) -> set[EncloseCategory]:
    """E.N.C.L.O.S.E. categories a log points at, from its text and flags."""
    text = log.issue_text
    categories = {m.category for m in match_issue(text)} if text else set()

    if _EQ_WORDS.search(text):
        categories.add(EncloseCategory.EQUALIZATION)
    if log.any_squeeze:
        categories.add(EncloseCategory.SQUEEZE)
    if log.exit_status in (ExitStatus.LMC, ExitStatus.BLACKOUT):
        categories.add(EncloseCategory.O2)
    if (log.narcosis_level or 0) >= 2:
        categories.add(EncloseCategory.NARCOSIS)

    return categories


def has_issue(log: DiveLog) -> bool:
    if issue_categories(log):
        return True
    return bool(log.issue_depth) or bool((log.issue_comment or "").strip())


def cluster_issues_by_depth(logs: list[DiveLog]) -> list[DepthBucketCluster]:
    """
    Group dives into depth buckets and count the issues in each.

    A dive lands in the bucket of its issue depth when one was logged,
    otherwise in the bucket of its reached depth. Dives with neither are
    left out. Buckets come back shallowest first.
    """
    clusters: dict[int, DepthBucketCluster] = {}

    for log in logs:
        bucket = depth_bucket(log.issue_depth or log.reached_depth)
        if bucket is None:
            continue

        cluster = clusters.setdefault(bucket, DepthBucketCluster(bucket_m=bucket))
        cluster.dive_count += 1

        if has_issue(log):
            cluster.issue_count += 1
            cluster.category_counts.update(issue_categories(log))

    return [clusters[b] for b in sorted(clusters)]


def plateau_depths(clusters: list[DepthBucketCluster]) -> list[DepthBucketCluster]:
    """Buckets where issues keep recurring."""
    return [
        c for c in clusters
        if c.issue_count >= PLATEAU_MIN_ISSUES and c.issue_rate >= PLATEAU_MIN_ISSUE_RATE
    ]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

def _chronological(logs: list[DiveLog]) -> list[DiveLog]:
    return sorted(logs, key=lambda log: (log.date, log.created_at))


def progression_by_discipline(logs: list[DiveLog]) -> dict[Discipline, DisciplineProgression]:
    """Average, best and trend of reached depth for each discipline."""
    depths: dict[Discipline, list[float]] = {}

    for log in _chronological(logs):
        if log.discipline is None:
            continue
        depth = log.reached_depth or log.target_depth
        if depth:
            depths.setdefault(log.discipline, []).append(depth)

    return {
        discipline: DisciplineProgression(
            discipline=discipline,
            average_depth=round_half_up(sum(values) / len(values)),
            max_depth=max(values),
            count=len(values),
            trend_m=values[-1] - values[0] if len(values) > 1 else 0.0,
        )
        for discipline, values in depths.items()
    }


def safety_incidents(logs: list[DiveLog]) -> list[SafetyIncident]:
    """Dives with a squeeze, LMC or blackout, flagged or written in the comment."""
    incidents = []

    for log in _chronological(logs):
        reasons = []
        if log.any_squeeze:
            reasons.append("squeeze")
        if log.exit_status == ExitStatus.LMC:
            reasons.append("lmc")
        if log.exit_status == ExitStatus.BLACKOUT:
            reasons.append("blackout")

        comment = (log.issue_comment or "").lower()
        for word in _INCIDENT_WORDS:
            if word in comment and word not in reasons:
                reasons.append(word)

        if reasons:
            incidents.append(SafetyIncident(log_id=log.id, date=log.date, reasons=tuple(reasons)))

    return incidents


def overall_trend(logs: list[DiveLog]) -> Trend:
    """Compare mean reached depth in the first and second half of the period."""
    depths = [log.reached_depth for log in _chronological(logs) if log.reached_depth]
    if len(depths) < 2:
        return Trend.STABLE

    half = len(depths) // 2
    earlier, later = depths[:half], depths[half:]
    delta = sum(later) / len(later) - sum(earlier) / len(earlier)

    if delta >= TREND_THRESHOLD_M:
        return Trend.IMPROVING
    if delta <= -TREND_THRESHOLD_M:
        return Trend.DECLINING
    return Trend.STABLE


def target_consistency(logs: list[DiveLog]) -> Optional[float]:
    """Share of dives with a target that reached it, to 2 decimals."""
    attempts = [
        log for log in logs
        if log.target_depth and log.reached_depth is not None
    ]
    if not attempts:
        return None
    hits = sum(1 for log in attempts if log.reached_depth >= log.target_depth)
    return round(hits / len(attempts), 2)


def risk_level(logs: list[DiveLog], incidents: list[SafetyIncident]) -> RiskLevel:
    if any(log.lung_squeeze or log.exit_status == ExitStatus.BLACKOUT for log in logs):
        return RiskLevel.HIGH

    rate = len(incidents) / len(logs) if logs else 0.0
    if rate >= HIGH_INCIDENT_RATE:
        return RiskLevel.HIGH
    if rate >= MODERATE_INCIDENT_RATE:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


def suggest_training_plan(
    risk: RiskLevel,
    plateaus: list[DepthBucketCluster],
    category_totals: dict[EncloseCategory, int],
) -> TrainingPlan:
    """
    Pick the next training block.

    Safety first: a high-risk period means recovery. Recurring issues at a
    depth band, or a moderate risk, mean technique work at current depths.
    Only a clean period earns progression.
    """
    if risk == RiskLevel.HIGH:
        return TrainingPlan(
            phase=TrainingPhase.RECOVERY,
            duration_weeks=2,
            focus_areas=(
                "Conservative depths well inside comfort zone",
                "Longer surface intervals and rest days",
                "Medical check if symptoms persist",
            ),
        )

    if plateaus or risk == RiskLevel.MODERATE:
        focus = []
        for cluster in plateaus:
            category = cluster.dominant_category
            if category is not None:
                area = f"{category.display_name} at {cluster.label}"
                if area not in focus:
                    focus.append(area)
        for category, _ in Counter(category_totals).most_common(2):
            if not any(a.startswith(category.display_name) for a in focus):
                focus.append(category.display_name)
        return TrainingPlan(
            phase=TrainingPhase.TECHNIQUE,
            duration_weeks=4,
            focus_areas=tuple(focus) or ("Technique refinement",),
        )

    return TrainingPlan(
        phase=TrainingPhase.PROGRESSION,
        duration_weeks=4,
        focus_areas=(
            "Gradual depth increase in 2-3m steps",
            "Maintain relaxation and technique at new depths",
        ),
    )


def analyze_patterns(
    logs: list[DiveLog],
    timeframe_days: int = DEFAULT_TIMEFRAME_DAYS,
    min_dives: int = DEFAULT_MIN_DIVES,
    as_of: Optional[date] = None,
) -> PatternReport:
    """
    Build a pattern report over the last `timeframe_days` of logs.

    Raises:
        InsufficientDataError: Fewer than `min_dives` dives in the period
        ValueError: `min_dives` is below 1
    """
    if min_dives < 1:
        raise ValueError("min_dives must be at least 1")

    cutoff = (as_of or date.today()) - timedelta(days=timeframe_days)
    recent = _chronological([log for log in logs if log.date >= cutoff])

    if len(recent) < min_dives:
        raise InsufficientDataError(
            f"Need at least {min_dives} dives for pattern analysis, "
            f"found {len(recent)} in the last {timeframe_days} days"
        )

    clusters = cluster_issues_by_depth(recent)
    plateaus = plateau_depths(clusters)
    incidents = safety_incidents(recent)
    risk = risk_level(recent, incidents)

    totals: Counter = Counter()
    for log in recent:
        totals.update(issue_categories(log))
    category_totals = {c: totals[c] for c in EncloseCategory if totals[c]}

    disciplines = []
    for log in recent:
        if log.discipline is not None and log.discipline not in disciplines:
            disciplines.append(log.discipline)

    return PatternReport(
        timeframe_days=timeframe_days,
        total_dives=len(recent),
        first_date=recent[0].date,
        last_date=recent[-1].date,
        disciplines=disciplines,
        clusters=clusters,
        plateaus=plateaus,
        progression=progression_by_discipline(recent),
        safety_incidents=incidents,
        category_totals=category_totals,
        overall_trend=overall_trend(recent),
        consistency=target_consistency(recent),
        risk_level=risk,
        training_plan=suggest_training_plan(risk, plateaus, category_totals),
    )
