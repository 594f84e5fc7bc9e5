"""
Free-text issue triage.

Divers rarely describe a problem in engine terms. They write "contractions
early and legs burning". Triage matches that text against trigger phrases
for each E.N.C.L.O.S.E. category. It returns the likely categories with the
follow-up questions a coach would ask next.
"""

from dataclasses import dataclass, field
from typing import Optional

from .models import DiveLog, EncloseCategory


@dataclass(frozen=True)
class CategoryProfile:
    """Trigger phrases, follow-up questions and first-line advice for a category."""
    name: str
    triggers: tuple[str, ...]
    questions: tuple[str, ...]
    recommendations: tuple[str, ...]


CATEGORY_PROFILES: dict[EncloseCategory, CategoryProfile] = {
    EncloseCategory.EQUALIZATION: CategoryProfile(
        name="Equalization Issues",
        triggers=("eq fail", "cant equalize", "mouthfill", "air stuck", "reverse pack"),
        questions=(
            "Did EQ fail at a specific depth?",
            "Was there tension or discomfort?",
            "Did you swallow your mouthfill or run out of air?",
            "Do you have air but can't equalize?",
        ),
        recommendations=(
            "Review mouthfill mechanics and timing",
            "Practice 100+ daily dry EQ reps (Level 1)",
            "Check soft palate and glottis control",
            "Verify head position (neutral/slight tuck)",
        ),
    ),
    EncloseCategory.NARCOSIS: CategoryProfile(
        name="Nitrogen Narcosis",
        triggers=("loopy", "tunnel vision", "slowed down", "forgot", "confusion"),
        questions=(
            "Any confusion, tunnel vision, euphoria at depth?",
            "Did it occur consistently at the same depth?",
        ),
        recommendations=(
            "Progress slowly in 2-3m increments",
            "Dive rested and relaxed",
            "Increase surface intervals",
            "Stop progression until symptoms disappear",
        ),
    ),
    EncloseCategory.CO2: CategoryProfile(
        name="CO2 Tolerance / Contractions",
        triggers=("contractions early", "urge to breathe", "panicked", "couldnt relax"),
        questions=(
            "When did contractions start?",
            "How intense were they?",
            "Did they disrupt focus or technique?",
        ),
        recommendations=(
            "Dry CO2 tables (1-2x/week max)",
            "Visualization drills pre-dive",
            "Urge-to-breathe static hangs",
            "Improve streamlining and relaxation",
        ),
    ),
    EncloseCategory.LEG_BURN: CategoryProfile(
        name="Leg Burn / Muscle Fatigue",
        triggers=("legs burning", "kick weak", "lost power", "bad form"),
        questions=(
            "Were legs burning early?",
            "Was finning tense or sloppy?",
            "Was sink phase triggered on time?",
        ),
        recommendations=(
            "Dynamic apnea sprints",
            "Anterior tibialis strengthening",
            "Use smaller training fins if form breaks",
            "Adjust sink phase timing",
        ),
    ),
    EncloseCategory.O2: CategoryProfile(
        name="O2 Tolerance / Recovery",
        triggers=("dizzy", "lmc", "blackout", "long recovery", "out of breath"),
        questions=(
            "LMC or blackout?",
            "Visual disturbances, cyanosis, tingling?",
            "Was recovery slow or incomplete?",
        ),
        recommendations=(
            "Step back 5-10m to rebuild confidence",
            "Dry O2 tables (1-2x/week max)",
            "Increase surface intervals and rest days",
            "Focus on complete recovery breathing",
        ),
    ),
    EncloseCategory.SQUEEZE: CategoryProfile(
        name="Squeeze Risk",
        triggers=("blood", "throat tight", "sinus pain", "coughing"),
        questions=(
            "Any throat scratch, cough, pain, or blood?",
            "Was the dive at or beyond RV?",
            "Cold conditions? Rapid descent?",
        ),
        recommendations=(
            "Rest 1-2 weeks if blood is present",
            "Restart at half depth and progress slowly",
            "Fix head and mouthfill technique",
            "Build flexibility with NPDs and MDR warm-ups",
        ),
    ),
    EncloseCategory.EQUIPMENT: CategoryProfile(
        name="Equipment Issues",
        triggers=("mask leak", "nose clip", "wetsuit tight", "fins", "something felt off"),
        questions=(
            "Mask leaks, fogging, pressure?",
            "Wetsuit too tight or compressing chest?",
            "Fins too soft or stiff?",
            "Weight belt sliding or pulling?",
        ),
        recommendations=(
            "Refit wetsuit and adjust thickness",
            "Use silicone belt to reduce slippage",
            "Replace or modify fins as needed",
            "Rebalance weight for 10m neutral buoyancy",
        ),
    ),
}

DEFAULT_QUESTIONS = [
    "Can you describe exactly when the issue occurred?",
    "Was this the first time experiencing this?",
    "What depth did it happen at?",
    "How did you handle it in the moment?",
]

DEFAULT_RECOMMENDATIONS = [
    "Document detailed dive log entry",
    "Consult with certified instructor",
    "Consider stepping back progression",
    "Focus on technique before depth",
]

CLEAR_DIVE_MAX_SCORE = 5
LOW_CLEAR_DIVE_SCORE = 3


@dataclass(frozen=True)
class IssueMatch:
    """A category whose trigger phrases appear in the description."""
    category: EncloseCategory
    name: str
    confidence: float  # Fraction of the category's triggers that matched
    matched_triggers: tuple[str, ...]
    questions: tuple[str, ...]
    recommendations: tuple[str, ...]


@dataclass
class TriageReport:
    """Result of triaging one free-text issue description."""
    primary_category: Optional[EncloseCategory]
    primary_issue: str
    confidence: float
    matches: list[IssueMatch] = field(default_factory=list)
    clear_dive_score: Optional[int] = None
    next_steps: list[str] = field(default_factory=list)
    diagnostic_questions: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def match_issue(description: str) -> list[IssueMatch]:
    """
    Score each category by how many of its trigger phrases the text contains.

    Matching is case-insensitive substring search. Ties keep the category
    order, so Equalization beats Equipment at equal confidence.
    """
    text = description.lower()
    matches = []

    for category, profile in CATEGORY_PROFILES.items():
        hits = tuple(t for t in profile.triggers if t in text)
        if not hits:
            continue
        matches.append(IssueMatch(
            category=category,
            name=profile.name,
            confidence=len(hits) / len(profile.triggers),
            matched_triggers=hits,
            questions=profile.questions,
            recommendations=profile.recommendations,
        ))

    return sorted(matches, key=lambda m: -m.confidence)


def clear_dive_score(matches: list[IssueMatch], dive_log: DiveLog) -> int:
    """
    CLEAR DIVE score out of 5 for a logged dive.

    One point is lost per E.N.C.L.O.S.E. category in play. A squeeze in the
    log counts for S even when the description never mentions it. The score
    never drops below zero.
    """
    present = {m.category for m in matches}
    if dive_log.any_squeeze:
        present.add(EncloseCategory.SQUEEZE)
    return max(0, CLEAR_DIVE_MAX_SCORE - len(present))


def triage_issue(description: str, dive_log: Optional[DiveLog] = None) -> TriageReport:
    """Triage a diver's own description of what went wrong."""
    if not description or not description.strip():
        raise ValueError("Issue description cannot be empty")

    matches = match_issue(description)
    score = clear_dive_score(matches, dive_log) if dive_log is not None else None
    primary = matches[0] if matches else None

    if primary is None:
        return TriageReport(
            primary_category=None,
            primary_issue="Needs further analysis",
            confidence=0.0,
            matches=[],
            clear_dive_score=score,
            next_steps=["Complete diagnostic questions above"],
            diagnostic_questions=list(DEFAULT_QUESTIONS),
            recommendations=list(DEFAULT_RECOMMENDATIONS),
        )

    if score is not None and score < LOW_CLEAR_DIVE_SCORE:
        closing_step = "Consider stepping back depth progression"
    else:
        closing_step = "Monitor for pattern repetition"

    return TriageReport(
        primary_category=primary.category,
        primary_issue=primary.name,
        confidence=primary.confidence,
        matches=matches,
        clear_dive_score=score,
        next_steps=[
            f"Focus on {primary.name} protocols",
            "Address root cause before progression",
            "Track improvement in next dive log",
            closing_step,
        ],
        diagnostic_questions=list(primary.questions),
        recommendations=list(primary.recommendations),
    )
