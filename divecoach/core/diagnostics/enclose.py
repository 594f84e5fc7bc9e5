"""
E.N.C.L.O.S.E. diagnostic engine.

Routes the incidents reported on a dive to root causes and actionable
fixes. Each letter is a separate rule function; the engine runs the ones
whose trigger fields are present and sorts the results by urgency.

The rules are a plain table of thresholds and phrases. Coaches
review and change them like any other code, so they live here rather than
in configuration.
"""

from dataclasses import dataclass

from .models import (
    DivePerformanceData,
    EncloseAssessment,
    EncloseCategory,
    EqFailureType,
    NeckPosition,
    Priority,
    SqueezeType,
)


# Contractions earlier than this fraction of the dive point at CO2 tolerance
EARLY_CONTRACTIONS_RATIO = 0.33
HIGH_PRIORITY_CONTRACTIONS_RATIO = 0.2
MEDICAL_CONTRACTIONS_RATIO = 0.15

# Leg burn before this fraction of reached depth is "early"
EARLY_LEG_BURN_RATIO = 0.5

NARCOSIS_MEDICAL_DEPTH_M = 40

SERIOUS_O2_SYMPTOMS = ("blackout", "lmc", "visual")


def diagnose_with_enclose(data: DivePerformanceData) -> list[EncloseAssessment]:
    """
    Run every E.N.C.L.O.S.E. rule that applies to this dive.

    Returns assessments ordered critical first. Python's sort is stable, so
    assessments of equal priority stay in E, N, C, L, O, S, E2 order.
    """
    assessments: list[EncloseAssessment] = []

    if data.eq_failure_depth or data.eq_failure_type:
        assessments.append(_diagnose_equalization(data))

    if data.narcosis_depth or data.narcosis_symptoms:
        assessments.append(_diagnose_narcosis(data))

    if data.contractions_start_time and data.dive_time_seconds:
        ratio = data.contractions_start_time / data.dive_time_seconds
        if ratio < EARLY_CONTRACTIONS_RATIO:
            assessments.append(_diagnose_co2(data, ratio))

    if data.leg_burn_depth and data.leg_burn_depth < data.reached_depth_m * EARLY_LEG_BURN_RATIO:
        assessments.append(_diagnose_leg_burn(data))

    if data.o2_symptoms:
        assessments.append(_diagnose_o2(data))

    if data.squeeze_type:
        assessments.append(_diagnose_squeeze(data))

    if data.equipment_issues:
        assessments.append(_diagnose_equipment(data))

    return sorted(assessments, key=lambda a: a.priority.rank)


# ---------------------------------------------------------------------------
# Category Rules
# ---------------------------------------------------------------------------

def _diagnose_equalization(data: DivePerformanceData) -> EncloseAssessment:
    root_causes: list[str] = []
    recommendations: list[str] = []
    training_drills: list[str] = []
    safety_flags: list[str] = []

    diagnosis = "Equalization failure"
    priority = Priority.HIGH

    if data.eq_failure_type == EqFailureType.CANT_EQUALIZE:
        diagnosis = "Unable to equalize - technique or anatomy issue"
        root_causes += ["Poor Frenzel technique", "Soft palate or glottis tension"]
        recommendations += ["Review basic Frenzel mechanics", "Practice soft palate control"]
        training_drills += ["100+ daily dry EQ reps (shirtless, in mirror)", "Tongue-out EQ test"]

    if data.eq_failure_type == EqFailureType.SWALLOWED_MOUTHFILL:
        diagnosis = "Mouthfill management failure"
        priority = Priority.CRITICAL
        root_causes += ["Poor glottis control", "Inadequate mouthfill technique"]
        recommendations.append("Master glottis lock before mouthfill progression")
        training_drills += ["Glottis isolation drills", "NPD progression"]
        safety_flags.append("Do not attempt mouthfill until technique is solid")

    if data.eq_failure_type == EqFailureType.AIR_RAN_OUT:
        diagnosis = "Insufficient air volume for equalization"
        root_causes += ["Mouthfill too small or taken too shallow", "Inefficient EQ technique"]
        recommendations += ["Increase mouthfill volume or take deeper", "Improve EQ efficiency"]

    # Known plateau depths. The bands touch at 85m, where both apply
    # and the deeper band's diagnosis is the one reported.
    depth = data.eq_failure_depth
    if depth:
        if 55 <= depth <= 62:
            diagnosis = "58m plateau - classic mouthfill timing issue"
            root_causes += ["Late/too-small mouthfill", "Soft palate misrouting"]
            recommendations += ["Take mouthfill earlier (30-40m)", "Practice soft palate control"]

        if 68 <= depth <= 85:
            diagnosis = "70-82m plateau - pocket management failure"
            root_causes += [
                "Glottis micro-leaks",
                "Cheek recoil insufficient",
                "Narcosis affecting technique",
            ]
            recommendations += ["Strengthen glottic control", "Improve cheek counter-pressure"]
            training_drills += ["Glottis lock holds", "Cheek resistance training"]

        if 85 <= depth <= 102:
            diagnosis = "88-98m plateau - technique breakdown under pressure"
            root_causes += [
                "EQ stride collapse",
                "Neck extension",
                "Tongue retraction compensation",
            ]
            recommendations += ["Maintain neutral neck", "Smaller, more frequent EQ doses"]
            safety_flags.append("Check for tongue-soft-palate lock compensation")

    if data.neck_position == NeckPosition.EXTENDED:
        root_causes.append("Neck extension kinking Eustachian tubes")
        recommendations.append("Practice neutral or slightly tucked neck position")

    return EncloseAssessment(
        category=EncloseCategory.EQUALIZATION,
        priority=priority,
        diagnosis=diagnosis,
        root_causes=root_causes,
        recommendations=recommendations,
        training_drills=training_drills,
        next_steps=[
            "Fix technique issues before depth progression",
            "Test in controlled environment",
        ],
        safety_flags=safety_flags,
    )


def _diagnose_narcosis(data: DivePerformanceData) -> EncloseAssessment:
    depth_text = f"{format_depth(data.narcosis_depth)}m" if data.narcosis_depth else "unknown depth"
    safety_flags = []
    if data.narcosis_depth and data.narcosis_depth > NARCOSIS_MEDICAL_DEPTH_M:
        safety_flags.append("Significant narcosis - medical evaluation recommended")

    return EncloseAssessment(
        category=EncloseCategory.NARCOSIS,
        priority=Priority.MEDIUM,
        diagnosis=f"Nitrogen narcosis at {depth_text}",
        root_causes=["Depth beyond current adaptation", "Fatigue or elevated CO2"],
        recommendations=[
            "Progress slowly in 2-3m increments at this depth band",
            "Dive rested and relaxed",
            "Increase surface intervals",
        ],
        training_drills=["Mental rehearsal at target depth", "Visualization exercises"],
        next_steps=[
            "Stop progression until symptoms disappear",
            "Set conservative turn depth",
        ],
        safety_flags=safety_flags,
    )


def _diagnose_co2(data: DivePerformanceData, ratio: float) -> EncloseAssessment:
    priority = Priority.HIGH if ratio < HIGH_PRIORITY_CONTRACTIONS_RATIO else Priority.MEDIUM
    safety_flags = []
    if ratio < MEDICAL_CONTRACTIONS_RATIO:
        safety_flags.append("Very early contractions - check for medical issues")

    return EncloseAssessment(
        category=EncloseCategory.CO2,
        priority=priority,
        diagnosis=f"Early contractions at {round_half_up(ratio * 100)}% of dive",
        root_causes=[
            "Poor CO2 tolerance",
            "Inadequate warm-up",
            "Mental tension or anxiety",
            "Inefficient technique increasing O2 consumption",
        ],
        recommendations=[
            "Improve pre-dive relaxation",
            "Extend warm-up protocol",
            "Practice mental preparation techniques",
        ],
        training_drills=[
            "Dry CO2 tables (1-2x/week max)",
            "Urge-to-breathe static hangs",
            "Visualization exercises",
        ],
        next_steps=[
            "Reduce target depth until tolerance improves",
            "Focus on relaxation training",
        ],
        safety_flags=safety_flags,
    )


def _diagnose_leg_burn(data: DivePerformanceData) -> EncloseAssessment:
    return EncloseAssessment(
        category=EncloseCategory.LEG_BURN,
        priority=Priority.MEDIUM,
        diagnosis=f"Leg fatigue at {format_depth(data.leg_burn_depth)}m (early in dive)",
        root_causes=[
            "Poor finning technique",
            "Inadequate leg conditioning",
            "Inappropriate fins for skill level",
            "Rushed descent pace",
        ],
        recommendations=[
            "Improve finning efficiency",
            "Slow descent rate",
            "Consider softer training fins",
        ],
        training_drills=[
            "Dynamic apnea sprints",
            "Anterior tibialis strengthening",
            "Finning technique practice",
        ],
        next_steps=[
            "Focus on technique before depth progression",
            "Improve anaerobic capacity",
        ],
    )


def _diagnose_o2(data: DivePerformanceData) -> EncloseAssessment:
    symptoms = data.o2_symptoms
    serious = any(
        marker in symptom.lower()
        for symptom in symptoms
        for marker in SERIOUS_O2_SYMPTOMS
    )

    if serious:
        safety_flags = ["Serious O2 symptoms - immediate depth reduction required"]
    else:
        safety_flags = ["Monitor for progression of symptoms"]

    return EncloseAssessment(
        category=EncloseCategory.O2,
        priority=Priority.CRITICAL if serious else Priority.HIGH,
        diagnosis=f"O2 symptoms: {', '.join(symptoms)}",
        root_causes=[
            "Dive beyond current O2 tolerance",
            "Inefficient technique increasing consumption",
            "Inadequate surface intervals",
        ],
        recommendations=[
            "Reduce target depth by 5-10m",
            "Increase surface intervals",
            "Focus on efficiency training",
        ],
        training_drills=[
            "Dry O2 tables (1-2x/week max)",
            "Never combine with CO2 tables",
            "Complete hook breathing practice",
        ],
        next_steps=["Conservative progression until tolerance rebuilds"],
        safety_flags=safety_flags,
    )


def _diagnose_squeeze(data: DivePerformanceData) -> EncloseAssessment:
    squeeze_type = data.squeeze_type or SqueezeType.UNKNOWN

    if squeeze_type == SqueezeType.LUNG:
        first_step = "Rest 1-2 weeks, restart at half depth"
    else:
        first_step = "Stop diving immediately"

    return EncloseAssessment(
        category=EncloseCategory.SQUEEZE,
        priority=Priority.CRITICAL,
        diagnosis=f"{squeeze_type.value} squeeze detected",
        root_causes=[
            "Forced equalization under pressure",
            "Tense descent technique",
            "Dive beyond flexibility limits",
        ],
        recommendations=[
            first_step,
            "Review technique with instructor",
            "Medical evaluation if blood present",
        ],
        training_drills=[
            "Flexibility improvement (NPDs, MDR warm-ups)",
            "Relaxation training",
            "Technique refinement on land",
        ],
        next_steps=["Do not dive until cleared", "Progressive return at reduced depths"],
        safety_flags=["STOP DIVING - squeeze indicates injury risk"],
    )


def _diagnose_equipment(data: DivePerformanceData) -> EncloseAssessment:
    return EncloseAssessment(
        category=EncloseCategory.EQUIPMENT,
        priority=Priority.MEDIUM,
        diagnosis=f"Equipment issues: {', '.join(data.equipment_issues)}",
        root_causes=["Equipment malfunction or poor fit"],
        recommendations=["Address equipment issues before next dive"],
        training_drills=[],
        next_steps=["Test/replace equipment", "Practice with backup gear"],
    )


# ---------------------------------------------------------------------------
# Report Helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssessmentSummary:
    """Headline numbers for a set of assessments."""
    critical_issues: int
    high_priority_issues: int
    total_issues: int
    safe_to_continue: bool


def summarize_assessments(assessments: list[EncloseAssessment]) -> AssessmentSummary:
    """
    Count issues by urgency.

    A dive is only safe to build on when nothing is critical and no rule
    raised a safety flag.
    """
    return AssessmentSummary(
        critical_issues=sum(1 for a in assessments if a.priority == Priority.CRITICAL),
        high_priority_issues=sum(1 for a in assessments if a.priority == Priority.HIGH),
        total_issues=len(assessments),
        safe_to_continue=not any(
            a.priority == Priority.CRITICAL or a.safety_flags for a in assessments
        ),
    )


def coaching_advice(assessments: list[EncloseAssessment]) -> list[str]:
    """Short coach's verdict on a diagnosed dive."""
    if not assessments:
        return [
            "Excellent dive! No major issues detected.",
            "Continue current training approach and consider progressive depth increase.",
        ]

    advice: list[str] = []
    categories = {a.category for a in assessments}

    if any(a.priority == Priority.CRITICAL for a in assessments):
        advice.append("CRITICAL: Stop depth progression immediately.")
        advice.append("Focus on correcting critical issues before continuing.")

    if any(a.priority == Priority.HIGH for a in assessments):
        advice.append("High priority issues detected - address before next session.")

    if EncloseCategory.EQUALIZATION in categories:
        advice.append("Focus on equalization technique - foundation for all depth diving.")

    if {EncloseCategory.EQUALIZATION, EncloseCategory.SQUEEZE} <= categories:
        advice.append("Equalization + squeeze = technique issue. Work with instructor.")

    return advice


def round_half_up(value: float) -> int:
    """Round halves away from zero (12.5 -> 13), not to even."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def format_depth(depth: float) -> str:
    return str(int(depth)) if float(depth).is_integer() else str(depth)
