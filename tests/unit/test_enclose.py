"""
Unit tests for the E.N.C.L.O.S.E. diagnostic engine.

Every rule is a pure function of the dive data, so these tests build
DivePerformanceData by hand and check what comes out.
"""

import pytest

from divecoach.core.diagnostics.enclose import (
    coaching_advice,
    diagnose_with_enclose,
    round_half_up,
    summarize_assessments,
)
from divecoach.core.diagnostics.models import (
    DivePerformanceData,
    EncloseCategory,
    EqFailureType,
    NeckPosition,
    Priority,
    SqueezeType,
)


def make_dive(**overrides) -> DivePerformanceData:
    values = {
        "target_depth_m": 40,
        "reached_depth_m": 40,
        "dive_time_seconds": 120,
    }
    values.update(overrides)
    return DivePerformanceData(**values)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TestCleanDive:
    """A dive with nothing reported."""

    def test_no_incidents_gives_no_assessments(self):
        assert diagnose_with_enclose(make_dive()) == []

    def test_clean_dive_gets_encouragement(self):
        advice = coaching_advice([])
        assert advice[0] == "Excellent dive! No major issues detected."
        assert len(advice) == 2

    def test_negative_depth_is_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            make_dive(reached_depth_m=-1)


class TestEqualization:
    """Plateau bands and failure types."""

    def test_58m_plateau(self):
        [assessment] = diagnose_with_enclose(make_dive(eq_failure_depth=58))

        assert assessment.category == EncloseCategory.EQUALIZATION
        assert assessment.priority == Priority.HIGH
        assert assessment.diagnosis == "58m plateau - classic mouthfill timing issue"
        assert "Take mouthfill earlier (30-40m)" in assessment.recommendations

    def test_70_82m_plateau(self):
        [assessment] = diagnose_with_enclose(make_dive(eq_failure_depth=75))
        assert assessment.diagnosis == "70-82m plateau - pocket management failure"
        assert "Glottis lock holds" in assessment.training_drills

    def test_85m_belongs_to_both_bands_and_reports_the_deeper(self):
        """85m sits on the boundary; causes from both bands are kept."""
        [assessment] = diagnose_with_enclose(make_dive(eq_failure_depth=85))

        assert assessment.diagnosis == "88-98m plateau - technique breakdown under pressure"
        assert "Glottis micro-leaks" in assessment.root_causes
        assert "EQ stride collapse" in assessment.root_causes
        assert "Check for tongue-soft-palate lock compensation" in assessment.safety_flags

    def test_depth_outside_bands_keeps_generic_diagnosis(self):
        [assessment] = diagnose_with_enclose(make_dive(eq_failure_depth=30))
        assert assessment.diagnosis == "Equalization failure"

    def test_swallowed_mouthfill_is_critical(self):
        [assessment] = diagnose_with_enclose(
            make_dive(eq_failure_type=EqFailureType.SWALLOWED_MOUTHFILL)
        )

        assert assessment.priority == Priority.CRITICAL
        assert assessment.diagnosis == "Mouthfill management failure"
        assert "Do not attempt mouthfill until technique is solid" in assessment.safety_flags

    def test_extended_neck_adds_cause(self):
        [assessment] = diagnose_with_enclose(make_dive(
            eq_failure_type=EqFailureType.CANT_EQUALIZE,
            neck_position=NeckPosition.EXTENDED,
        ))
        assert "Neck extension kinking Eustachian tubes" in assessment.root_causes


class TestNarcosis:

    def test_deep_narcosis_needs_medical_review(self):
        [assessment] = diagnose_with_enclose(make_dive(narcosis_depth=45))

        assert assessment.category == EncloseCategory.NARCOSIS
        assert assessment.priority == Priority.MEDIUM
        assert assessment.diagnosis == "Nitrogen narcosis at 45m"
        assert assessment.safety_flags == [
            "Significant narcosis - medical evaluation recommended"
        ]

    def test_symptoms_without_depth(self):
        [assessment] = diagnose_with_enclose(make_dive(narcosis_symptoms=["euphoria"]))

        assert assessment.diagnosis == "Nitrogen narcosis at unknown depth"
        assert assessment.safety_flags == []


class TestCO2:
    """Contractions are judged as a fraction of total dive time."""

    def test_very_early_contractions(self):
        [assessment] = diagnose_with_enclose(
            make_dive(dive_time_seconds=100, contractions_start_time=10)
        )

        assert assessment.category == EncloseCategory.CO2
        assert assessment.priority == Priority.HIGH
        assert assessment.diagnosis == "Early contractions at 10% of dive"
        assert assessment.safety_flags == ["Very early contractions - check for medical issues"]

    def test_moderately_early_contractions(self):
        [assessment] = diagnose_with_enclose(
            make_dive(dive_time_seconds=100, contractions_start_time=25)
        )

        assert assessment.priority == Priority.MEDIUM
        assert assessment.safety_flags == []

    def test_contractions_after_a_third_are_normal(self):
        assert diagnose_with_enclose(
            make_dive(dive_time_seconds=100, contractions_start_time=40)
        ) == []


class TestLegBurn:

    def test_burn_in_first_half_of_depth(self):
        [assessment] = diagnose_with_enclose(make_dive(reached_depth_m=30, leg_burn_depth=10))

        assert assessment.category == EncloseCategory.LEG_BURN
        assert assessment.diagnosis == "Leg fatigue at 10m (early in dive)"

    def test_burn_late_in_dive_is_ignored(self):
        assert diagnose_with_enclose(make_dive(reached_depth_m=30, leg_burn_depth=20)) == []


class TestO2AndSqueeze:

    def test_lmc_is_critical(self):
        [assessment] = diagnose_with_enclose(make_dive(o2_symptoms=["LMC"]))

        assert assessment.priority == Priority.CRITICAL
        assert assessment.diagnosis == "O2 symptoms: LMC"
        assert assessment.safety_flags == [
            "Serious O2 symptoms - immediate depth reduction required"
        ]

    def test_mild_o2_symptoms_are_high(self):
        [assessment] = diagnose_with_enclose(make_dive(o2_symptoms=["tingling"]))

        assert assessment.priority == Priority.HIGH
        assert assessment.safety_flags == ["Monitor for progression of symptoms"]

    def test_lung_squeeze_prescribes_rest(self):
        [assessment] = diagnose_with_enclose(make_dive(squeeze_type=SqueezeType.LUNG))

        assert assessment.priority == Priority.CRITICAL
        assert assessment.diagnosis == "lung squeeze detected"
        assert assessment.recommendations[0] == "Rest 1-2 weeks, restart at half depth"

    def test_ear_squeeze_stops_diving(self):
        [assessment] = diagnose_with_enclose(make_dive(squeeze_type=SqueezeType.EAR))
        assert assessment.recommendations[0] == "Stop diving immediately"


# ---------------------------------------------------------------------------
# Ordering and Summary
# ---------------------------------------------------------------------------

class TestOrdering:

    def test_critical_first(self):
        assessments = diagnose_with_enclose(make_dive(
            eq_failure_depth=30,
            squeeze_type=SqueezeType.EAR,
            equipment_issues=["mask leak"],
        ))

        assert [a.category for a in assessments] == [
            EncloseCategory.SQUEEZE,
            EncloseCategory.EQUALIZATION,
            EncloseCategory.EQUIPMENT,
        ]

    def test_equal_priority_keeps_letter_order(self):
        assessments = diagnose_with_enclose(make_dive(
            equipment_issues=["mask leak"],
            narcosis_symptoms=["confusion"],
        ))

        assert [a.category for a in assessments] == [
            EncloseCategory.NARCOSIS,
            EncloseCategory.EQUIPMENT,
        ]


class TestSummary:

    def test_counts_and_safety(self):
        assessments = diagnose_with_enclose(make_dive(
            eq_failure_depth=30,
            squeeze_type=SqueezeType.EAR,
        ))
        summary = summarize_assessments(assessments)

        assert summary.critical_issues == 1
        assert summary.high_priority_issues == 1
        assert summary.total_issues == 2
        assert summary.safe_to_continue is False

    def test_medium_issues_without_flags_are_safe(self):
        assessments = diagnose_with_enclose(make_dive(
            narcosis_symptoms=["confusion"],
            equipment_issues=["wetsuit tight"],
        ))
        assert summarize_assessments(assessments).safe_to_continue is True

    def test_equalization_with_squeeze_points_to_technique(self):
        assessments = diagnose_with_enclose(make_dive(
            eq_failure_depth=30,
            squeeze_type=SqueezeType.EAR,
        ))
        advice = coaching_advice(assessments)

        assert advice[0] == "CRITICAL: Stop depth progression immediately."
        assert "High priority issues detected - address before next session." in advice
        assert advice[-1] == "Equalization + squeeze = technique issue. Work with instructor."


def test_round_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
