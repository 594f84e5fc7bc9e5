"""
Unit tests for the single-dive technical audit.

Scores are derived from a handful of formulas, so the expected values here
are worked out by hand in the test docstrings where they are not obvious.
"""

from datetime import date, datetime
from uuid import uuid4

from divecoach.core.diagnostics.audit import (
    audit_dive_log,
    derive_speeds,
    derive_times,
)
from divecoach.core.diagnostics.models import (
    AttemptType,
    Discipline,
    DiveLog,
    EncloseCategory,
    ExitStatus,
)

EARLIER = date(2026, 9, 20)


def make_log(**overrides) -> DiveLog:
    values = {
        "user_id": uuid4(),
        "date": date(2026, 10, 1),
        "discipline": Discipline.CWT,
        "reached_depth": 40,
        "total_time_seconds": 100,
    }
    values.update(overrides)
    return DiveLog(**values)


def evaluation(audit, category):
    return next(e for e in audit.evaluations if e.category == category)


# ---------------------------------------------------------------------------
# Derived Metrics
# ---------------------------------------------------------------------------

class TestDerivedMetrics:

    def test_travel_time_split_52_48(self):
        """100s total with 10s on the bottom leaves 90s of travel."""
        times = derive_times(make_log(bottom_time_seconds=10))

        assert times.descent == 47
        assert times.ascent == 43

    def test_recorded_phase_times_are_kept(self):
        times = derive_times(make_log(descent_seconds=40, ascent_seconds=35))

        assert times.descent == 40
        assert times.ascent == 35

    def test_speeds_rounded_to_three_places(self):
        speeds = derive_speeds(40, 52, 48)

        assert speeds.descent_mps == 0.769
        assert speeds.ascent_mps == 0.833

    def test_no_depth_no_speeds(self):
        speeds = derive_speeds(None, 52, 48)
        assert speeds.descent_mps is None
        assert speeds.ascent_mps is None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class TestCleanAudit:

    def test_scores(self):
        """
        Clean 40m in 100s: no severities so safety 5, descent 0.769 m/s
        is outside the good window so technique 3, efficiency caps at 5,
        no attempt type so readiness 3. Final 2 + 0.9 + 1 + 0.3 = 4.2.
        """
        audit = audit_dive_log(make_log())

        assert audit.scores.safety == 5
        assert audit.scores.technique == 3
        assert audit.scores.efficiency == 5
        assert audit.scores.readiness == 3
        assert audit.scores.final == 4

    def test_derived_and_completeness(self):
        audit = audit_dive_log(make_log())

        assert audit.derived.descent_seconds == 52
        assert audit.derived.vdi_sec_per_meter == 2.5
        assert audit.completeness_score == 80  # location missing
        assert audit.risk_score == 13

    def test_first_dive_is_a_personal_best(self):
        audit = audit_dive_log(make_log())

        assert audit.is_personal_best is True
        assert audit.previous_best_depth == 0.0
        assert audit.flags == ["personal_best"]

    def test_summary_and_defaults(self):
        audit = audit_dive_log(make_log(location="Dahab", mouthfill_depth=25))

        assert audit.summary == (
            "E.N.C.L.O.S.E. Analysis: CWT to 40m at Dahab. "
            "Overall score: 4/5. Key areas: No major issues"
        )
        assert audit.suggestions == ["No immediate issues detected."]
        assert audit.action_items == [
            "Continue current training approach - no immediate concerns detected"
        ]
        assert audit.flagged_categories == []

    def test_missing_mouthfill_on_cwt_is_suggested(self):
        audit = audit_dive_log(make_log())
        assert "Record mouthfill depth to track equalization margin." in audit.suggestions

    def test_competition_readiness(self):
        audit = audit_dive_log(make_log(attempt_type=AttemptType.COMP))
        assert audit.scores.readiness == 5


class TestPersonalBest:

    def test_deeper_history_is_not_beaten(self):
        history = [make_log(date=EARLIER, reached_depth=45)]
        audit = audit_dive_log(make_log(), history=history)

        assert audit.is_personal_best is False
        assert audit.previous_best_depth == 45
        assert "personal_best" not in audit.flags

    def test_audited_log_is_ignored_in_history(self):
        log = make_log()
        audit = audit_dive_log(log, history=[log, make_log(date=EARLIER, reached_depth=35)])

        assert audit.is_personal_best is True
        assert audit.previous_best_depth == 35

    def test_equal_depth_is_not_a_new_best(self):
        audit = audit_dive_log(make_log(), history=[make_log(date=EARLIER, reached_depth=40)])
        assert audit.is_personal_best is False

    def test_later_dates_are_ignored(self):
        audit = audit_dive_log(make_log(), history=[make_log(date=date(2026, 10, 2), reached_depth=50)])

        assert audit.is_personal_best is True
        assert audit.previous_best_depth == 0

    def test_same_day_uses_creation_time(self):
        morning = make_log(reached_depth=38, created_at=datetime(2026, 10, 1, 8, 0))
        noon = make_log(reached_depth=44, created_at=datetime(2026, 10, 1, 12, 0))

        first = audit_dive_log(morning, history=[noon])
        second = audit_dive_log(noon, history=[morning])

        assert first.is_personal_best is True
        assert first.previous_best_depth == 0
        assert second.is_personal_best is True
        assert second.previous_best_depth == 38


class TestIncidents:

    def test_fast_ascent(self):
        """30m with a 25s ascent is 1.2 m/s."""
        log = make_log(reached_depth=30, total_time_seconds=60,
                       descent_seconds=30, ascent_seconds=25)
        audit = audit_dive_log(log, history=[make_log(date=EARLIER, reached_depth=50)])

        assert audit.derived.ascent_speed_mps == 1.2
        assert audit.flags == ["ascent_too_fast"]
        assert audit.risk_score == 25
        assert audit.suggestions[0] == "Slow your ascent to ~0.6-0.8 m/s."

    def test_lung_squeeze(self):
        """O2 and squeeze both at 3: 6/21 of max severity costs one safety point."""
        audit = audit_dive_log(make_log(lung_squeeze=True))

        assert evaluation(audit, EncloseCategory.O2).severity == 3
        assert evaluation(audit, EncloseCategory.SQUEEZE).severity == 3
        assert audit.scores.safety == 4
        assert "lung_squeeze_reported" in audit.flags
        assert audit.risk_score == 38
        assert (
            "Suspend deep attempts; return gradually after medical clearance."
            in audit.suggestions
        )

    def test_ear_squeeze_raises_eq_and_squeeze(self):
        audit = audit_dive_log(make_log(ear_squeeze=True))

        assert evaluation(audit, EncloseCategory.EQUALIZATION).severity == 3
        assert evaluation(audit, EncloseCategory.SQUEEZE).severity == 2
        assert audit.flagged_categories == [
            EncloseCategory.EQUALIZATION,
            EncloseCategory.SQUEEZE,
        ]
        assert audit.action_items[0] == "Equalization: Dry EQ practice"

    def test_eq_comment_with_depth(self):
        audit = audit_dive_log(make_log(issue_depth=38, issue_comment="EQ stopped working"))

        eq = evaluation(audit, EncloseCategory.EQUALIZATION)
        assert eq.severity == 2
        assert eq.reasons == ["EQ issue at 38m"]

    def test_mask_comment_is_equipment(self):
        audit = audit_dive_log(make_log(issue_comment="mask strap snapped"))
        assert evaluation(audit, EncloseCategory.EQUIPMENT).severity == 1

    def test_leg_words_are_whole_words(self):
        audit = audit_dive_log(make_log(issue_comment="felt legendary"))
        assert evaluation(audit, EncloseCategory.LEG_BURN).severity == 0

    def test_narcosis_only_counts_below_35m(self):
        shallow = audit_dive_log(make_log(reached_depth=30, narcosis_level=3))
        deep = audit_dive_log(make_log(reached_depth=40, narcosis_level=3))

        assert evaluation(shallow, EncloseCategory.NARCOSIS).severity == 0
        assert evaluation(deep, EncloseCategory.NARCOSIS).severity == 3
        assert "narcosis_concern" in deep.flags

    def test_blackout_and_poor_recovery(self):
        audit = audit_dive_log(make_log(exit_status=ExitStatus.BLACKOUT, recovery_quality=2))

        assert evaluation(audit, EncloseCategory.O2).severity == 3
        assert "blackout_reported" in audit.flags
        assert "poor_recovery" in audit.flags

    def test_missing_recovery_is_not_poor(self):
        audit = audit_dive_log(make_log())
        assert "poor_recovery" not in audit.flags
