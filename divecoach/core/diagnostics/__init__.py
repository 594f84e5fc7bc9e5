"""
Dive diagnostics.

Contains the E.N.C.L.O.S.E. rule engine, free-text triage, the per-log
audit and the domain models they share.
"""

from .models import (
    AttemptType,
    Discipline,
    DiveLog,
    DivePerformanceData,
    EncloseAssessment,
    EncloseCategory,
    EqFailureType,
    ExitStatus,
    Priority,
    SqueezeType,
)
from .enclose import coaching_advice, diagnose_with_enclose, summarize_assessments
from .mapping import parse_time_to_seconds, performance_data_from_log
from .triage import TriageReport, match_issue, triage_issue
from .audit import DiveLogAudit, audit_dive_log

__all__ = [
    "AttemptType",
    "Discipline",
    "DiveLog",
    "DivePerformanceData",
    "EncloseAssessment",
    "EncloseCategory",
    "EqFailureType",
    "ExitStatus",
    "Priority",
    "SqueezeType",
    "coaching_advice",
    "diagnose_with_enclose",
    "summarize_assessments",
    "parse_time_to_seconds",
    "performance_data_from_log",
    "TriageReport",
    "match_issue",
    "triage_issue",
    "DiveLogAudit",
    "audit_dive_log",
]
