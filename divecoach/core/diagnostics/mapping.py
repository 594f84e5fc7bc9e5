"""
Translate stored dive logs into diagnostic engine input.

A dive log is what the diver wrote down; the engine wants structured incident
fields. The mapping fills in what it can from flags and free-text notes and
uses conservative estimates where the log only says *that* something happened.
"""

import re
from typing import Optional

from .models import (
    Discipline,
    DiveLog,
    DivePerformanceData,
    ExitStatus,
    SqueezeType,
)

# Estimates used when notes mention an issue without numbers
ESTIMATED_CONTRACTIONS_START_SECONDS = 30
ESTIMATED_LEG_BURN_DEPTH_M = 20

_EQ_ISSUE_PATTERN = re.compile(r"\beq\b|equali[sz]|mouthfill|reverse pack")


def parse_time_to_seconds(text: Optional[str]) -> int:
    """
    Parse a dive time as written in a log.

    Accepts plain seconds ("95"), MM:SS ("1:35") and HH:MM:SS.
    Anything unparseable is treated as 0 so a sloppy entry never blocks
    a diagnosis.
    """
    if not text:
        return 0

    parts = [p.strip() for p in str(text).strip().split(":")]
    try:
        numbers = [int(float(p)) if p else 0 for p in parts]
    except ValueError:
        return 0

    if len(numbers) == 2:
        return numbers[0] * 60 + numbers[1]
    if len(numbers) == 3:
        return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
    if len(numbers) == 1:
        return numbers[0]
    return 0


def performance_data_from_log(log: DiveLog) -> DivePerformanceData:
    """Build engine input from a dive log."""
    reached = log.reached_depth or 0.0
    target = log.target_depth or reached
    text = log.issue_text

    data = DivePerformanceData(
        target_depth_m=target,
        reached_depth_m=reached,
        dive_time_seconds=log.total_time_seconds or 0,
        discipline=log.discipline or Discipline.CWT,
        mouthfill_depth=log.mouthfill_depth,
    )

    if log.issue_depth and (_EQ_ISSUE_PATTERN.search(text) or not text):
        data.eq_failure_depth = log.issue_depth

    if "early contractions" in text or "contractions early" in text:
        data.contractions_start_time = ESTIMATED_CONTRACTIONS_START_SECONDS

    if "leg burn" in text or "legs burning" in text:
        data.leg_burn_depth = log.issue_depth or ESTIMATED_LEG_BURN_DEPTH_M

    if "narcosis" in text or (log.narcosis_level or 0) >= 2:
        data.narcosis_symptoms = ["confusion"]
        if (log.narcosis_level or 0) >= 2:
            data.narcosis_depth = log.reached_depth

    if log.lung_squeeze:
        data.squeeze_type = SqueezeType.LUNG
    elif log.ear_squeeze:
        data.squeeze_type = SqueezeType.EAR
    elif log.squeeze:
        data.squeeze_type = SqueezeType.UNKNOWN

    if log.exit_status == ExitStatus.LMC:
        data.o2_symptoms = ["LMC"]
    elif log.exit_status == ExitStatus.BLACKOUT:
        data.o2_symptoms = ["blackout"]

    if any(word in text for word in ("mask", "nose clip", "wetsuit", "weight belt")):
        data.equipment_issues = [log.issue_comment or log.notes or "equipment"]

    return data
