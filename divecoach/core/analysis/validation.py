"""
Sanity checks on dive numbers before they are used for coaching.

A typo like 1200m or a 40 minute "dive" must never be coached as if it were
real, so these limits are checked before anything is analyzed.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from ..diagnostics.mapping import parse_time_to_seconds
from ..diagnostics.models import Discipline


MAX_DEPTH_M = 300
MIN_DIVE_SECONDS = 30
MAX_DIVE_SECONDS = 15 * 60
MAX_OVERSHOOT_M = 10

VALID_DISCIPLINES = tuple(d.value for d in Discipline)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def _depth_in_range(value: Optional[float]) -> bool:
    return value is None or 0 <= value <= MAX_DEPTH_M


def validate_dive_data(
    depth: Optional[float] = None,
    target_depth: Optional[float] = None,
    reached_depth: Optional[float] = None,
    total_time: Optional[Union[str, int]] = None,
    discipline: Optional[str] = None,
) -> ValidationResult:
    """
    Check dive numbers against physical and safety limits.

    `total_time` may be seconds or a "M:SS" string. Unset values are not
    checked. All problems are reported, not just the first.
    """
    errors: list[str] = []

    if not _depth_in_range(depth):
        errors.append(f"Depth must be between 0-{MAX_DEPTH_M}m")
    if not _depth_in_range(target_depth):
        errors.append(f"Target depth must be between 0-{MAX_DEPTH_M}m")
    if not _depth_in_range(reached_depth):
        errors.append(f"Reached depth must be between 0-{MAX_DEPTH_M}m")

    if total_time not in (None, ""):
        if isinstance(total_time, str):
            seconds = parse_time_to_seconds(total_time)
        else:
            seconds = int(total_time)
        if not MIN_DIVE_SECONDS <= seconds <= MAX_DIVE_SECONDS:
            errors.append("Total dive time must be between 30 seconds and 15 minutes")

    if discipline and discipline.upper() not in VALID_DISCIPLINES:
        errors.append(f"Invalid discipline. Must be one of: {', '.join(VALID_DISCIPLINES)}")

    if reached_depth and target_depth and reached_depth > target_depth + MAX_OVERSHOOT_M:
        errors.append("Reached depth significantly exceeds target - safety concern")

    return ValidationResult(is_valid=not errors, errors=errors)
