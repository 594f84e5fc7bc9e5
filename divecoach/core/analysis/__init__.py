"""
Analysis across dive logs and chat input.

Depth-bucket pattern analysis, dive data validation and extraction of
dive numbers from free text.
"""

from .patterns import InsufficientDataError, PatternReport, analyze_patterns, cluster_issues_by_depth
from .validation import ValidationResult, validate_dive_data
from .extraction import ExtractedDiveData, extract_dive_data

__all__ = [
    "InsufficientDataError",
    "PatternReport",
    "analyze_patterns",
    "cluster_issues_by_depth",
    "ValidationResult",
    "validate_dive_data",
    "ExtractedDiveData",
    "extract_dive_data",
]
