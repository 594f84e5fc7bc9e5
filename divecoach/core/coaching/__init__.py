"""
LLM-backed coaching.

Implementations of LanguageModelClient live in infrastructure.
"""

from .coach import (
    CLEAR_DIVE_CHECKLIST,
    CoachReply,
    CoachResponseError,
    DiveCoach,
    EQPlan,
    LanguageModelClient,
    UserLevel,
    detect_user_level,
)

__all__ = [
    "CLEAR_DIVE_CHECKLIST",
    "CoachReply",
    "CoachResponseError",
    "DiveCoach",
    "EQPlan",
    "LanguageModelClient",
    "UserLevel",
    "detect_user_level",
]
