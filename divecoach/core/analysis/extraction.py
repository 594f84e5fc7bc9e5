"""
Pull dive numbers out of a chat message.

Divers often describe a dive in passing ("CWT to 42m in 2:05, squeezed a
bit"). When they do, the coach can validate and use those numbers without
asking for a formal log entry.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from ..diagnostics.models import Discipline


_DISCIPLINE_PATTERNS = [
    (re.compile(r"\bconstant weight\b"), Discipline.CWT),
    (re.compile(r"\bfree immersion\b"), Discipline.FIM),
    (re.compile(r"\bstatic\b"), Discipline.STA),
] + [
    (re.compile(rf"\b{d.value.lower()}\b"), d) for d in Discipline
]

_DEPTH_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:m|meters?|metres?)\b")
_TIME_PATTERN = re.compile(
    r"\b(\d+):(\d{2})\b|\b(\d+)\s*(min(?:ute)?s?|sec(?:ond)?s?)\b"
)

_ISSUE_PATTERNS = [
    ("squeeze", re.compile(r"squeez")),
    ("equalization", re.compile(r"equali[sz]")),
    ("narcosis", re.compile(r"narcosis|narced")),
    ("blackout_risk", re.compile(r"blackout|\blmc\b")),
    ("turn_technique", re.compile(r"\bturn|\bbottom\b")),
]


@dataclass
class ExtractedDiveData:
    discipline: Optional[Discipline] = None
    depth: Optional[float] = None          # Deepest depth mentioned
    target_depth: Optional[float] = None
    reached_depth: Optional[float] = None
    total_time: Optional[str] = None       # As written
    total_seconds: Optional[int] = None
    issues: list[str] = field(default_factory=list)


def _find_discipline(text: str) -> Optional[Discipline]:
    """Discipline mentioned first in the text."""
    found = []
    for pattern, discipline in _DISCIPLINE_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append((match.start(), discipline))
    return min(found, key=lambda f: f[0])[1] if found else None


def _find_time(text: str) -> tuple[Optional[str], Optional[int]]:
    match = _TIME_PATTERN.search(text)
    if not match:
        return None, None

    if match.group(1) is not None:
        return match.group(0), int(match.group(1)) * 60 + int(match.group(2))

    amount = int(match.group(3))
    seconds = amount * 60 if match.group(4).startswith("min") else amount
    return match.group(0), seconds


def extract_dive_data(message: str) -> Optional[ExtractedDiveData]:
    """
    Extract discipline, depths, time and issue keywords from free text.

    Returns None when the message has no discipline, depth or time in it.
    """
    text = message.lower()
    data = ExtractedDiveData(discipline=_find_discipline(text))

    depths = [float(m.group(1)) for m in _DEPTH_PATTERN.finditer(text)]
    if depths:
        data.depth = max(depths)
        if "target" in text or "planned" in text:
            data.target_depth = depths[0]
        if re.search(r"reached|achieved|\bhit\b", text):
            data.reached_depth = depths[-1]

    data.total_time, data.total_seconds = _find_time(text)

    data.issues = [name for name, pattern in _ISSUE_PATTERNS if pattern.search(text)]

    if data.discipline is None and data.depth is None and data.total_time is None:
        return None
    return data
