"""
Domain models for dive diagnostics.

These models describe a freedive and what went wrong on it. They have no
dependencies on HTTP, databases or LLMs, so the diagnostic rules can be
exercised with plain values.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class Discipline(Enum):
    """Competitive freediving disciplines."""
    CWT = "CWT"    # Constant weight with fins
    CNF = "CNF"    # Constant weight no fins
    FIM = "FIM"    # Free immersion
    STA = "STA"    # Static apnea
    DYN = "DYN"    # Dynamic with fins
    DYNB = "DYNB"  # Dynamic bi-fins
    VWT = "VWT"    # Variable weight
    NLT = "NLT"    # No limits

    @property
    def is_depth(self) -> bool:
        return self in (
            Discipline.CWT, Discipline.CNF, Discipline.FIM,
            Discipline.VWT, Discipline.NLT,
        )


class Priority(Enum):
    """How urgently an assessment needs attention."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: 0 is most urgent."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class EncloseCategory(Enum):
    """
    The E.N.C.L.O.S.E. diagnostic categories.

    The order of members is the order in which the engine checks them.
    Equipment shares its letter with Equalization, hence E2.
    """
    EQUALIZATION = "E"
    NARCOSIS = "N"
    CO2 = "C"
    LEG_BURN = "L"
    O2 = "O"
    SQUEEZE = "S"
    EQUIPMENT = "E2"

    @property
    def display_name(self) -> str:
        return _CATEGORY_NAMES[self]


_CATEGORY_NAMES = {
    EncloseCategory.EQUALIZATION: "Equalization",
    EncloseCategory.NARCOSIS: "Narcosis",
    EncloseCategory.CO2: "CO2 Tolerance",
    EncloseCategory.LEG_BURN: "Leg Burn",
    EncloseCategory.O2: "O2 Tolerance",
    EncloseCategory.SQUEEZE: "Squeeze",
    EncloseCategory.EQUIPMENT: "Equipment",
}


class EqFailureType(Enum):
    CANT_EQUALIZE = "cant_equalize"
    PAINFUL = "painful"
    AIR_RAN_OUT = "air_ran_out"
    SWALLOWED_MOUTHFILL = "swallowed_mouthfill"


class SqueezeType(Enum):
    EAR = "ear"
    SINUS = "sinus"
    LUNG = "lung"
    THROAT = "throat"
    UNKNOWN = "unknown"  # Squeeze was logged without a location


class MouthfillSize(Enum):
    QUARTER = "quarter"
    HALF = "half"
    THREE_QUARTER = "three_quarter"
    FULL = "full"


class NeckPosition(Enum):
    EXTENDED = "extended"
    NEUTRAL = "neutral"
    TUCKED = "tucked"


class DescentStyle(Enum):
    TENSE = "tense"
    RELAXED = "relaxed"
    RUSHED = "rushed"


class ExitStatus(Enum):
    """How the dive ended at the surface."""
    CLEAN = "clean"
    EARLY_TURN = "early_turn"
    LMC = "lmc"            # Loss of motor control
    BLACKOUT = "blackout"


class AttemptType(Enum):
    TRAINING = "training"
    PB = "pb"
    COMP = "comp"


@dataclass
class DivePerformanceData:
    """
    Structured description of one dive and the incidents on it.

    This is the input to the E.N.C.L.O.S.E. engine. Only the basic dive
    numbers are required; every incident field is optional and absent
    fields simply don't trigger their category.
    """
    target_depth_m: float
    reached_depth_m: float
    dive_time_seconds: float
    discipline: Discipline = Discipline.CWT

    # Reported issues
    eq_failure_depth: Optional[float] = None
    eq_failure_type: Optional[EqFailureType] = None
    contractions_start_time: Optional[float] = None  # Seconds into the dive
    leg_burn_depth: Optional[float] = None
    narcosis_depth: Optional[float] = None
    narcosis_symptoms: list[str] = field(default_factory=list)
    o2_symptoms: list[str] = field(default_factory=list)
    squeeze_type: Optional[SqueezeType] = None
    equipment_issues: list[str] = field(default_factory=list)

    # Technique observations
    mouthfill_depth: Optional[float] = None
    mouthfill_size: Optional[MouthfillSize] = None
    mouthfill_lost: bool = False
    neck_position: Optional[NeckPosition] = None
    descent_style: Optional[DescentStyle] = None

    def __post_init__(self) -> None:
        if self.target_depth_m < 0 or self.reached_depth_m < 0:
            raise ValueError("Depths cannot be negative")
        if self.dive_time_seconds < 0:
            raise ValueError("Dive time cannot be negative")

    @property
    def target_ratio(self) -> Optional[float]:
        """Fraction of the target depth that was reached."""
        if not self.target_depth_m:
            return None
        return self.reached_depth_m / self.target_depth_m


@dataclass
class EncloseAssessment:
    """
    One diagnosed problem area.

    Root causes explain what went wrong, recommendations and drills say what
    to do about it, and safety flags are the things that must not be ignored.
    """
    category: EncloseCategory
    priority: Priority
    diagnosis: str
    root_causes: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    training_drills: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    safety_flags: list[str] = field(default_factory=list)


@dataclass
class DiveLog:
    """
    A stored record of one freediving session.

    Field names follow what divers actually write down after a dive.
    Everything but the owner and the date is optional because logs are
    often filled in from memory.
    """
    user_id: UUID
    date: date
    id: UUID = field(default_factory=uuid4)
    discipline: Optional[Discipline] = None
    location: Optional[str] = None
    target_depth: Optional[float] = None
    reached_depth: Optional[float] = None
    total_time_seconds: Optional[int] = None
    bottom_time_seconds: Optional[int] = None
    descent_seconds: Optional[int] = None
    ascent_seconds: Optional[int] = None
    mouthfill_depth: Optional[float] = None
    issue_depth: Optional[float] = None
    issue_comment: Optional[str] = None
    squeeze: bool = False
    ear_squeeze: bool = False
    lung_squeeze: bool = False
    narcosis_level: Optional[int] = None    # 0-5
    recovery_quality: Optional[int] = None  # 1-5
    exit_status: Optional[ExitStatus] = None
    attempt_type: Optional[AttemptType] = None
    surface_protocol: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.narcosis_level is not None and not 0 <= self.narcosis_level <= 5:
            raise ValueError("Narcosis level must be between 0 and 5")
        if self.recovery_quality is not None and not 1 <= self.recovery_quality <= 5:
            raise ValueError("Recovery quality must be between 1 and 5")

    @property
    def any_squeeze(self) -> bool:
        return self.squeeze or self.ear_squeeze or self.lung_squeeze

    @property
    def issue_text(self) -> str:
        """Issue comment and notes joined, lowercased, for keyword rules."""
        parts = [self.issue_comment or "", self.notes or ""]
        return " ".join(p for p in parts if p).lower()

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()
