"""
Freediving coaching logic and prompt management.

The coach wraps a language model with what the rest of the package knows
about the diver: their level, their recent dives and any numbers in the
message itself. Dive numbers that fail the safety checks are answered
with a safety alert and never reach the model.

The prompts are here, not in config, because they're core business logic.
Changing them changes what the coach tells people about diving deep, so
they are reviewed like code.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from ..analysis.extraction import ExtractedDiveData, extract_dive_data
from ..analysis.patterns import depth_bucket
from ..analysis.validation import validate_dive_data
from ..diagnostics.enclose import format_depth
from ..diagnostics.models import DiveLog

logger = logging.getLogger(__name__)


EXPERT_PB_THRESHOLD_M = 80
MAX_CONTEXT_LOGS = 5

CLEAR_DIVE_CHECKLIST = (
    "C - Contractions timing ≥ ⅓ of planned dive time?",
    "L - Legs calm on descent, no early burn?",
    "E - Equalization smooth and repeatable?",
    "A - Any O₂ symptoms (tunnel vision, stars) absent?",
    "R - Rising doubts or distraction absent?",
    "D - Discomfort in chest/throat absent?",
    "I - Impairment from narcosis absent?",
    "V - Vision clear, no distortion?",
    "E - Equipment fully functional?",
)

COACHING_PHILOSOPHY = {
    "quote": "Mouthfill Depth × Relative Volume (1x–5x) = Max Equalization Depth",
    "reminder": "If it's not a CLEAR DIVE, don't go DEEP",
    "principle": "Perfect technique > maximum depth",
}

MEDICAL_DISCLAIMER = (
    "This is coaching advice only. Always dive with proper supervision and "
    "consult medical professionals for health concerns. Never dive alone."
)


class CoachResponseError(Exception):
    """The model answered, but not in the shape we asked for."""
    pass


class UserLevel(Enum):
    BEGINNER = "beginner"
    EXPERT = "expert"


def detect_user_level(personal_best: Optional[float] = None, is_instructor: bool = False) -> UserLevel:
    """Instructors and divers past 80m get the expert register."""
    if is_instructor or (personal_best or 0) > EXPERT_PB_THRESHOLD_M:
        return UserLevel.EXPERT
    return UserLevel.BEGINNER


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class LanguageModelClient(Protocol):
    """
    Interface for text LLM clients.

    The coach only needs something that takes a conversation and a system
    prompt and answers with text, so tests can pass a plain fake.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str,
    ) -> str:
        """Return the model's reply to the conversation."""
        ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are an experienced freediving coach who works through problems with the E.N.C.L.O.S.E. framework: Equalization, Narcosis, CO2 tolerance, Leg burn, O2 tolerance, Squeeze and Equipment.

## Your Approach
- Safety before depth. If a dive shows squeeze, LMC or blackout signs, say so first and recommend stepping back.
- Find the root cause before prescribing drills. Ask a follow-up question when the cause is unclear.
- Prescribe one or two focused changes per session, with concrete drills.
- Progress depth in small steps, and only after a CLEAR DIVE.

## Rules
- Never encourage diving alone or beyond the diver's demonstrated ability.
- Refer to a medical professional for blood, persistent pain or loss of consciousness.
- If it's not a CLEAR DIVE, don't go DEEP."""


LEVEL_GUIDANCE = {
    UserLevel.BEGINNER: "The diver is a beginner. Use plain language, explain terms, and keep progressions conservative.",
    UserLevel.EXPERT: "The diver is an expert or instructor. Use technical terminology and discuss fine technique.",
}


DIVE_CONTEXT_TEMPLATE = """## Recent dives (newest first)
{dive_lines}"""


EQ_PLAN_SYSTEM_PROMPT = """You are an equalization planning assistant for freedivers. Work out mouthfill depth and equalization cadence for a target depth.

RULES:
- Mouthfill depth x relative volume (1x-5x) = maximum equalization depth.
- If the reverse pack depth is unknown, say so and describe how to test it safely.
- Keep a safety margin between the theoretical maximum and the target.
- Return a single JSON object and nothing else."""


EQ_PLAN_USER_TEMPLATE = """Generate an EQ plan for:
- Target depth: {target_depth}m
- Max reverse pack: {max_reverse_pack}
- Experience: {experience}

Return JSON with: mouthfillDepth, volumeRecommendation, cadenceBands, totalEQCount, theoreticalMaxDepth, safetyMargin, notes, needsFlexibilityTraining, warnings."""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class CoachReply:
    message: str
    extracted: Optional[ExtractedDiveData] = None
    safety_alert: Optional[str] = None
    used_model: bool = True


@dataclass
class EQPlan:
    """Equalization plan for one target depth, as returned by the model."""
    target_depth: float
    mouthfill_depth: Optional[float] = None
    volume_recommendation: Optional[str] = None
    cadence_bands: list = field(default_factory=list)
    total_eq_count: Optional[int] = None
    theoretical_max_depth: Optional[float] = None
    safety_margin: Optional[float] = None
    notes: Optional[str] = None
    needs_flexibility_training: bool = False
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Coach Service
# ---------------------------------------------------------------------------

class DiveCoach:
    """
    The coaching service behind chat and EQ planning.

    Like the diagnostic rules it has no state beyond its model client;
    everything it knows about the diver is passed in per call.
    """

    def __init__(self, llm_client: LanguageModelClient) -> None:
        self._llm_client = llm_client

    async def chat(
        self,
        message: str,
        recent_logs: Optional[list[DiveLog]] = None,
        user_level: UserLevel = UserLevel.BEGINNER,
        history: Optional[list[dict[str, str]]] = None,
    ) -> CoachReply:
        """
        Answer a diver's message.

        Dive numbers found in the message are checked first. Impossible or
        unsafe numbers get a safety alert back instead of coaching.
        """
        if not message or not message.strip():
            raise ValueError("Message cannot be empty")

        extracted = extract_dive_data(message)
        if extracted is not None:
            validation = validate_dive_data(
                depth=extracted.depth,
                target_depth=extracted.target_depth,
                reached_depth=extracted.reached_depth,
                total_time=extracted.total_seconds,
                discipline=extracted.discipline.value if extracted.discipline else None,
            )
            if not validation.is_valid:
                logger.info(
                    "Rejected dive data in chat message",
                    extra={"errors": validation.errors},
                )
                return CoachReply(
                    message="Please provide realistic dive data for accurate coaching analysis.",
                    extracted=extracted,
                    safety_alert=f"SAFETY ALERT: {', '.join(validation.errors)}",
                    used_model=False,
                )

        messages = list(history or [])
        messages.append({"role": "user", "content": message})

        reply = await self._llm_client.complete(
            messages=messages,
            system_prompt=self.build_system_prompt(recent_logs or [], user_level),
        )

        return CoachReply(message=reply, extracted=extracted)

    async def generate_eq_plan(
        self,
        target_depth: float,
        max_reverse_pack: Optional[float] = None,
        experience: UserLevel = UserLevel.BEGINNER,
    ) -> EQPlan:
        """
        Ask the model for a mouthfill and cadence plan.

        Raises:
            ValueError: Target depth is not positive
            CoachResponseError: The model's reply is not a JSON object
        """
        if not target_depth or target_depth <= 0:
            raise ValueError("Valid target depth required")

        user_prompt = EQ_PLAN_USER_TEMPLATE.format(
            target_depth=format_depth(target_depth),
            max_reverse_pack=(
                f"{format_depth(max_reverse_pack)}m" if max_reverse_pack else "unknown"
            ),
            experience=experience.value,
        )

        raw = await self._llm_client.complete(
            messages=[{"role": "user", "content": user_prompt}],
            system_prompt=EQ_PLAN_SYSTEM_PROMPT,
        )

        return self._parse_eq_plan(raw, target_depth)

    def build_system_prompt(self, recent_logs: list[DiveLog], user_level: UserLevel) -> str:
        sections = [SYSTEM_PROMPT, LEVEL_GUIDANCE[user_level]]

        if recent_logs:
            newest = sorted(recent_logs, key=lambda log: log.date, reverse=True)
            lines = [_describe_log(log) for log in newest[:MAX_CONTEXT_LOGS]]
            sections.append(DIVE_CONTEXT_TEMPLATE.format(dive_lines="\n".join(lines)))

        return "\n\n".join(sections)

    def _parse_eq_plan(self, raw: str, target_depth: float) -> EQPlan:
        text = _strip_code_fence(raw)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("EQ plan reply was not JSON", extra={"error": str(e)})
            raise CoachResponseError("Invalid response format from model") from e

        if not isinstance(payload, dict):
            raise CoachResponseError("Expected a JSON object for the EQ plan")

        warnings = payload.get("warnings") or []
        if isinstance(warnings, str):
            warnings = [warnings]

        return EQPlan(
            target_depth=target_depth,
            mouthfill_depth=_as_float(payload.get("mouthfillDepth")),
            volume_recommendation=_as_text(payload.get("volumeRecommendation")),
            cadence_bands=list(payload.get("cadenceBands") or []),
            total_eq_count=_as_int(payload.get("totalEQCount")),
            theoretical_max_depth=_as_float(payload.get("theoreticalMaxDepth")),
            safety_margin=_as_float(payload.get("safetyMargin")),
            notes=_as_text(payload.get("notes")),
            needs_flexibility_training=bool(payload.get("needsFlexibilityTraining", False)),
            warnings=[str(w) for w in warnings],
        )


_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_PATTERN.match(text)
    return match.group(1) if match else text


def _as_float(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_text(value) -> Optional[str]:
    return str(value) if value is not None else None


def _as_int(value) -> Optional[int]:
    number = _as_float(value)
    return int(number) if number is not None else None


def _describe_log(log: DiveLog) -> str:
    """One context line per dive: date, discipline, depth band, issues."""
    parts = [log.date.isoformat()]
    if log.discipline:
        parts.append(log.discipline.value)
    if log.reached_depth:
        depth = f"{format_depth(log.reached_depth)}m"
        if log.target_depth:
            depth += f" (target {format_depth(log.target_depth)}m)"
        bucket = depth_bucket(log.reached_depth)
        if bucket is not None:
            depth += f" [{bucket}m band]"
        parts.append(depth)
    if log.exit_status:
        parts.append(f"exit: {log.exit_status.value}")
    if log.any_squeeze:
        parts.append("squeeze reported")
    if log.issue_comment:
        parts.append(f"issue: {log.issue_comment}")
    return "- " + ", ".join(parts)
