"""
Unit tests for the coaching service.

The language model is replaced by a fake that records what it was sent and
answers with canned text, so these tests check what the coach asks and how
it reads the answer.
"""

import asyncio
import json
from datetime import date
from uuid import uuid4

import pytest

from divecoach.core.coaching.coach import (
    LEVEL_GUIDANCE,
    MAX_CONTEXT_LOGS,
    SYSTEM_PROMPT,
    CoachResponseError,
    DiveCoach,
    UserLevel,
    detect_user_level,
)
from divecoach.core.diagnostics.models import Discipline, DiveLog


class FakeLanguageModel:
    def __init__(self, reply: str = "Relax your neck and take the mouthfill earlier.") -> None:
        self.reply = reply
        self.calls: list[dict] = []

    async def complete(self, messages, system_prompt):
        self.calls.append({"messages": messages, "system_prompt": system_prompt})
        return self.reply


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# User Level
# ---------------------------------------------------------------------------

class TestUserLevel:

    def test_defaults_to_beginner(self):
        assert detect_user_level() == UserLevel.BEGINNER

    def test_deep_divers_are_experts(self):
        assert detect_user_level(personal_best=80) == UserLevel.BEGINNER
        assert detect_user_level(personal_best=81) == UserLevel.EXPERT

    def test_instructors_are_experts(self):
        assert detect_user_level(personal_best=20, is_instructor=True) == UserLevel.EXPERT


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class TestChat:

    def test_empty_message_is_rejected(self):
        coach = DiveCoach(FakeLanguageModel())

        with pytest.raises(ValueError):
            run(coach.chat("   "))

    def test_plain_question_goes_to_model(self):
        llm = FakeLanguageModel()
        reply = run(DiveCoach(llm).chat("How do I relax on descent?"))

        assert reply.message == llm.reply
        assert reply.used_model is True
        assert reply.extracted is None
        assert llm.calls[0]["messages"] == [
            {"role": "user", "content": "How do I relax on descent?"}
        ]

    def test_history_comes_before_new_message(self):
        llm = FakeLanguageModel()
        history = [
            {"role": "user", "content": "I hit 40m yesterday"},
            {"role": "assistant", "content": "Nice. How did EQ feel?"},
        ]

        run(DiveCoach(llm).chat("EQ was tight past 35m", history=history))

        messages = llm.calls[0]["messages"]
        assert messages[:2] == history
        assert messages[-1]["content"] == "EQ was tight past 35m"

    def test_valid_dive_numbers_are_passed_through(self):
        llm = FakeLanguageModel()
        reply = run(DiveCoach(llm).chat("CWT target 45m, reached 42m in 2:05"))

        assert reply.used_model is True
        assert reply.safety_alert is None
        assert reply.extracted.reached_depth == 42

    def test_unrealistic_numbers_get_a_safety_alert(self):
        llm = FakeLanguageModel()
        reply = run(DiveCoach(llm).chat("CWT target 30m, reached 55m in 2:10"))

        assert reply.used_model is False
        assert llm.calls == []
        assert reply.safety_alert == (
            "SAFETY ALERT: Reached depth significantly exceeds target - safety concern"
        )
        assert reply.message == "Please provide realistic dive data for accurate coaching analysis."

    def test_impossible_depth(self):
        reply = run(DiveCoach(FakeLanguageModel()).chat("Did 450m CWT today"))
        assert "Depth must be between 0-300m" in reply.safety_alert


class TestSystemPrompt:

    def test_level_guidance_is_included(self):
        prompt = DiveCoach(FakeLanguageModel()).build_system_prompt([], UserLevel.EXPERT)

        assert prompt.startswith(SYSTEM_PROMPT)
        assert LEVEL_GUIDANCE[UserLevel.EXPERT] in prompt
        assert "Recent dives" not in prompt

    def test_recent_logs_newest_first_and_capped(self):
        user_id = uuid4()
        logs = [
            DiveLog(user_id=user_id, date=date(2026, 10, day), discipline=Discipline.CWT,
                    reached_depth=30 + day, target_depth=40)
            for day in range(1, 8)
        ]

        prompt = DiveCoach(FakeLanguageModel()).build_system_prompt(logs, UserLevel.BEGINNER)
        lines = [line for line in prompt.splitlines() if line.startswith("- 2026")]

        assert len(lines) == MAX_CONTEXT_LOGS
        assert lines[0] == "- 2026-10-07, CWT, 37m (target 40m) [30m band]"

    def test_incidents_are_described(self):
        log = DiveLog(user_id=uuid4(), date=date(2026, 10, 1), ear_squeeze=True,
                      issue_comment="EQ stopped at 28m")

        prompt = DiveCoach(FakeLanguageModel()).build_system_prompt([log], UserLevel.BEGINNER)
        assert "- 2026-10-01, squeeze reported, issue: EQ stopped at 28m" in prompt


# ---------------------------------------------------------------------------
# EQ Plan
# ---------------------------------------------------------------------------

class TestEQPlan:

    def plan_json(self, **overrides):
        payload = {
            "mouthfillDepth": 30,
            "volumeRecommendation": "half",
            "cadenceBands": [{"from": 0, "to": 30, "every_m": 2}],
            "totalEQCount": "18",
            "theoreticalMaxDepth": 60,
            "safetyMargin": 15,
            "notes": "Test reverse packing on land first",
            "needsFlexibilityTraining": True,
            "warnings": "Reverse pack unknown",
        }
        payload.update(overrides)
        return json.dumps(payload)

    def test_plan_is_parsed(self):
        llm = FakeLanguageModel(self.plan_json())
        plan = run(DiveCoach(llm).generate_eq_plan(45))

        assert plan.target_depth == 45
        assert plan.mouthfill_depth == 30.0
        assert plan.total_eq_count == 18
        assert plan.cadence_bands == [{"from": 0, "to": 30, "every_m": 2}]
        assert plan.needs_flexibility_training is True
        assert plan.warnings == ["Reverse pack unknown"]

    def test_prompt_mentions_target_and_reverse_pack(self):
        llm = FakeLanguageModel(self.plan_json())
        run(DiveCoach(llm).generate_eq_plan(45, max_reverse_pack=12.5, experience=UserLevel.EXPERT))

        content = llm.calls[0]["messages"][0]["content"]
        assert "Target depth: 45m" in content
        assert "Max reverse pack: 12.5m" in content
        assert "Experience: expert" in content

    def test_unknown_reverse_pack(self):
        llm = FakeLanguageModel(self.plan_json())
        run(DiveCoach(llm).generate_eq_plan(45))
        assert "Max reverse pack: unknown" in llm.calls[0]["messages"][0]["content"]

    def test_fenced_json_is_accepted(self):
        llm = FakeLanguageModel(f"```json\n{self.plan_json()}\n```")
        plan = run(DiveCoach(llm).generate_eq_plan(45))
        assert plan.safety_margin == 15.0

    def test_non_numeric_fields_become_none(self):
        llm = FakeLanguageModel(self.plan_json(mouthfillDepth="around 30", totalEQCount=None))
        plan = run(DiveCoach(llm).generate_eq_plan(45))

        assert plan.mouthfill_depth is None
        assert plan.total_eq_count is None

    def test_prose_reply_is_an_error(self):
        llm = FakeLanguageModel("Take your mouthfill at 30m.")

        with pytest.raises(CoachResponseError, match="Invalid response format from model"):
            run(DiveCoach(llm).generate_eq_plan(45))

    def test_json_list_is_an_error(self):
        with pytest.raises(CoachResponseError):
            run(DiveCoach(FakeLanguageModel("[1, 2]")).generate_eq_plan(45))

    @pytest.mark.parametrize("target", [0, -10])
    def test_target_must_be_positive(self, target):
        with pytest.raises(ValueError):
            run(DiveCoach(FakeLanguageModel()).generate_eq_plan(target))
