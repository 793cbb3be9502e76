"""Validation oracle tests — score parsing, threshold boundary, fail-open."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

import pytest

from ai_visibility.exceptions import RateLimitedError, UpstreamError
from ai_visibility.services.competitor_validator import (
    CompetitorValidator,
    is_accepted,
    parse_score,
)
from ai_visibility.timing import Deadline, bind_deadline


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class ScriptedLM:
    """Replies per candidate name; an exception value is raised instead."""

    def __init__(self, by_candidate):
        self.by_candidate = by_candidate
        self.prompts = []

    async def complete(self, prompt):
        self.prompts.append(prompt)
        for name, reply in self.by_candidate.items():
            if prompt.startswith(f"You are a business analyst. Rate how likely it is that {name} "):
                if isinstance(reply, Exception):
                    raise reply
                return reply
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


# ===================================================================
# parse_score / is_accepted
# ===================================================================

class TestParseScore:

    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("85", 85),
            ("Score: 72/100", 72),
            ("I'd say 150", 100),
            ("no idea", 0),
            ("", 0),
            (None, 0),
        ],
    )
    def test_first_integer_clamped(self, reply, expected):
        assert parse_score(reply) == expected

    def test_threshold_boundary(self):
        assert not is_accepted(59)
        assert is_accepted(60)


# ===================================================================
# validate()
# ===================================================================

class TestValidate:

    def test_threshold_filters_and_preserves_order(self):
        lm = ScriptedLM({"Bolt": "85", "Zen": "60", "Generic": "59", "Flux": "Likely 90"})
        sleep = SleepRecorder()
        validator = CompetitorValidator(lm, delay=0.5, sleep=sleep)

        accepted = asyncio.run(validator.validate("Acme", ["Bolt", "Generic", "Zen", "Flux"]))

        assert accepted == ["Bolt", "Zen", "Flux"]
        assert sleep.delays == [0.5, 0.5, 0.5]

    def test_upstream_failure_is_fail_open(self):
        lm = ScriptedLM({"Bolt": UpstreamError("down"), "Zen": RateLimitedError("429"), "Generic": "10"})
        validator = CompetitorValidator(lm, sleep=SleepRecorder())

        accepted = asyncio.run(validator.validate("Acme", ["Bolt", "Zen", "Generic"]))
        assert accepted == ["Bolt", "Zen"]

    def test_no_scorer_keeps_top_ten_without_calls(self):
        validator = CompetitorValidator(None)
        candidates = [f"C{i}" for i in range(15)]

        assert asyncio.run(validator.validate("Acme", candidates)) == candidates[:10]
        assert not validator.enabled

    def test_empty_candidates(self):
        lm = ScriptedLM({})
        assert asyncio.run(CompetitorValidator(lm).validate("Acme", [])) == []
        assert lm.prompts == []

    def test_deadline_accepts_remaining_unscored(self):
        lm = ScriptedLM({"Bolt": "5"})
        validator = CompetitorValidator(lm, sleep=SleepRecorder())

        async def go():
            with bind_deadline(Deadline(0)):
                return await validator.validate("Acme", ["Bolt", "Zen"])

        assert asyncio.run(go()) == ["Bolt", "Zen"]
        assert lm.prompts == []

    def test_prompt_mentions_industry(self):
        lm = ScriptedLM({"Bolt": "70"})
        validator = CompetitorValidator(lm, sleep=SleepRecorder())

        verdict = asyncio.run(validator.score_candidate("Acme", "Bolt", "fintech"))

        assert verdict.score == 70
        assert verdict.accepted
        assert "direct competitor to Acme in the fintech industry" in lm.prompts[0]

    def test_score_candidate_propagates_upstream_error(self):
        validator = CompetitorValidator(ScriptedLM({"Bolt": UpstreamError("down")}))
        with pytest.raises(UpstreamError):
            asyncio.run(validator.score_candidate("Acme", "Bolt"))

    def test_unexpected_scoring_error_only_affects_that_candidate(self):
        lm = ScriptedLM({"Bolt": asyncio.TimeoutError(), "Zen": "40", "Flux": RuntimeError("bug"), "Nova": "75"})
        validator = CompetitorValidator(lm, sleep=SleepRecorder())

        accepted = asyncio.run(validator.validate("Acme", ["Bolt", "Zen", "Flux", "Nova"]))

        assert accepted == ["Bolt", "Flux", "Nova"]
