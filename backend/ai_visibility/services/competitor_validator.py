"""Validation Oracle — LM-scored competitor plausibility.

For each candidate, sequentially:
  1. Ask the LM for a 0-100 "is this a direct competitor" score
  2. Take the first integer in the reply (0 if none), clamp to 0-100
  3. Accept when score >= 60

Failure policy is FAIL-OPEN: when the scoring call itself errors (or the
overall deadline leaves no time to ask), the candidate is accepted. This
favours recall over precision while the oracle is unavailable.

Without a scoring client the oracle degrades to "accept the first 10
candidates by rank" and makes no LM calls.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from ..constants import (
    ACCEPTANCE_THRESHOLD,
    MAX_SCORE,
    MIN_SCORE,
    SCORING_PROMPT,
    UNVALIDATED_KEEP_LIMIT,
    industry_clause,
)
from ..exceptions import UpstreamError
from ..schemas.competitor_schema import ValidatedCompetitor
from ..timing import deadline_exceeded

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"\d+")


class CompletionBackend(Protocol):
    async def complete(self, prompt: str) -> str: ...


def parse_score(reply: Optional[str]) -> int:
    """First integer in ``reply``, clamped to [0, 100]; 0 when absent."""
    match = _INT_RE.search(reply or "")
    if not match:
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, int(match.group(0))))


def is_accepted(score: int) -> bool:
    return score >= ACCEPTANCE_THRESHOLD


class CompetitorValidator:
    """Scores candidates with an LM and filters them by threshold."""

    def __init__(
        self,
        lm: Optional[CompletionBackend],
        *,
        delay: float = 0.5,
        keep_limit: int = UNVALIDATED_KEEP_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._lm = lm
        self._delay = delay
        self._keep_limit = keep_limit
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self._lm is not None

    async def score_candidate(
        self,
        entity: str,
        candidate: str,
        industry: Optional[str] = None,
    ) -> ValidatedCompetitor:
        """Score one candidate. Raises UpstreamError if the LM call fails."""
        if self._lm is None:
            raise UpstreamError("no scoring client configured")
        prompt = SCORING_PROMPT.format(
            candidate=candidate,
            entity=entity,
            industry_clause=industry_clause(industry),
        )
        reply = await self._lm.complete(prompt)
        score = parse_score(reply)
        return ValidatedCompetitor(name=candidate, score=score, accepted=is_accepted(score))

    async def validate(
        self,
        entity: str,
        candidates: Sequence[str],
        industry: Optional[str] = None,
    ) -> List[str]:
        """Return the accepted candidates, preserving input order."""
        if not candidates:
            return []

        if self._lm is None:
            kept = list(candidates[: self._keep_limit])
            logger.warning(
                "[VALIDATE] No scoring client — accepting top %d of %d candidates unvalidated",
                len(kept), len(candidates),
            )
            return kept

        logger.info("[VALIDATE] Scoring %d candidates for %r", len(candidates), entity)
        accepted: List[str] = []
        for index, candidate in enumerate(candidates):
            if deadline_exceeded():
                logger.warning(
                    "[VALIDATE] Deadline exceeded — accepting %r unscored (fail-open)", candidate
                )
                accepted.append(candidate)
                continue

            try:
                verdict = await self.score_candidate(entity, candidate, industry)
            except Exception as exc:
                # Covers timeouts and client bugs too; only this candidate is affected
                logger.warning(
                    "[VALIDATE] Scoring %r failed (%s: %s) — accepting (fail-open)",
                    candidate, type(exc).__name__, exc,
                )
                accepted.append(candidate)
            else:
                if verdict.accepted:
                    accepted.append(candidate)
                logger.info(
                    "[VALIDATE] %s scored %d/100 — %s",
                    candidate, verdict.score, "VALID" if verdict.accepted else "REJECTED",
                )

            if index < len(candidates) - 1 and self._delay > 0 and not deadline_exceeded():
                await self._sleep(self._delay)

        logger.info("[VALIDATE] %d/%d candidates accepted", len(accepted), len(candidates))
        return accepted
