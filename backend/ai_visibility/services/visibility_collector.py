"""Visibility Metrics Collector.

For an ordered list of entities, gathers:
  - citation count   (per entity, LM prompt, up to 2 attempts)
  - customer rating  (per entity, LM prompt, up to 2 attempts)
  - share of voice   (ONE batched LM prompt for the whole list)

Citation and rating lookups for one entity run concurrently; entities are
processed under a bounded worker pool. Unknown values stay ``None``; share
of voice defaults to 0 when unmatched or when the batched call fails.

``collect()`` never raises. When the overall deadline expires, unfinished
lookups are cancelled and whatever already arrived is kept.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..constants import (
    CITATION_PROMPT,
    RATING_PROMPT,
    SHARE_OF_VOICE_PROMPT,
    VISIBILITY_ATTEMPTS,
)
from ..exceptions import UpstreamError
from ..schemas.visibility_schema import ShareOfVoiceEntry, VisibilityRecord
from ..timing import deadline_exceeded, remaining_time
from .json_extractor import extract, extract_object

logger = logging.getLogger(__name__)


class CompletionBackend(Protocol):
    async def complete(self, prompt: str) -> str: ...


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _match_key(name: str) -> str:
    return " ".join(name.split()).lower()


def parse_share_rows(reply: str) -> List[ShareOfVoiceEntry]:
    """Read ``{"shares": [{company, percent}]}`` (or a bare row array)."""
    parsed = extract_object(reply)
    rows: Any = parsed.get("shares") if isinstance(parsed, dict) else None
    if rows is None:
        fallback = extract(reply)
        rows = fallback if isinstance(fallback, list) else []
    if not isinstance(rows, list):
        return []

    entries: List[ShareOfVoiceEntry] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        company = row.get("company")
        if not isinstance(company, str) or not company.strip():
            continue
        percent = row.get("percent")
        entries.append(
            ShareOfVoiceEntry(company=company, percent=float(percent) if _is_number(percent) else 0.0)
        )
    return entries


def share_for(entity: str, rows: Sequence[ShareOfVoiceEntry]) -> float:
    """Case-insensitive lookup; 0 when the entity is not in the reply."""
    key = _match_key(entity)
    for row in rows:
        if _match_key(row.company) == key:
            return row.percent
    return 0.0


class VisibilityCollector:
    """Collects VisibilityRecords via the LM client."""

    def __init__(
        self,
        lm: CompletionBackend,
        *,
        max_concurrency: int = 4,
        attempts: int = VISIBILITY_ATTEMPTS,
    ):
        self._lm = lm
        self._max_concurrency = max(1, max_concurrency)
        self._attempts = max(1, attempts)

    # ------------------------------------------------------------------ #
    #  Single-metric lookups                                              #
    # ------------------------------------------------------------------ #

    async def _ask_number(self, prompt: str, key: str, label: str) -> Optional[float]:
        for attempt in range(1, self._attempts + 1):
            if deadline_exceeded():
                return None
            try:
                reply = await self._lm.complete(prompt)
            except UpstreamError as exc:
                logger.warning("[VISIBILITY] %s attempt %d failed: %s", label, attempt, exc)
                continue
            obj = extract_object(reply)
            if obj is not None and _is_number(obj.get(key)):
                return obj[key]
            logger.info("[VISIBILITY] %s attempt %d: no %r in reply %.120s", label, attempt, key, reply)
        return None

    async def fetch_citation_count(self, entity: str) -> Optional[int]:
        value = await self._ask_number(
            CITATION_PROMPT.format(entity=entity), "citationCount", f"citations[{entity}]"
        )
        return None if value is None else int(value)

    async def fetch_customer_rating(self, entity: str) -> Optional[float]:
        value = await self._ask_number(
            RATING_PROMPT.format(entity=entity), "rating", f"rating[{entity}]"
        )
        return None if value is None else float(value)

    async def fetch_share_of_voice(self, entities: Sequence[str]) -> List[ShareOfVoiceEntry]:
        """Single batched call for all entities. ``[]`` on any failure."""
        if not entities or deadline_exceeded():
            return []
        prompt = SHARE_OF_VOICE_PROMPT.format(entities=", ".join(entities))
        try:
            reply = await self._lm.complete(prompt)
        except UpstreamError as exc:
            logger.warning("[VISIBILITY] Share of voice call failed: %s — defaulting to 0", exc)
            return []
        rows = parse_share_rows(reply)
        logger.info("[VISIBILITY] Share of voice rows: %d", len(rows))
        return rows

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    async def collect(self, entities: Sequence[str]) -> Dict[str, VisibilityRecord]:
        """Gather a VisibilityRecord for every entity, in input order."""
        ordered = list(dict.fromkeys(e for e in entities if e and e.strip()))
        if not ordered:
            return {}

        citations: Dict[str, Optional[int]] = {}
        ratings: Dict[str, Optional[float]] = {}
        pool = asyncio.Semaphore(self._max_concurrency)

        async def citation(entity: str) -> None:
            citations[entity] = await self.fetch_citation_count(entity)

        async def rating(entity: str) -> None:
            ratings[entity] = await self.fetch_customer_rating(entity)

        async def lookup(entity: str) -> None:
            async with pool:
                outcomes = await asyncio.gather(citation(entity), rating(entity), return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    logger.error("[VISIBILITY] Lookup for %r crashed: %r", entity, outcome)

        lookups = [asyncio.create_task(lookup(entity)) for entity in ordered]
        share_task = asyncio.create_task(self.fetch_share_of_voice(ordered))
        tasks = [*lookups, share_task]

        done, pending = await asyncio.wait(tasks, timeout=remaining_time())
        if pending:
            logger.warning("[VISIBILITY] Deadline reached — cancelling %d unfinished lookups", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if task is not share_task and task.exception() is not None:
                logger.error("[VISIBILITY] Lookup crashed: %r", task.exception())

        shares: List[ShareOfVoiceEntry] = []
        if share_task in done and share_task.exception() is None:
            shares = share_task.result()
        elif share_task in done:
            logger.error("[VISIBILITY] Share of voice crashed: %r", share_task.exception())

        records: Dict[str, VisibilityRecord] = {}
        for entity in ordered:
            records[entity] = VisibilityRecord(
                entity_name=entity,
                citation_count=citations.get(entity),
                customer_rating=ratings.get(entity),
                share_of_voice_percent=share_for(entity, shares),
            )
        return records
