"""Strategy Runner — executes one named competitor discovery strategy.

Search strategies issue six templated queries *sequentially* through the
search client with a fixed courtesy delay between them (politeness, not
rate-limit driven), then hand every hit to the LM once with an
extraction prompt. The LM-recall strategy skips search and asks the LM
directly.

Output is raw, unvalidated names — duplicates and noise included.
Rules
-----
- Never raises; a failed strategy contributes ``[]``
- Extractor ``None`` / non-array → ``[]``
- No LM call when every query came back empty
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol

from ..constants import (
    EXTRACTION_PROMPT,
    LM_ONLY_STRATEGIES,
    RECALL_PROMPT,
    STRATEGY_TEMPLATES,
    industry_clause,
)
from ..exceptions import UpstreamError
from ..schemas.competitor_schema import StrategyId
from ..schemas.search_schema import SearchQuery, SearchResult
from ..timing import deadline_exceeded
from .json_extractor import Malformed, Parsed, parse_llm_output, split_names, string_items

logger = logging.getLogger(__name__)


class SearchBackend(Protocol):
    async def query(self, query: SearchQuery) -> List[SearchResult]: ...


class CompletionBackend(Protocol):
    async def complete(self, prompt: str) -> str: ...


def build_queries(strategy: StrategyId, entity: str, industry: Optional[str] = None) -> List[SearchQuery]:
    """Render the strategy's templates for ``entity`` (+ optional industry)."""
    templates = STRATEGY_TEMPLATES.get(strategy, ())
    industry_text = (industry or "").strip()
    return [
        SearchQuery(text=template.format(entity=entity.strip(), industry=industry_text))
        for template in templates
    ]


def build_extraction_prompt(entity: str, results: List[SearchResult], industry: Optional[str] = None) -> str:
    search_text = "\n\n".join(result.as_prompt_line() for result in results)
    return EXTRACTION_PROMPT.format(
        entity=entity,
        industry_clause=industry_clause(industry),
        search_text=search_text,
    )


class StrategyRunner:
    """Runs discovery strategies against the search and LM clients."""

    def __init__(
        self,
        search: SearchBackend,
        lm: CompletionBackend,
        *,
        query_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._search = search
        self._lm = lm
        self._query_delay = query_delay
        self._sleep = sleep

    async def run(self, strategy: StrategyId, entity: str, industry: Optional[str] = None) -> List[str]:
        """Execute ``strategy`` for ``entity`` and return raw candidate names."""
        if strategy in LM_ONLY_STRATEGIES:
            return await self._run_recall(entity, industry)

        queries = build_queries(strategy, entity, industry)
        if not queries:
            logger.warning("[STRATEGY] %s has no query templates", strategy.value)
            return []

        results = await self._collect_results(strategy, queries)
        logger.info("[STRATEGY] %s: %d total search results", strategy.value, len(results))
        if not results:
            return []

        names = await self._extract_names(entity, results, industry)
        logger.info("[STRATEGY] %s: extracted %d names %s", strategy.value, len(names), names)
        return names

    async def _collect_results(self, strategy: StrategyId, queries: List[SearchQuery]) -> List[SearchResult]:
        collected: List[SearchResult] = []
        for index, query in enumerate(queries):
            if deadline_exceeded():
                logger.warning(
                    "[STRATEGY] %s: deadline exceeded after %d/%d queries",
                    strategy.value, index, len(queries),
                )
                break
            logger.debug("[STRATEGY] %s query %d: %r", strategy.value, index + 1, query.text)
            collected.extend(await self._search.query(query))
            if index < len(queries) - 1 and self._query_delay > 0:
                await self._sleep(self._query_delay)
        return collected

    async def _extract_names(self, entity: str, results: List[SearchResult], industry: Optional[str]) -> List[str]:
        prompt = build_extraction_prompt(entity, results, industry)
        try:
            reply = await self._lm.complete(prompt)
        except UpstreamError as exc:
            logger.warning("[STRATEGY] Extraction call failed: %s", exc)
            return []

        outcome = parse_llm_output(reply)
        if isinstance(outcome, Parsed):
            return string_items(outcome.value)
        logger.warning("[STRATEGY] Extraction reply was not JSON: %.120s", outcome.raw_text)
        return []

    async def _run_recall(self, entity: str, industry: Optional[str]) -> List[str]:
        prompt = RECALL_PROMPT.format(entity=entity, industry_clause=industry_clause(industry))
        try:
            reply = await self._lm.complete(prompt)
        except UpstreamError as exc:
            logger.warning("[STRATEGY] lm_recall call failed: %s", exc)
            return []

        outcome = parse_llm_output(reply)
        if isinstance(outcome, Parsed) and isinstance(outcome.value, list):
            names = string_items(outcome.value)
        else:
            raw = outcome.raw_text if isinstance(outcome, Malformed) else reply
            names = split_names(raw)
        logger.info("[STRATEGY] lm_recall: %d names %s", len(names), names)
        return names
