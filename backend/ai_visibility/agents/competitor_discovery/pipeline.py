"""
Competitor Discovery Pipeline

LangGraph state machine driving one discovery run:

    START -> discovering -> aggregating -> validating -> scoring_visibility -> END

Stages only move forward. Each node binds the run's overall deadline for
the duration of its body, so every search/LM call made underneath can see
it. Once the deadline passes no new upstream calls are started; the run
still finishes every stage with whatever partial results exist.

Errors inside a stage are recorded in ``processing_errors`` and the stage
falls back to an empty contribution. Only a blank entity name (ValueError)
or missing configuration (ConfigurationError, raised by ``load_settings``)
escape to the caller.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

import httpx
from langgraph.graph import END, START, StateGraph

from ...config import Settings
from ...constants import DEFAULT_STRATEGY_ORDER
from ...schemas.competitor_schema import StrategyId
from ...schemas.visibility_schema import DiscoveryResult, VisibilityRecord
from ...services.competitor_validator import CompetitorValidator
from ...services.llm_client import LLMClient
from ...services.name_aggregator import aggregate, candidate_names
from ...services.retry import RetryPolicy
from ...services.search_client import SearchClient
from ...services.strategy_runner import StrategyRunner
from ...services.visibility_collector import VisibilityCollector
from ...timing import Deadline, StepTimer, bind_deadline, deadline_exceeded
from .state import DiscoveryState, PipelineStage

logger = logging.getLogger(__name__)

_UNSET = object()


def _log_transition(state: DiscoveryState, stage: PipelineStage) -> None:
    logger.info(
        "[PIPELINE] %s: %s -> %s",
        state["target_entity"],
        state["stage"].value,
        stage.value,
        extra={"stage": stage.value},
    )


class CompetitorDiscoveryPipeline:
    """Discovers competitors for an entity and scores their visibility."""

    def __init__(
        self,
        runner: StrategyRunner,
        validator: CompetitorValidator,
        collector: VisibilityCollector,
        *,
        strategies: Sequence[StrategyId] = DEFAULT_STRATEGY_ORDER,
        strategy_delay: float = 2.0,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._runner = runner
        self._validator = validator
        self._collector = collector
        self._strategies = tuple(strategies)
        self._strategy_delay = strategy_delay
        self._timeout = timeout
        self._sleep = sleep
        self._graph = self._build_graph().compile()

    # ------------------------------------------------------------------ #
    #  Graph                                                              #
    # ------------------------------------------------------------------ #

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(DiscoveryState)

        graph.add_node(PipelineStage.DISCOVERING.value, self._discovering)
        graph.add_node(PipelineStage.AGGREGATING.value, self._aggregating)
        graph.add_node(PipelineStage.VALIDATING.value, self._validating)
        graph.add_node(PipelineStage.SCORING_VISIBILITY.value, self._scoring_visibility)

        graph.add_edge(START, PipelineStage.DISCOVERING.value)
        graph.add_edge(PipelineStage.DISCOVERING.value, PipelineStage.AGGREGATING.value)
        graph.add_edge(PipelineStage.AGGREGATING.value, PipelineStage.VALIDATING.value)
        graph.add_edge(PipelineStage.VALIDATING.value, PipelineStage.SCORING_VISIBILITY.value)
        graph.add_edge(PipelineStage.SCORING_VISIBILITY.value, END)

        return graph

    async def _discovering(self, state: DiscoveryState) -> dict:
        _log_transition(state, PipelineStage.DISCOVERING)
        entity, industry = state["target_entity"], state["industry"]
        results: dict[StrategyId, list[str]] = {}
        errors: list[str] = []

        with bind_deadline(state["deadline"]):
            for index, strategy in enumerate(self._strategies):
                if deadline_exceeded():
                    logger.warning("[PIPELINE] Deadline exceeded — skipping strategy %s", strategy.value)
                    results[strategy] = []
                    continue
                try:
                    results[strategy] = await self._runner.run(strategy, entity, industry)
                except Exception as exc:
                    logger.error("[PIPELINE] Strategy %s failed: %s", strategy.value, exc)
                    errors.append(f"strategy {strategy.value}: {exc}")
                    results[strategy] = []

                if index < len(self._strategies) - 1 and self._strategy_delay > 0 and not deadline_exceeded():
                    await self._sleep(self._strategy_delay)

        return {
            "stage": PipelineStage.DISCOVERING,
            "strategy_results": results,
            "processing_errors": state["processing_errors"] + errors,
        }

    async def _aggregating(self, state: DiscoveryState) -> dict:
        _log_transition(state, PipelineStage.AGGREGATING)
        candidates = aggregate(state["strategy_results"], state["target_entity"], order=self._strategies)

        for candidate in candidates:
            logger.info(
                "[PIPELINE]   %s (x%d via %s)",
                candidate.name,
                candidate.frequency,
                ", ".join(sorted(source.value for source in candidate.sources)),
            )
        logger.info("[PIPELINE] %d unique candidates", len(candidates))
        return {"stage": PipelineStage.AGGREGATING, "candidates": candidates}

    async def _validating(self, state: DiscoveryState) -> dict:
        _log_transition(state, PipelineStage.VALIDATING)
        names = candidate_names(state["candidates"])
        errors: list[str] = []

        with bind_deadline(state["deadline"]):
            try:
                accepted = await self._validator.validate(state["target_entity"], names, state["industry"])
            except Exception as exc:
                # Oracle crashed outright; keep everything, same as an unavailable oracle
                logger.error("[PIPELINE] Validation failed: %s", exc)
                errors.append(f"validation: {exc}")
                accepted = names

        return {
            "stage": PipelineStage.VALIDATING,
            "accepted": accepted,
            "processing_errors": state["processing_errors"] + errors,
        }

    async def _scoring_visibility(self, state: DiscoveryState) -> dict:
        _log_transition(state, PipelineStage.SCORING_VISIBILITY)
        target = state["target_entity"]
        entities = [target, *state["accepted"]]
        errors: list[str] = []

        with bind_deadline(state["deadline"]):
            try:
                records = await self._collector.collect(entities)
            except Exception as exc:
                logger.error("[PIPELINE] Visibility collection failed: %s", exc)
                errors.append(f"visibility: {exc}")
                records = {}

        visibility = [records.get(name) or VisibilityRecord(entity_name=name) for name in entities]
        return {
            "stage": PipelineStage.DONE,
            "visibility": visibility,
            "processing_errors": state["processing_errors"] + errors,
        }

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    async def discover(
        self,
        entity: str,
        industry: Optional[str] = None,
        timeout=_UNSET,
    ) -> DiscoveryResult:
        """Run the full pipeline for ``entity``.

        ``timeout`` overrides the configured overall deadline for this run
        (``None`` disables it).
        """
        entity = " ".join((entity or "").split())
        if not entity:
            raise ValueError("entity name must not be blank")
        industry = (industry or "").strip() or None
        deadline = Deadline(self._timeout if timeout is _UNSET else timeout)

        timer = StepTimer(f"discover[{entity}]")
        logger.info("[PIPELINE] Discovering competitors for %r (industry=%r)", entity, industry)

        initial_state: DiscoveryState = {
            "target_entity": entity,
            "industry": industry,
            "deadline": deadline,
            "stage": PipelineStage.DISCOVERING,
            "strategy_results": {},
            "candidates": [],
            "accepted": [],
            "visibility": [],
            "processing_errors": [],
        }
        async with timer.async_step("graph"):
            final = await self._graph.ainvoke(initial_state)
        timer.summary()

        for error in final.get("processing_errors", []):
            logger.warning("[PIPELINE] Recovered error: %s", error)

        return DiscoveryResult(
            target_entity=entity,
            competitors=final["visibility"],
            candidates=final["candidates"],
            timed_out=deadline.expired,
        )

    def discover_sync(self, entity: str, industry: Optional[str] = None, timeout=_UNSET) -> DiscoveryResult:
        """Blocking wrapper for callers without an event loop."""
        return asyncio.run(self.discover(entity, industry, timeout))

    async def analyze_single(self, company: str, industry: Optional[str] = None) -> VisibilityRecord:
        """Visibility record for one company, skipping discovery."""
        company = " ".join((company or "").split())
        if not company:
            raise ValueError("company name must not be blank")
        logger.info("[PIPELINE] Analyzing single company %r (industry=%r)", company, industry)

        with bind_deadline(Deadline(self._timeout)):
            records = await self._collector.collect([company])
        return records.get(company) or VisibilityRecord(entity_name=company)


def build_pipeline(settings: Settings, http_client: httpx.AsyncClient) -> CompetitorDiscoveryPipeline:
    """Wire the search/LM clients and pipeline stages from ``settings``."""
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
    )
    search = SearchClient(
        http_client,
        api_key=settings.google_api_key,
        engine_id=settings.google_cse_id,
        retry=retry,
        timeout=settings.search_timeout,
    )
    lm = LLMClient.from_credentials(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_api_url,
        model=settings.perplexity_model,
        http_client=http_client,
        retry=retry,
        timeout=settings.lm_timeout,
    )
    if not settings.validation_enabled:
        logger.warning("[PIPELINE] Competitor validation disabled — top candidates kept unscored")

    return CompetitorDiscoveryPipeline(
        StrategyRunner(search, lm, query_delay=settings.query_delay),
        CompetitorValidator(
            lm if settings.validation_enabled else None,
            delay=settings.validation_delay,
        ),
        VisibilityCollector(lm, max_concurrency=settings.visibility_concurrency),
        strategies=settings.strategies,
        strategy_delay=settings.strategy_delay,
        timeout=settings.pipeline_timeout,
    )
