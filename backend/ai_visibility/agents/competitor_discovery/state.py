from enum import Enum
from typing import Optional, TypedDict

from ...schemas.competitor_schema import Candidate, StrategyId
from ...schemas.visibility_schema import VisibilityRecord
from ...timing import Deadline


class PipelineStage(str, Enum):
    """Orchestrator stages, in the only order they can occur."""
    DISCOVERING = "discovering"
    AGGREGATING = "aggregating"
    VALIDATING = "validating"
    SCORING_VISIBILITY = "scoring_visibility"
    DONE = "done"


class DiscoveryState(TypedDict):
    target_entity: str
    industry: Optional[str]
    deadline: Deadline

    stage: PipelineStage

    # Populated by the discovering node, one entry per strategy run
    strategy_results: dict[StrategyId, list[str]]

    # Populated by the aggregating node
    candidates: list[Candidate]

    # Populated by the validating node (target excluded)
    accepted: list[str]

    # Populated by the scoring_visibility node, target first
    visibility: list[VisibilityRecord]

    # Metadata
    processing_errors: list[str]  # Track any errors during processing
