from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StrategyId(str, Enum):
    """Discovery strategies, each surfacing competitor names from one angle."""

    INDUSTRY_SEARCH = "industry_search"
    DIRECT_COMPETITORS = "direct_competitors"
    MARKET_ANALYSIS = "market_analysis"
    LM_RECALL = "lm_recall"


class Candidate(BaseModel):
    """An unvalidated, deduplicated, frequency-ranked competitor name.

    Produced by the Name Aggregator. ``name`` keeps the first-seen casing;
    identity is the case-insensitive, whitespace-normalized form.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Display form (first-seen casing)")
    frequency: int = Field(..., ge=1, description="Total observations across strategies")
    sources: frozenset[StrategyId] = Field(
        default_factory=frozenset,
        description="Strategies that surfaced this name",
    )


class ValidatedCompetitor(BaseModel):
    """Outcome of a single Validation Oracle evaluation."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str
    score: int = Field(..., ge=0, le=100, description="LM likelihood score (0-100)")
    accepted: bool = Field(..., description="score >= acceptance threshold")
