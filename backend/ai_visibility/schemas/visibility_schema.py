from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .competitor_schema import Candidate


class VisibilityRecord(BaseModel):
    """Multi-metric visibility for one entity.

    ``None`` means unknown. Share of voice is the exception: it defaults
    to 0 when the entity is not matched in the batched reply.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entity_name: str
    citation_count: Optional[int] = Field(
        default=None,
        description="Citations in papers, news and reputable sources (null = unknown)",
    )
    customer_rating: Optional[float] = Field(
        default=None,
        description="Average rating on review platforms (null = unknown)",
    )
    share_of_voice_percent: float = Field(
        default=0.0,
        description="Estimated share of media/online mentions within the peer set",
    )


class ShareOfVoiceEntry(BaseModel):
    """One row of the batched share-of-voice reply."""

    company: str
    percent: float = 0.0


class DiscoveryResult(BaseModel):
    """Final artifact of a pipeline run.

    ``competitors[0]`` is always the target entity itself.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    target_entity: str
    competitors: list[VisibilityRecord] = Field(default_factory=list)
    candidates: list[Candidate] = Field(
        default_factory=list,
        description="Frequency-ranked candidates before validation",
    )
    timed_out: bool = Field(
        default=False,
        description="True when the overall deadline cut the run short",
    )


class AnalyzeCompetitorRequest(BaseModel):
    """Request body for single-company visibility analysis."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    company_name: str = Field(..., min_length=1, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=200)
