# Schemas package
from .search_schema import SearchQuery, SearchResult
from .competitor_schema import Candidate, StrategyId, ValidatedCompetitor
from .visibility_schema import (
    AnalyzeCompetitorRequest,
    DiscoveryResult,
    ShareOfVoiceEntry,
    VisibilityRecord,
)

__all__ = [
    "SearchQuery",
    "SearchResult",
    "StrategyId",
    "Candidate",
    "ValidatedCompetitor",
    "VisibilityRecord",
    "ShareOfVoiceEntry",
    "DiscoveryResult",
    "AnalyzeCompetitorRequest",
]
