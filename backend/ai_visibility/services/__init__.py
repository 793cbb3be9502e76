from .json_extractor import Malformed, Parsed, extract, extract_object, parse_llm_output
from .retry import RetryPolicy
from .search_client import SearchClient
from .llm_client import LLMClient
from .strategy_runner import StrategyRunner
from .name_aggregator import aggregate
from .competitor_validator import CompetitorValidator
from .visibility_collector import VisibilityCollector

__all__ = [
    "Malformed",
    "Parsed",
    "extract",
    "extract_object",
    "parse_llm_output",
    "RetryPolicy",
    "SearchClient",
    "LLMClient",
    "StrategyRunner",
    "aggregate",
    "CompetitorValidator",
    "VisibilityCollector",
]
