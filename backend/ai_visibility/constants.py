"""Centralized constants shared across the discovery engine.

This module is the SINGLE SOURCE OF TRUTH for strategy query templates,
validation thresholds, and the LM prompt wording. Reused by:
  - Strategy Runner
  - Validation Oracle
  - Visibility Metrics Collector
"""

from __future__ import annotations

from .schemas.competitor_schema import StrategyId

# ── Strategy query templates ────────────────────────────────────────────
# Six templates per search strategy, issued in this order.
# ``{entity}`` and ``{industry}`` are substituted; an empty industry
# collapses to single spaces when the SearchQuery is built.

STRATEGY_TEMPLATES: dict[StrategyId, tuple[str, ...]] = {
    StrategyId.INDUSTRY_SEARCH: (
        "{entity} competitors {industry}",
        "{entity} vs {industry} companies",
        "{entity} {industry} market competitors",
        "{entity} {industry} industry rivals",
        "{entity} {industry} alternative companies",
        "{entity} {industry} competing businesses",
    ),
    StrategyId.DIRECT_COMPETITORS: (
        "{entity} direct competitors",
        "{entity} main competitors",
        "{entity} primary competitors",
        "{entity} top competitors",
        "{entity} key competitors",
        "{entity} rival companies",
    ),
    StrategyId.MARKET_ANALYSIS: (
        "{entity} market analysis {industry}",
        "{entity} competitive landscape {industry}",
        "{entity} market share {industry}",
        "{entity} industry analysis {industry}",
        "{entity} market competitors {industry}",
        "{entity} {industry} market players",
    ),
}

# Strategies that only talk to the LM (no search API round-trips).
LM_ONLY_STRATEGIES: frozenset[StrategyId] = frozenset({StrategyId.LM_RECALL})

DEFAULT_STRATEGY_ORDER: tuple[StrategyId, ...] = (
    StrategyId.INDUSTRY_SEARCH,
    StrategyId.DIRECT_COMPETITORS,
    StrategyId.MARKET_ANALYSIS,
)

# ── Validation oracle ───────────────────────────────────────────────────
ACCEPTANCE_THRESHOLD: int = 60
MIN_SCORE: int = 0
MAX_SCORE: int = 100

# Without a scoring client the oracle keeps this many top-ranked candidates.
UNVALIDATED_KEEP_LIMIT: int = 10

# ── Visibility collector ────────────────────────────────────────────────
VISIBILITY_ATTEMPTS: int = 2

# ── Prompts ─────────────────────────────────────────────────────────────

EXTRACTION_PROMPT = """You are a business analyst specializing in competitive intelligence. Analyze these search results and extract ONLY the direct competitor company names for "{entity}"{industry_clause}.

CRITICAL INSTRUCTIONS:
1. Focus ONLY on companies that directly compete with {entity} in the same market
2. Exclude {entity} itself from the results
3. Exclude generic terms like "competitors", "companies", "businesses", "solutions"
4. Exclude companies that are partners, suppliers, or complementary services
5. Only include companies that offer similar products/services to {entity}
6. Return ONLY a JSON array of company names, no explanations
7. Ensure all company names are real, established businesses

Search results to analyze:
{search_text}

Return format: ["Company1", "Company2", "Company3"]"""

RECALL_PROMPT = (
    "List the closest competitors of {entity}{industry_clause}. "
    "Respond ONLY with a JSON array of competitor names, and nothing else."
)

SCORING_PROMPT = """You are a business analyst. Rate how likely it is that {candidate} is a direct competitor to {entity}{industry_clause} on a scale of 0-100. Consider factors like:
- Same industry/market
- Similar products/services
- Target customers
- Business model

Return only a number between 0-100."""

CITATION_PROMPT = (
    "How many times has {entity} been cited in academic papers, news articles, "
    "or reputable sources? Respond ONLY in JSON: {{ \"citationCount\": number }} "
    "If unknown, use 0."
)

RATING_PROMPT = (
    "What is the average customer rating for {entity} on major review platforms "
    "(G2, Capterra, Trustpilot)? Respond ONLY in JSON: {{ \"rating\": number }} "
    "If unknown, use 0."
)

SHARE_OF_VOICE_PROMPT = (
    "Given the companies {entities}, estimate their share of voice in terms of "
    "media and online mentions. Respond ONLY in JSON: "
    "{{ \"shares\": [{{ \"company\": string, \"percent\": number }}] }} "
    "If unknown, use 0 for percent."
)


def industry_clause(industry: str | None, prefix: str = " in the ") -> str:
    """Render the optional ``in the <industry> industry`` prompt fragment."""
    if not industry or not industry.strip():
        return ""
    return f"{prefix}{industry.strip()} industry"
