"""Runtime configuration — read once from the environment at startup.

All thresholds that depend on the deployment (credentials, throttles,
timeouts) live here. Pipeline-invariant numbers (templates, score
threshold) live in ``constants.py``.

Missing credentials raise ``ConfigurationError`` from ``load_settings()``;
that is the only fatal error the engine knows about.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_STRATEGY_ORDER
from .exceptions import ConfigurationError
from .schemas.competitor_schema import StrategyId

logger = logging.getLogger(__name__)

_DEFAULT_LM_URL = "https://api.perplexity.ai"
_DEFAULT_LM_MODEL = "sonar"


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_strategies(key: str) -> tuple[StrategyId, ...]:
    """Parse a comma-separated strategy list, skipping unknown ids."""
    raw = os.getenv(key, "").strip()
    if not raw:
        return DEFAULT_STRATEGY_ORDER

    order: list[StrategyId] = []
    for token in raw.split(","):
        token = token.strip().lower()
        if not token:
            continue
        try:
            strategy = StrategyId(token)
        except ValueError:
            logger.warning("[CONFIG] Unknown discovery strategy %r ignored", token)
            continue
        if strategy not in order:
            order.append(strategy)
    return tuple(order) or DEFAULT_STRATEGY_ORDER


@dataclass(frozen=True)
class Settings:
    """Process-wide settings. Read-only after startup."""

    google_api_key: str
    google_cse_id: str
    perplexity_api_key: str
    perplexity_api_url: str = _DEFAULT_LM_URL
    perplexity_model: str = _DEFAULT_LM_MODEL

    validation_enabled: bool = True
    strategies: tuple[StrategyId, ...] = DEFAULT_STRATEGY_ORDER

    # Courtesy throttles (seconds), not rate-limit driven
    query_delay: float = 1.0
    strategy_delay: float = 2.0
    validation_delay: float = 0.5

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0

    visibility_concurrency: int = 4

    # Timeouts (seconds); pipeline_timeout None = no overall deadline
    pipeline_timeout: Optional[float] = 180.0
    search_timeout: float = 10.0
    lm_timeout: float = 40.0


def load_settings() -> Settings:
    """Build ``Settings`` from the environment.

    Raises ConfigurationError listing every missing credential at once.
    """
    google_key = os.getenv("GOOGLE_API_KEY", "").strip()
    google_cse = os.getenv("GOOGLE_CSE_ID", "").strip()
    lm_key = os.getenv("PERPLEXITY_API_KEY", "").strip()

    missing = []
    if not google_key:
        missing.append("GOOGLE_API_KEY")
    if not google_cse:
        missing.append("GOOGLE_CSE_ID")
    if not lm_key:
        missing.append("PERPLEXITY_API_KEY")
    if missing:
        logger.error("[CONFIG] Missing credentials: %s", ", ".join(missing))
        raise ConfigurationError(missing)

    timeout = _env_float("PIPELINE_TIMEOUT", 180.0)

    settings = Settings(
        google_api_key=google_key,
        google_cse_id=google_cse,
        perplexity_api_key=lm_key,
        perplexity_api_url=os.getenv("PERPLEXITY_API_URL", _DEFAULT_LM_URL).strip() or _DEFAULT_LM_URL,
        perplexity_model=os.getenv("PERPLEXITY_MODEL", _DEFAULT_LM_MODEL).strip() or _DEFAULT_LM_MODEL,
        validation_enabled=_env_bool("COMPETITOR_VALIDATION_ENABLED", True),
        strategies=_env_strategies("DISCOVERY_STRATEGIES"),
        query_delay=_env_float("SEARCH_QUERY_DELAY", 1.0),
        strategy_delay=_env_float("STRATEGY_DELAY", 2.0),
        validation_delay=_env_float("VALIDATION_DELAY", 0.5),
        retry_max_attempts=max(1, _env_int("RETRY_MAX_ATTEMPTS", 3)),
        retry_base_delay=_env_float("RETRY_BASE_DELAY", 2.0),
        visibility_concurrency=max(1, _env_int("VISIBILITY_CONCURRENCY", 4)),
        pipeline_timeout=timeout if timeout > 0 else None,
        search_timeout=_env_float("SEARCH_REQUEST_TIMEOUT", 10.0),
        lm_timeout=_env_float("LM_REQUEST_TIMEOUT", 40.0),
    )
    logger.info(
        "[CONFIG] Loaded settings: model=%s strategies=%s validation=%s timeout=%s",
        settings.perplexity_model,
        ",".join(s.value for s in settings.strategies),
        settings.validation_enabled,
        settings.pipeline_timeout,
    )
    return settings
